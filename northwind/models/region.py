from typing import Optional

from sqlmodel import Field, SQLModel


class Region(SQLModel, table=True):
    __tablename__ = "regions"

    region_id: Optional[int] = Field(default=None, primary_key=True)
    region_description: str
