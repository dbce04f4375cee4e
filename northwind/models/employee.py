from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.order import Order


class Employee(SQLModel, table=True):
    __tablename__ = "employees"

    employee_id: Optional[int] = Field(default=None, primary_key=True)
    last_name: str
    first_name: str
    title: Optional[str] = None
    hire_date: Optional[datetime] = None
    country: Optional[str] = None

    # Relationships
    orders: List["Order"] = Relationship(back_populates="employee")
