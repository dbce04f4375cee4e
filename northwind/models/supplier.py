from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.product import Product


class Supplier(SQLModel, table=True):
    __tablename__ = "suppliers"

    supplier_id: Optional[int] = Field(default=None, primary_key=True)
    company_name: str
    contact_name: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None

    # Relationships
    products: List["Product"] = Relationship(back_populates="supplier")
