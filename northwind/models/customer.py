from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.order import Order


class Customer(SQLModel, table=True):
    __tablename__ = "customers"

    customer_id: str = Field(primary_key=True, max_length=5)  # Northwind 5-letter code, e.g. "ALFKI"
    company_name: str
    contact_name: Optional[str] = None
    contact_title: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = Field(default=None, index=True)
    phone: Optional[str] = None

    # Relationships
    orders: List["Order"] = Relationship(back_populates="customer")
