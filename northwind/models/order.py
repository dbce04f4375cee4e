from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.customer import Customer
    from northwind.models.employee import Employee
    from northwind.models.order_detail import OrderDetail


class Order(SQLModel, table=True):
    __tablename__ = "orders"

    order_id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: Optional[str] = Field(default=None, foreign_key="customers.customer_id", index=True)
    employee_id: Optional[int] = Field(default=None, foreign_key="employees.employee_id")
    order_date: Optional[datetime] = None
    required_date: Optional[datetime] = None
    shipped_date: Optional[datetime] = Field(default=None, index=True)  # NULL until the order ships
    freight: Optional[float] = Field(default=0.0)
    ship_name: Optional[str] = None
    ship_country: Optional[str] = None

    # Relationships
    customer: Optional["Customer"] = Relationship(back_populates="orders")
    employee: Optional["Employee"] = Relationship(back_populates="orders")
    # Northwind exposes this navigation as "Order_Details"; the model extender
    # annotates it for auto-expand by that name. Details go with their order.
    order_details: List["OrderDetail"] = Relationship(
        back_populates="order",
        sa_relationship_kwargs={"info": {"edm_name": "Order_Details"}, "cascade": "all"},
    )
