from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.order import Order
    from northwind.models.product import Product


class OrderDetail(SQLModel, table=True):
    __tablename__ = "order_details"

    order_id: int = Field(foreign_key="orders.order_id", primary_key=True)
    product_id: int = Field(foreign_key="products.product_id", primary_key=True)
    unit_price: float = Field(default=0.0)
    quantity: int = Field(default=1)
    discount: float = Field(default=0.0)

    # Relationships
    order: Optional["Order"] = Relationship(back_populates="order_details")
    product: Optional["Product"] = Relationship(back_populates="order_details")
