from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from northwind.models.order_detail import OrderDetail
    from northwind.models.supplier import Supplier


class Product(SQLModel, table=True):
    __tablename__ = "products"

    product_id: Optional[int] = Field(default=None, primary_key=True)
    product_name: str
    supplier_id: Optional[int] = Field(default=None, foreign_key="suppliers.supplier_id", index=True)
    quantity_per_unit: Optional[str] = None
    unit_price: Optional[float] = Field(default=0.0)
    units_in_stock: Optional[int] = Field(default=0)
    discontinued: bool = Field(default=False)

    # Relationships
    supplier: Optional["Supplier"] = Relationship(back_populates="products")
    order_details: List["OrderDetail"] = Relationship(
        back_populates="product", sa_relationship_kwargs={"info": {"edm_name": "Order_Details"}}
    )
