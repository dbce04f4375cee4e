from northwind.models.customer import Customer
from northwind.models.employee import Employee
from northwind.models.order import Order
from northwind.models.order_detail import OrderDetail
from northwind.models.product import Product
from northwind.models.region import Region
from northwind.models.supplier import Supplier

__all__ = [
    "Customer",
    "Employee",
    "Order",
    "OrderDetail",
    "Product",
    "Region",
    "Supplier",
]
