"""
Northwind seed data.

A small, fixed subset of the classic Northwind sample database. Used to
populate an empty database at startup and by the ResetDataSource action.
"""

import logging
from datetime import datetime

from sqlmodel import Session, select

from northwind.models.customer import Customer
from northwind.models.employee import Employee
from northwind.models.order import Order
from northwind.models.order_detail import OrderDetail
from northwind.models.product import Product
from northwind.models.region import Region
from northwind.models.supplier import Supplier

logger = logging.getLogger(__name__)

# Children before parents
_DELETE_ORDER = [OrderDetail, Order, Product, Supplier, Customer, Employee, Region]


def _seed_rows():
    regions = [
        Region(region_id=1, region_description="Eastern"),
        Region(region_id=2, region_description="Western"),
        Region(region_id=3, region_description="Northern"),
        Region(region_id=4, region_description="Southern"),
    ]
    suppliers = [
        Supplier(supplier_id=1, company_name="Exotic Liquids", contact_name="Charlotte Cooper", city="London", country="UK"),
        Supplier(
            supplier_id=2,
            company_name="New Orleans Cajun Delights",
            contact_name="Shelley Burke",
            city="New Orleans",
            country="USA",
        ),
        Supplier(supplier_id=4, company_name="Tokyo Traders", contact_name="Yoshi Nagase", city="Tokyo", country="Japan"),
        Supplier(
            supplier_id=18, company_name="Aux joyeux ecclésiastiques", contact_name="Guylène Nodier", city="Paris", country="France"
        ),
    ]
    products = [
        Product(product_id=1, product_name="Chai", supplier_id=1, quantity_per_unit="10 boxes x 20 bags", unit_price=18.0, units_in_stock=39),
        Product(product_id=2, product_name="Chang", supplier_id=1, quantity_per_unit="24 - 12 oz bottles", unit_price=19.0, units_in_stock=17),
        Product(product_id=3, product_name="Aniseed Syrup", supplier_id=1, quantity_per_unit="12 - 550 ml bottles", unit_price=10.0, units_in_stock=13),
        Product(product_id=4, product_name="Chef Anton's Cajun Seasoning", supplier_id=2, quantity_per_unit="48 - 6 oz jars", unit_price=22.0, units_in_stock=53),
        Product(product_id=9, product_name="Mishi Kobe Niku", supplier_id=4, quantity_per_unit="18 - 500 g pkgs.", unit_price=97.0, units_in_stock=29, discontinued=True),
        Product(product_id=10, product_name="Ikura", supplier_id=4, quantity_per_unit="12 - 200 ml jars", unit_price=31.0, units_in_stock=31),
        Product(product_id=38, product_name="Côte de Blaye", supplier_id=18, quantity_per_unit="12 - 75 cl bottles", unit_price=263.5, units_in_stock=17),
        Product(product_id=39, product_name="Chartreuse verte", supplier_id=18, quantity_per_unit="750 cc per bottle", unit_price=18.0, units_in_stock=69),
    ]
    customers = [
        Customer(customer_id="ALFKI", company_name="Alfreds Futterkiste", contact_name="Maria Anders", city="Berlin", country="Germany"),
        Customer(customer_id="BLONP", company_name="Blondesddsl père et fils", contact_name="Frédérique Citeaux", city="Strasbourg", country="France"),
        Customer(customer_id="BONAP", company_name="Bon app'", contact_name="Laurence Lebihan", city="Marseille", country="France"),
        Customer(customer_id="FOLKO", company_name="Folk och fä HB", contact_name="Maria Larsson", city="Bräcke", country="Sweden"),
        Customer(customer_id="VINET", company_name="Vins et alcools Chevalier", contact_name="Paul Henriot", city="Reims", country="France"),
    ]
    employees = [
        Employee(employee_id=1, last_name="Davolio", first_name="Nancy", title="Sales Representative", hire_date=datetime(1992, 5, 1), country="USA"),
        Employee(employee_id=2, last_name="Fuller", first_name="Andrew", title="Vice President, Sales", hire_date=datetime(1992, 8, 14), country="USA"),
        Employee(employee_id=5, last_name="Buchanan", first_name="Steven", title="Sales Manager", hire_date=datetime(1993, 10, 17), country="UK"),
    ]
    orders = [
        Order(order_id=10248, customer_id="VINET", employee_id=5, order_date=datetime(1996, 7, 4), shipped_date=datetime(1996, 7, 16), freight=32.38, ship_name="Vins et alcools Chevalier", ship_country="France"),
        Order(order_id=10265, customer_id="BLONP", employee_id=2, order_date=datetime(1996, 7, 25), shipped_date=datetime(1996, 8, 12), freight=55.28, ship_name="Blondel père et fils", ship_country="France"),
        Order(order_id=10331, customer_id="BONAP", employee_id=1, order_date=datetime(1996, 10, 16), shipped_date=None, freight=10.19, ship_name="Bon app'", ship_country="France"),
        Order(order_id=10643, customer_id="ALFKI", employee_id=5, order_date=datetime(1997, 8, 25), shipped_date=datetime(1997, 9, 2), freight=29.46, ship_name="Alfreds Futterkiste", ship_country="Germany"),
        Order(order_id=11077, customer_id="FOLKO", employee_id=1, order_date=datetime(1998, 5, 6), shipped_date=None, freight=8.53, ship_name="Folk och fä HB", ship_country="Sweden"),
    ]
    order_details = [
        OrderDetail(order_id=10248, product_id=38, unit_price=263.5, quantity=12),
        OrderDetail(order_id=10248, product_id=39, unit_price=18.0, quantity=10),
        OrderDetail(order_id=10265, product_id=10, unit_price=31.0, quantity=30),
        OrderDetail(order_id=10331, product_id=4, unit_price=22.0, quantity=15),
        OrderDetail(order_id=10643, product_id=2, unit_price=19.0, quantity=21, discount=0.25),
        OrderDetail(order_id=10643, product_id=39, unit_price=18.0, quantity=2, discount=0.25),
        OrderDetail(order_id=11077, product_id=1, unit_price=18.0, quantity=4),
        OrderDetail(order_id=11077, product_id=3, unit_price=10.0, quantity=4),
    ]
    return [*regions, *suppliers, *products, *customers, *employees, *orders, *order_details]


def is_seeded(session: Session) -> bool:
    return session.exec(select(Product)).first() is not None


def seed_database(session: Session) -> int:
    """Insert the seed rows. Returns the number of rows added."""
    rows = _seed_rows()
    session.add_all(rows)
    session.commit()
    logger.info("Seeded Northwind data (%d rows)", len(rows))
    return len(rows)


def reset_data_source(session: Session) -> int:
    """Delete every Northwind row and reload the seed data in one transaction."""
    # Instances loaded before the reset would collide with the reseeded keys
    session.expunge_all()
    try:
        for model in _DELETE_ORDER:
            for row in session.exec(select(model)).all():
                session.delete(row)
            session.flush()
        rows = _seed_rows()
        session.add_all(rows)
        session.commit()
    except Exception:
        session.rollback()
        raise
    logger.info("Northwind data source reset (%d rows)", len(rows))
    return len(rows)
