"""
Northwind API surface.

Declares what the Northwind service publishes: entity sets, grants, the
Customers entity-set filter, the ExpensiveProducts and CurrentOrders views,
the IncreasePrice / ResetDataSource / MostExpensive operations, the Products
submit hooks, and the model extender that makes Order.Order_Details
auto-expand.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.sql import Select
from sqlmodel import func, select

from northwind.models import Customer, Employee, Order, OrderDetail, Product, Region, Supplier
from northwind.services.api_config import (
    ApiConfiguration,
    ApiContext,
    ConventionBasedApiModelBuilder,
    Operation,
    SubmitEvent,
    View,
    configure_api,
)
from northwind.services.edm import EdmModel, EdmNavigationProperty, QueryableRestrictions
from northwind.services.errors import ModelBuildError
from northwind.services.model_builder import ConventionModelBuilder, EntitySetMapProducer, ModelBuilder, ModelContext
from northwind.services.security import Grant, PermissionKind, PermissionTable
from northwind.services.seed import reset_data_source
from northwind.services.submit import ChangeType, submit_change
from northwind.utils.sql import scalar_float

logger = logging.getLogger(__name__)

NAMESPACE = "Northwind"

ENTITY_SETS = {
    "Customers": Customer,
    "Employees": Employee,
    "Order_Details": OrderDetail,
    "Orders": Order,
    "Products": Product,
    "Regions": Region,
    "Suppliers": Supplier,
}

GRANTS = [
    Grant(PermissionKind.ALL, on="Customers"),
    Grant(PermissionKind.ALL, on="Products"),
    Grant(PermissionKind.ALL, on="CurrentOrders"),
    Grant(PermissionKind.ALL, on="ExpensiveProducts"),
    Grant(PermissionKind.ALL, on="Orders"),
    Grant(PermissionKind.ALL, on="Employees"),
    Grant(PermissionKind.ALL, on="Regions"),
    Grant(PermissionKind.INSPECT, on="Suppliers"),
    Grant(PermissionKind.READ, on="Suppliers"),
    Grant(PermissionKind.ALL, on="ResetDataSource"),
]

EXPENSIVE_PRICE_THRESHOLD = 50


# ============================================================================
# Entity-set filters
# ============================================================================


def filter_customers(query: Select) -> Select:
    return query.where(Customer.country == "France")


# ============================================================================
# Imperative views (read-only)
# ============================================================================


def expensive_products(context: ApiContext) -> Select:
    return context.get_queryable_source("Products").where(Product.unit_price > EXPENSIVE_PRICE_THRESHOLD)


def current_orders(context: ApiContext) -> Select:
    return context.get_queryable_source("Orders").where(Order.shipped_date.is_(None))


# ============================================================================
# Operations
# ============================================================================


def increase_price(context: ApiContext, product: Product, diff: int) -> None:
    """Raise (or, with a negative diff, lower) the bound product's price."""
    product.unit_price = (product.unit_price or 0.0) + diff
    submit_change(context, "Products", product, ChangeType.UPDATE)


def reset_data_source_operation(context: ApiContext) -> None:
    reset_data_source(context.session)


def most_expensive(context: ApiContext, products: Select) -> float:
    """Highest unit price in the bound collection; 0.0 when it is empty."""
    subquery = products.subquery()
    result = scalar_float(context.session.exec(select(func.max(subquery.c.unit_price))).one())
    return result if result is not None else 0.0


# ============================================================================
# Submit hooks
# ============================================================================


def write_log(text: str) -> None:
    logger.info(text)


def on_updating_products(context: ApiContext, product: Product) -> None:
    write_log(f"{datetime.now()} {product.product_id} is being updated")


def on_inserted_products(context: ApiContext, product: Product) -> None:
    write_log(f"{datetime.now()} {product.product_id} has been inserted")


# ============================================================================
# Model extension
# ============================================================================


class NorthwindModelExtender(ModelBuilder):
    """
    Builds the model from the entity-set map when the store producer leaves it
    to us, then enables auto-expand on Order.Order_Details through a model
    annotation.
    """

    def __init__(self, namespace: str = NAMESPACE):
        super().__init__()
        self.namespace = namespace

    def get_model(self, context: ModelContext) -> Optional[EdmModel]:
        model = super().get_model(context)

        # The store producer only publishes the entity set -> type map
        if model is None:
            collection = context.entity_set_type_map
            if not collection:
                return None

            builder = ConventionModelBuilder(self.namespace)
            for name, model_class in collection.items():
                builder.entity_set(name, model_class)

            # Cleared so nothing further down the line builds the model again
            collection.clear()
            model = builder.get_edm_model()

        order_type = _single(
            [t for t in model.schema_elements if t.name == "Order"],
            "entity type 'Order'",
        )
        order_details = _single(
            [p for p in order_type.declared_properties if p.name == "Order_Details"],
            "property 'Order.Order_Details'",
        )
        if not isinstance(order_details, EdmNavigationProperty):
            raise ModelBuildError("'Order.Order_Details' is not a navigation property")

        model.set_annotation_value(order_details, QueryableRestrictions(auto_expand=True))
        logger.info("Auto-expand enabled on %s.Order_Details", order_type.full_name)
        return model


def _single(candidates, description):
    if len(candidates) != 1:
        raise ModelBuildError(f"Expected exactly one {description} in the model, found {len(candidates)}")
    return candidates[0]


# ============================================================================
# Configuration steps
# ============================================================================


def add_core_services(config: ApiConfiguration) -> ApiConfiguration:
    config.entity_set_filters["Customers"] = filter_customers

    config.views["ExpensiveProducts"] = View("ExpensiveProducts", source="Products", query=expensive_products)
    config.views["CurrentOrders"] = View("CurrentOrders", source="Orders", query=current_orders)

    config.operations["IncreasePrice"] = Operation(
        "IncreasePrice",
        increase_price,
        has_side_effects=True,
        binding="Products",
        parameters=(("diff", int),),
    )
    config.operations["ResetDataSource"] = Operation(
        "ResetDataSource", reset_data_source_operation, has_side_effects=True
    )
    config.operations["MostExpensive"] = Operation(
        "MostExpensive",
        most_expensive,
        binding="Products",
        bound_to_collection=True,
        return_type=float,
    )

    config.submit_hooks[("Products", SubmitEvent.UPDATING)] = on_updating_products
    config.submit_hooks[("Products", SubmitEvent.INSERTED)] = on_inserted_products
    return config


def add_grants(config: ApiConfiguration) -> ApiConfiguration:
    config.permissions = PermissionTable(GRANTS)
    return config


def add_store_provider(config: ApiConfiguration) -> ApiConfiguration:
    config.entity_sets.update(ENTITY_SETS)
    return config.add_model_builder(EntitySetMapProducer(config.entity_sets))


def add_northwind_model_extender(config: ApiConfiguration) -> ApiConfiguration:
    # After the store producer, before the operation/view publisher
    return config.add_model_builder(NorthwindModelExtender(config.namespace))


def add_odata_publisher(config: ApiConfiguration) -> ApiConfiguration:
    return config.add_model_builder(ConventionBasedApiModelBuilder(config))


CONFIGURATION_STEPS = [
    add_core_services,
    add_grants,
    add_store_provider,
    add_northwind_model_extender,
    add_odata_publisher,
]


def create_api() -> ApiConfiguration:
    return configure_api(ApiConfiguration(NAMESPACE), CONFIGURATION_STEPS)


api = create_api()


def get_api() -> ApiConfiguration:
    """FastAPI dependency: the configured API with its model built."""
    api.build_model()
    return api
