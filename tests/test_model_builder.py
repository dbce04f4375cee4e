import pytest

from northwind.api import ENTITY_SETS, NorthwindModelExtender, create_api
from northwind.models import Order, Product, Region
from northwind.services.edm import EdmEntityType, EdmModel, QueryableRestrictions
from northwind.services.errors import ModelBuildError
from northwind.services.model_builder import (
    ConventionModelBuilder,
    EntitySetMapProducer,
    ModelBuilder,
    ModelContext,
    to_edm_name,
)


class FixedModel(ModelBuilder):
    """Inner handler that returns a prebuilt model"""

    def __init__(self, model):
        super().__init__()
        self.model = model

    def get_model(self, context):
        return self.model


def _extender_over_store(entity_sets):
    extender = NorthwindModelExtender()
    extender.inner_handler = EntitySetMapProducer(entity_sets)
    return extender


def test_to_edm_name():
    assert to_edm_name("unit_price") == "UnitPrice"
    assert to_edm_name("order_id") == "OrderId"
    assert to_edm_name("city") == "City"


def test_convention_builder_maps_columns_and_relationships():
    """Keys, structural and navigation properties come from the SQLModel mapping"""
    model = ConventionModelBuilder("Northwind").entity_set("Orders", Order).get_edm_model()

    order = model.find_type("Order")
    assert order.full_name == "Northwind.Order"
    assert order.key == ["OrderId"]
    assert order.find_structural("ShippedDate").nullable
    assert order.find_structural("ShippedDate").type_name == "Edm.DateTimeOffset"

    details = order.find_navigation("Order_Details")
    assert details.is_collection
    assert details.target_type == "OrderDetail"
    assert details.partner == "Order"

    # Related types are reachable even without their own entity set
    assert model.find_type("OrderDetail").key == ["OrderId", "ProductId"]
    assert list(model.entity_sets) == ["Orders"]


def test_extender_builds_model_and_annotates_order_details():
    """The extender synthesizes the model and marks Order.Order_Details auto-expand"""
    model = _extender_over_store(ENTITY_SETS).get_model(ModelContext())

    assert model is not None
    order = model.find_type("Order")
    details = order.find_navigation("Order_Details")
    annotation = model.get_annotation_value(details, QueryableRestrictions)
    assert annotation == QueryableRestrictions(auto_expand=True)
    assert model.auto_expand_properties(order) == [details]


def test_extender_only_annotates_order_details():
    """Other navigation properties are left alone"""
    model = _extender_over_store(ENTITY_SETS).get_model(ModelContext())

    product = model.find_type("Product")
    assert model.auto_expand_properties(product) == []
    customer = model.find_type("Customer")
    assert model.auto_expand_properties(customer) == []


def test_extender_clears_entity_set_map():
    """Once consumed, the map is emptied so nothing downstream rebuilds the model"""
    extender = _extender_over_store(ENTITY_SETS)
    context = ModelContext()

    extender.get_model(context)

    assert context.entity_set_type_map == {}


def test_extender_second_invocation_returns_none():
    """The store publishes once; a second pass has nothing to build from"""
    extender = _extender_over_store(ENTITY_SETS)

    assert extender.get_model(ModelContext()) is not None
    assert extender.get_model(ModelContext()) is None


def test_extender_annotates_model_from_inner_handler():
    """A model produced further down the chain is annotated, not rebuilt"""
    inner_model = ConventionModelBuilder("Northwind").entity_set("Orders", Order).get_edm_model()
    extender = NorthwindModelExtender()
    extender.inner_handler = FixedModel(inner_model)
    context = ModelContext(entity_set_type_map={"Products": Product})

    model = extender.get_model(context)

    assert model is inner_model
    assert context.entity_set_type_map == {"Products": Product}
    assert model.auto_expand_properties(model.find_type("Order"))


def test_extender_fails_without_order_type():
    """A model with no Order entity type is a build error"""
    extender = _extender_over_store({"Regions": Region})

    with pytest.raises(ModelBuildError, match="entity type 'Order'"):
        extender.get_model(ModelContext())


def test_extender_fails_without_order_details_property():
    """An Order type lacking Order_Details is a build error"""
    model = EdmModel("Northwind")
    model.schema_elements.append(EdmEntityType(name="Order", namespace="Northwind", model_class=Order))
    extender = NorthwindModelExtender()
    extender.inner_handler = FixedModel(model)

    with pytest.raises(ModelBuildError, match="Order.Order_Details"):
        extender.get_model(ModelContext())


def test_extender_fails_on_ambiguous_order_type():
    """Two types named Order is a build error"""
    model = EdmModel("Northwind")
    model.schema_elements.append(EdmEntityType(name="Order", namespace="Northwind", model_class=Order))
    model.schema_elements.append(EdmEntityType(name="Order", namespace="Other", model_class=Order))
    extender = NorthwindModelExtender()
    extender.inner_handler = FixedModel(model)

    with pytest.raises(ModelBuildError, match="found 2"):
        extender.get_model(ModelContext())


def test_extender_without_map_or_model_returns_none():
    extender = NorthwindModelExtender()

    assert extender.get_model(ModelContext()) is None


def test_configured_api_publishes_views_and_operations():
    """The full chain adds views and operations on top of the extended model"""
    config = create_api()
    model = config.build_model()

    assert model.find_entity_set("ExpensiveProducts").is_view
    assert model.find_entity_set("ExpensiveProducts").entity_type is model.find_type("Product")
    assert model.find_entity_set("CurrentOrders").entity_type is model.find_type("Order")

    increase = model.find_operation("Northwind.IncreasePrice")
    assert increase.is_action
    assert increase.binding_type == "Northwind.Product"
    assert increase.parameters == [("diff", "Edm.Int32")]

    most_expensive = model.find_operation("MostExpensive")
    assert not most_expensive.is_action
    assert most_expensive.binding_type == "Collection(Northwind.Product)"
    assert most_expensive.return_type == "Edm.Double"

    reset = model.find_operation("ResetDataSource")
    assert reset.is_action
    assert not reset.is_bound


def test_build_model_is_cached():
    config = create_api()

    assert config.build_model() is config.build_model()


def test_build_model_without_builder_fails():
    from northwind.services.api_config import ApiConfiguration

    with pytest.raises(ModelBuildError):
        ApiConfiguration("Empty").build_model()
