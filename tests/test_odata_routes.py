from fastapi.testclient import TestClient
from sqlmodel import Session, select

from northwind.models import Employee, Order, OrderDetail


def test_health(client: TestClient):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["model_built"] is True


def test_service_document(client: TestClient):
    response = client.get("/odata/")

    assert response.status_code == 200
    body = response.json()
    assert body["@odata.context"] == "$metadata"
    assert {"name": "Products", "kind": "EntitySet", "url": "Products"} in body["value"]


def test_metadata_marks_order_details_auto_expand(client: TestClient):
    """$metadata carries the QueryableRestrictions annotation"""
    response = client.get("/odata/$metadata")

    assert response.status_code == 200
    schema = response.json()["Northwind"]
    order_details = schema["Order"]["Order_Details"]
    assert order_details["$Kind"] == "NavigationProperty"
    assert order_details["$Collection"] is True
    assert order_details["@Org.OData.Capabilities.V1.QueryableRestrictions"] == {"AutoExpand": True}
    assert "@Org.OData.Capabilities.V1.QueryableRestrictions" not in schema["Product"]["Order_Details"]


def test_metadata_container(client: TestClient):
    """Ungranted entity sets are absent; unbound actions are listed"""
    container = client.get("/odata/$metadata").json()["Northwind"]["Container"]

    assert container["Products"] == {"$Collection": True, "$Type": "Northwind.Product"}
    assert container["ExpensiveProducts"]["$Type"] == "Northwind.Product"
    assert "Order_Details" not in container
    assert container["ResetDataSource"] == {"$Action": "Northwind.ResetDataSource"}


def test_metadata_operations(client: TestClient):
    schema = client.get("/odata/$metadata").json()["Northwind"]

    increase = schema["IncreasePrice"][0]
    assert increase["$Kind"] == "Action"
    assert increase["$IsBound"] is True
    assert increase["$Parameter"][1] == {"$Name": "diff", "$Type": "Edm.Int32"}
    assert schema["MostExpensive"][0]["$ReturnType"] == {"$Type": "Edm.Double"}


# ============================================================================
# Customers filter
# ============================================================================


def test_customers_only_french(seeded, client: TestClient):
    """The Customers entity set only ever shows customers in France"""
    response = client.get("/odata/Customers")

    assert response.status_code == 200
    customers = response.json()["value"]
    assert {c["CustomerId"] for c in customers} == {"BLONP", "BONAP", "VINET"}
    assert all(c["Country"] == "France" for c in customers)


def test_customers_filter_cannot_be_bypassed(seeded, client: TestClient):
    """Non-French customers are invisible to $filter, keys, updates and deletes"""
    by_filter = client.get("/odata/Customers", params={"$filter": "Country eq 'Germany'"})
    by_key = client.get("/odata/Customers('ALFKI')")
    update = client.patch("/odata/Customers('ALFKI')", json={"City": "Munich"})
    delete = client.delete("/odata/Customers('ALFKI')")

    assert by_filter.json()["value"] == []
    assert by_key.status_code == 404
    assert update.status_code == 404
    assert delete.status_code == 404


def test_customers_count_is_filtered(seeded, client: TestClient):
    response = client.get("/odata/Customers", params={"$count": "true", "$top": "0"})

    assert response.json()["@odata.count"] == 3
    assert response.json()["value"] == []


# ============================================================================
# Auto-expand
# ============================================================================


def test_orders_auto_expand_order_details(seeded, client: TestClient):
    """Order_Details comes back without $expand"""
    response = client.get("/odata/Orders(10248)")

    assert response.status_code == 200
    order = response.json()
    assert order["@odata.context"] == "$metadata#Orders/$entity"
    assert {d["ProductId"] for d in order["Order_Details"]} == {38, 39}
    assert "Customer" not in order


def test_orders_collection_auto_expands(seeded, client: TestClient):
    response = client.get("/odata/Orders", params={"$filter": "OrderId eq 11077"})

    orders = response.json()["value"]
    assert len(orders) == 1
    assert len(orders[0]["Order_Details"]) == 2


def test_auto_expand_combines_with_expand(seeded, client: TestClient):
    response = client.get("/odata/Orders(10331)", params={"$expand": "Customer"})

    order = response.json()
    assert order["Customer"]["CustomerId"] == "BONAP"
    assert order["Order_Details"][0]["Quantity"] == 15


def test_products_do_not_auto_expand(seeded, client: TestClient):
    product = client.get("/odata/Products(38)").json()

    assert "Order_Details" not in product


def test_expand_applies_target_set_filter(seeded, client: TestClient):
    """An expanded Customer outside France is hidden like it is in Customers"""
    foreign = client.get("/odata/Orders(10643)", params={"$expand": "Customer"})
    french = client.get("/odata/Orders(10248)", params={"$expand": "Customer"})

    assert foreign.status_code == 200
    assert foreign.json()["Customer"] is None
    assert french.json()["Customer"]["CustomerId"] == "VINET"


def test_expand_filter_ignores_relationships_already_loaded(seeded, client: TestClient):
    order = seeded.get(Order, 10643)
    assert order.customer.customer_id == "ALFKI"

    response = client.get("/odata/Orders(10643)", params={"$expand": "Customer"})

    assert response.json()["Customer"] is None


def test_expand_filter_on_collection(seeded, client: TestClient):
    response = client.get("/odata/Orders", params={"$expand": "Customer", "$orderby": "OrderId"})

    customers = {o["OrderId"]: o["Customer"] for o in response.json()["value"]}
    assert customers[10643] is None
    assert customers[10265]["CustomerId"] == "BLONP"


def test_expand_requires_read_on_target_set(seeded, client: TestClient):
    """Order_Details has no grant, so it cannot be reached through $expand"""
    response = client.get("/odata/Products(39)", params={"$expand": "Order_Details"})

    assert response.status_code == 403
    assert response.json()["error"]["code"] == "AuthorizationError"
    assert len(client.get("/odata/Orders(10248)").json()["Order_Details"]) == 2


# ============================================================================
# CRUD
# ============================================================================


def test_create_product(seeded, client: TestClient):
    response = client.post(
        "/odata/Products",
        json={"ProductName": "Queso Cabrales", "SupplierId": 2, "UnitPrice": 21.0, "UnitsInStock": 22},
    )

    assert response.status_code == 201
    product = response.json()
    assert product["ProductName"] == "Queso Cabrales"
    assert product["Discontinued"] is False

    fetched = client.get(f"/odata/Products({product['ProductId']})")
    assert fetched.status_code == 200
    assert fetched.json()["UnitPrice"] == 21.0


def test_create_product_requires_name(seeded, client: TestClient):
    response = client.post("/odata/Products", json={"UnitPrice": 5.0})

    assert response.status_code == 400


def test_create_rejects_unknown_property(seeded, client: TestClient):
    response = client.post("/odata/Products", json={"ProductName": "X", "Colour": "red"})

    assert response.status_code == 400


def test_create_duplicate_key_is_conflict(seeded, client: TestClient):
    response = client.post("/odata/Products", json={"ProductId": 1, "ProductName": "Chai again"})

    assert response.status_code == 409


def test_update_product(seeded, client: TestClient):
    response = client.patch("/odata/Products(2)", json={"UnitPrice": 20.5, "Discontinued": True})

    assert response.status_code == 200
    assert response.json()["UnitPrice"] == 20.5
    assert response.json()["Discontinued"] is True
    assert response.json()["ProductName"] == "Chang"


def test_update_cannot_change_key(seeded, client: TestClient):
    response = client.patch("/odata/Products(2)", json={"ProductId": 200})

    assert response.status_code == 400


def test_delete_product(seeded, client: TestClient):
    created = client.post("/odata/Products", json={"ProductName": "Short-lived"}).json()

    response = client.delete(f"/odata/Products({created['ProductId']})")

    assert response.status_code == 204
    assert client.get(f"/odata/Products({created['ProductId']})").status_code == 404


def test_delete_order_removes_its_details(seeded, session: Session, client: TestClient):
    response = client.delete("/odata/Orders(10248)")

    assert response.status_code == 204
    session.expire_all()
    assert session.exec(select(OrderDetail).where(OrderDetail.order_id == 10248)).all() == []
    assert client.get("/odata/Orders(10248)").status_code == 404


def test_delete_product_with_order_details_is_conflict(seeded, client: TestClient):
    """A product still referenced by order details stays put"""
    response = client.delete("/odata/Products(39)")

    assert response.status_code == 409
    assert response.json()["error"]["code"] == "EntityConflictError"
    assert client.get("/odata/Products(39)").status_code == 200
    assert {d["ProductId"] for d in client.get("/odata/Orders(10248)").json()["Order_Details"]} == {38, 39}


def test_customer_key_with_comma(seeded, client: TestClient):
    created = client.post("/odata/Customers", json={"CustomerId": "A,B", "CompanyName": "Virgule SA", "Country": "France"})

    response = client.get("/odata/Customers('A,B')")

    assert created.status_code == 201
    assert response.status_code == 200
    assert response.json()["CompanyName"] == "Virgule SA"


def test_seeded_datetimes_are_naive(seeded, client: TestClient):
    """Stored date/times round-trip without an offset"""
    employee = client.get("/odata/Employees(1)").json()

    assert employee["HireDate"] == "1992-05-01T00:00:00"
    assert seeded.get(Employee, 1).hire_date.tzinfo is None


def test_update_rejects_value_of_wrong_type(seeded, client: TestClient):
    response = client.patch("/odata/Products(2)", json={"UnitPrice": "abc"})

    assert response.status_code == 400
    assert client.get("/odata/Products(2)").json()["UnitPrice"] == 19.0


def test_update_order_shipped_date(seeded, client: TestClient):
    """Shipping an order removes it from CurrentOrders"""
    response = client.patch("/odata/Orders(10331)", json={"ShippedDate": "1996-10-20T00:00:00Z"})

    assert response.status_code == 200
    assert response.json()["ShippedDate"] == "1996-10-20T00:00:00"
    ids = {o["OrderId"] for o in client.get("/odata/CurrentOrders").json()["value"]}
    assert ids == {11077}


# ============================================================================
# Errors
# ============================================================================


def test_unknown_entity_set(client: TestClient):
    response = client.get("/odata/Shippers")

    assert response.status_code == 404
    assert response.json()["error"]["code"] == "EntityNotFoundError"


def test_unknown_key(seeded, client: TestClient):
    assert client.get("/odata/Products(12345)").status_code == 404


def test_malformed_key(seeded, client: TestClient):
    assert client.get("/odata/Products('abc')").status_code == 400


def test_patch_without_key(seeded, client: TestClient):
    assert client.patch("/odata/Products", json={"UnitPrice": 1.0}).status_code == 400


def test_roles_header_is_accepted(seeded, client: TestClient):
    response = client.get("/odata/Products", headers={"X-Roles": "sales, admin"})

    assert response.status_code == 200
