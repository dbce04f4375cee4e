import pytest
from fastapi.testclient import TestClient

from northwind.api import GRANTS
from northwind.services.errors import AuthorizationError
from northwind.services.security import Grant, PermissionKind, PermissionTable


@pytest.fixture
def table():
    return PermissionTable(GRANTS)


def test_all_implies_every_kind(table):
    """An All grant allows every permission kind on that name"""
    for kind in PermissionKind:
        assert table.is_allowed("Products", kind)


def test_unknown_name_is_denied_everything(table):
    """Names absent from the table are denied, including Inspect"""
    for kind in PermissionKind:
        assert not table.is_allowed("Shippers", kind)
        assert not table.is_allowed("Order_Details", kind)


def test_suppliers_is_read_only(table):
    """Suppliers carries Inspect and Read only"""
    assert table.is_allowed("Suppliers", PermissionKind.INSPECT)
    assert table.is_allowed("Suppliers", PermissionKind.READ)
    assert not table.is_allowed("Suppliers", PermissionKind.CREATE)
    assert not table.is_allowed("Suppliers", PermissionKind.UPDATE)
    assert not table.is_allowed("Suppliers", PermissionKind.DELETE)


def test_lookup_is_exact_match(table):
    """No prefix or case-insensitive matching on names"""
    assert not table.is_allowed("products", PermissionKind.READ)
    assert not table.is_allowed("Product", PermissionKind.READ)


def test_require_raises_authorization_error(table):
    """require() names the entity set and the missing permission"""
    with pytest.raises(AuthorizationError) as exc_info:
        table.require("Suppliers", PermissionKind.DELETE)

    assert exc_info.value.name == "Suppliers"
    assert exc_info.value.permission == "Delete"


def test_role_restricted_grant():
    """A grant with `to` applies only to callers holding that role"""
    table = PermissionTable(
        [
            Grant(PermissionKind.READ, on="Orders"),
            Grant(PermissionKind.UPDATE, on="Orders", to="sales"),
        ]
    )

    assert table.is_allowed("Orders", PermissionKind.READ)
    assert not table.is_allowed("Orders", PermissionKind.UPDATE)
    assert table.is_allowed("Orders", PermissionKind.UPDATE, roles=["sales"])
    assert table.granted("Orders", ["sales"]) == frozenset({PermissionKind.READ, PermissionKind.UPDATE})
    assert table.names == ("Orders",)


def test_empty_table_denies_everything():
    """Fail closed when no grants are configured"""
    table = PermissionTable([])

    assert table.granted("Products") == frozenset()
    assert not table.is_allowed("Products", PermissionKind.READ)


def test_suppliers_readable_over_http(seeded, client: TestClient):
    """Reading Suppliers succeeds"""
    response = client.get("/odata/Suppliers")

    assert response.status_code == 200
    assert {s["SupplierId"] for s in response.json()["value"]} == {1, 2, 4, 18}


def test_suppliers_write_is_forbidden(seeded, client: TestClient):
    """Create, update and delete on Suppliers return 403"""
    create = client.post("/odata/Suppliers", json={"SupplierId": 99, "CompanyName": "Nope"})
    update = client.patch("/odata/Suppliers(1)", json={"CompanyName": "Renamed"})
    delete = client.delete("/odata/Suppliers(1)")

    assert create.status_code == 403
    assert update.status_code == 403
    assert delete.status_code == 403
    assert create.json()["error"]["code"] == "AuthorizationError"

    # Nothing changed
    supplier = client.get("/odata/Suppliers(1)").json()
    assert supplier["CompanyName"] == "Exotic Liquids"


def test_ungranted_entity_set_is_forbidden(seeded, client: TestClient):
    """Order_Details is declared but has no grant"""
    response = client.get("/odata/Order_Details")

    assert response.status_code == 403


def test_service_document_lists_only_inspectable_sets(client: TestClient):
    """The service document hides entity sets without Inspect"""
    response = client.get("/odata/")

    assert response.status_code == 200
    names = {entry["name"] for entry in response.json()["value"]}
    assert names == {
        "Customers",
        "Employees",
        "Orders",
        "Products",
        "Regions",
        "Suppliers",
        "ExpensiveProducts",
        "CurrentOrders",
    }
