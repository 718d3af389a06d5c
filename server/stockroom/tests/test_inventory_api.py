import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stockroom.auth import get_caller_scope
from stockroom.db import Base, get_db
from stockroom.main import app
from stockroom.models import InventoryLocation, Organization, Product
from stockroom.scope import CallerScope


@pytest.fixture()
def api():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    Base.metadata.create_all(engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    with TestingSessionLocal() as db:
        acme = Organization(name="Acme Supply")
        rival = Organization(name="Rival Goods")
        db.add_all([acme, rival])
        db.flush()
        warehouse = InventoryLocation(organization_id=acme.id, name="Main Warehouse", code="WH-1", is_active=True)
        storefront = InventoryLocation(organization_id=acme.id, name="Storefront", code="ST-1", is_active=True)
        widget = Product(organization_id=acme.id, name="Widget", sku="W-1", stock_quantity=0)
        gadget = Product(organization_id=rival.id, name="Gadget", sku="G-1", stock_quantity=0)
        db.add_all([warehouse, storefront, widget, gadget])
        db.commit()
        ids = {
            "organization": acme.id,
            "warehouse": warehouse.id,
            "storefront": storefront.id,
            "widget": widget.id,
            "gadget": gadget.id,
        }

    caller = {"scope": CallerScope(actor_id=7, organization_id=ids["organization"])}
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_caller_scope] = lambda: caller["scope"]
    client = TestClient(app)
    yield client, ids, caller
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_caller_scope, None)


def receive(client, ids, quantity, location="warehouse"):
    response = client.post(
        "/api/inventory/mutations",
        json={
            "product_id": ids["widget"],
            "location_id": ids[location],
            "quantity_change": quantity,
            "movement_type": "stock_in",
            "create_movement": True,
        },
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api):
    client, _, _ = api
    assert client.get("/api/health").json() == {"status": "ok"}
    assert client.get("/").json() == {"status": "ok"}


def test_mutation_endpoint_returns_updated_level(api):
    client, ids, _ = api

    body = receive(client, ids, 40)

    assert body["stock_level"]["quantity_on_hand"] == 40
    assert body["stock_level"]["quantity_available"] == 40
    assert body["previous_available"] == 0
    assert body["movement_id"] is not None

    levels = client.get(f"/api/inventory/products/{ids['widget']}/stock-levels").json()
    assert [(row["location_id"], row["quantity_available"]) for row in levels] == [(ids["warehouse"], 40)]


def test_validated_reduction_beyond_available_is_a_conflict(api):
    client, ids, _ = api
    receive(client, ids, 5)

    response = client.post(
        "/api/inventory/mutations",
        json={
            "product_id": ids["widget"],
            "location_id": ids["warehouse"],
            "quantity_change": -6,
            "movement_type": "sale",
            "validate_availability": True,
        },
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["code"] == "INSUFFICIENT_STOCK"
    assert (detail["requested"], detail["available"]) == (6, 5)
    level = client.get(f"/api/inventory/products/{ids['widget']}/stock-levels/{ids['warehouse']}").json()
    assert level["quantity_available"] == 5


def test_unknown_movement_type_is_rejected(api):
    client, ids, _ = api
    response = client.post(
        "/api/inventory/mutations",
        json={
            "product_id": ids["widget"],
            "location_id": ids["warehouse"],
            "quantity_change": 1,
            "movement_type": "teleport",
        },
    )
    assert response.status_code == 422


def test_foreign_product_is_forbidden(api):
    client, ids, _ = api
    response = client.post(
        "/api/inventory/mutations",
        json={
            "product_id": ids["gadget"],
            "location_id": ids["warehouse"],
            "quantity_change": 1,
            "movement_type": "stock_in",
        },
    )
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "SCOPE_VIOLATION"


def test_missing_stock_level_is_not_found(api):
    client, ids, _ = api
    response = client.get(f"/api/inventory/products/{ids['widget']}/stock-levels/{ids['storefront']}")
    assert response.status_code == 404


def test_transfer_endpoint_moves_stock(api):
    client, ids, _ = api
    receive(client, ids, 10)

    response = client.post(
        "/api/inventory/transfers",
        json={
            "product_id": ids["widget"],
            "from_location_id": ids["warehouse"],
            "to_location_id": ids["storefront"],
            "quantity": 4,
        },
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["outgoing"]["stock_level"]["quantity_available"] == 6
    assert body["incoming"]["stock_level"]["quantity_available"] == 4


def test_reservation_round_trip(api):
    client, ids, _ = api
    receive(client, ids, 10)
    hold = {
        "product_id": ids["widget"],
        "location_id": ids["warehouse"],
        "reserved_for_type": "order",
        "reserved_for_id": 501,
    }

    created = client.post("/api/inventory/reservations", json={**hold, "quantity": 3})
    assert created.status_code == 201, created.text
    assert created.json()["status"] == "active"
    active = client.get(f"/api/inventory/products/{ids['widget']}/reservations").json()
    assert [row["quantity"] for row in active] == [3]

    released = client.post("/api/inventory/reservations/release", json=hold)
    assert released.json() == {"released_quantity": 3}
    level = client.get(f"/api/inventory/products/{ids['widget']}/stock-levels/{ids['warehouse']}").json()
    assert (level["quantity_available"], level["quantity_reserved"]) == (10, 0)


def test_reservation_sweep_requires_super_admin(api):
    client, ids, caller = api
    assert client.post("/api/inventory/reservations/expire").status_code == 403

    caller["scope"] = CallerScope(actor_id=1, is_super_admin=True)
    assert client.post("/api/inventory/reservations/expire").json() == {"expired": 0}


def test_adjustment_endpoints(api):
    client, ids, _ = api
    receive(client, ids, 10)

    created = client.post(
        "/api/inventory/adjustments",
        json={
            "product_id": ids["widget"],
            "location_id": ids["warehouse"],
            "adjustment_type": "count_variance",
            "quantity_after": 8,
        },
    )
    assert created.status_code == 201, created.text
    adjustment = created.json()
    assert adjustment["quantity_change"] == -2

    approved = client.post(f"/api/inventory/adjustments/{adjustment['id']}/approve")
    assert approved.json()["approved_by_id"] == 7
    blocked = client.delete(f"/api/inventory/adjustments/{adjustment['id']}")
    assert blocked.status_code == 409


def test_transaction_history_endpoint(api):
    client, ids, _ = api
    receive(client, ids, 10)
    receive(client, ids, 5)

    history = client.get(f"/api/inventory/transactions/products/{ids['widget']}", params={"limit": 1}).json()
    assert history["total"] == 2
    assert history["has_more"] is True
    assert [row["quantity_change"] for row in history["transactions"]] == [5]

    bad = client.get(f"/api/inventory/transactions/products/{ids['widget']}", params={"type": "teleport"})
    assert bad.status_code == 400
    assert bad.json()["detail"]["code"] == "INVALID_TRANSACTION_TYPE"


def test_batch_and_serial_endpoints(api):
    client, ids, _ = api

    batch = client.post(
        "/api/inventory/batches",
        json={
            "product_id": ids["widget"],
            "location_id": ids["warehouse"],
            "batch_number": "LOT-1",
            "quantity": 2,
            "expiration_date": "2099-01-01",
        },
    )
    assert batch.status_code == 201, batch.text
    batch_id = batch.json()["id"]
    assert batch.json()["quantity_remaining"] == 2

    duplicate = client.post(
        "/api/inventory/batches",
        json={"product_id": ids["widget"], "location_id": ids["warehouse"], "batch_number": "LOT-1", "quantity": 1},
    )
    assert duplicate.status_code == 409

    serials = client.post(
        "/api/inventory/serial-numbers",
        json={"batch_id": batch_id, "serial_numbers": ["SN-1", "SN-2"]},
    )
    assert serials.status_code == 201, serials.text
    serial_id = serials.json()[0]["id"]

    sold = client.post(f"/api/inventory/serial-numbers/{serial_id}/sold")
    assert sold.json()["status"] == "sold"
    available = client.get("/api/inventory/serial-numbers/available", params={"product_id": ids["widget"]}).json()
    assert [row["serial_number"] for row in available] == ["SN-2"]
    assert client.delete(f"/api/inventory/serial-numbers/{serial_id}").status_code == 409

    listing = client.get("/api/inventory/batches", params={"product_id": ids["widget"]}).json()
    assert listing["total"] == 1
