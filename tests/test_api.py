import os
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from supplyledger import app
from supplyledger.core.config import settings
from supplyledger.core.errors import Contention
from supplyledger.db.session import Base, get_db
from supplyledger.routers.api_supply import get_service

API = "/api/v1/supply-orders"


@pytest.fixture()
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture()
def api_key(monkeypatch):
    monkeypatch.setattr(settings, "API_KEY", "test-key")
    return {"X-API-Key": "test-key"}


def _create(client, headers=None, **overrides):
    payload = {
        "customer_id": "cust-1",
        "store_id": "store-1",
        "items": [{"product_id": "sku-1", "quantity": 10, "unit_price": "100"}],
    }
    payload.update(overrides)
    response = client.post(API, json=payload, headers=headers or {})
    assert response.status_code == 201, response.text
    return response.json()


def test_full_lifecycle_over_http(client):
    order = _create(client)
    item_id = order["items"][0]["id"]
    assert order["status"] == "supplied"
    assert order["balance"]["amount_owed"] == "1000.00"

    response = client.post(
        f"{API}/{order['id']}/returns",
        json={"items": [{"item_id": item_id, "quantity": 4, "condition": "damaged"}]},
    )
    assert response.status_code == 201
    assert response.json()["status"] == "partially_returned"

    response = client.post(f"{API}/{order['id']}/accept-return", json={"items": [{"item_id": item_id, "quantity": 4}]})
    assert response.status_code == 201
    assert response.json()["totals"]["total_awaiting_acceptance"] == 0

    response = client.post(f"{API}/{order['id']}/payments", json={"amount": "600", "method": "card"})
    body = response.json()
    assert response.status_code == 201
    assert body["status"] == "completed"
    assert body["balance"]["remaining_balance"] == "0.00"
    assert body["payments"][0]["payment_number"].startswith("PAY-")

    response = client.get(f"{API}/{order['id']}")
    assert response.status_code == 200
    assert response.json()["returns"][0]["lines"][0]["condition"] == "damaged"

    response = client.get(f"{API}/{order['id']}/audit")
    assert response.json()["consistent"] is True

    response = client.get("/api/v1/inventory/summary", params={"store_id": "store-1"})
    assert response.json()[0]["quantity"] == 4


def test_domain_errors_use_the_error_envelope(client):
    order = _create(client)
    item_id = order["items"][0]["id"]

    response = client.post(f"{API}/{order['id']}/returns", json={"items": [{"item_id": item_id, "quantity": 11}]})
    assert response.status_code == 422
    body = response.json()
    assert body["code"] == "invalid_quantity"
    assert body["details"]["lines"][0]["available"] == 10

    response = client.post(f"{API}/{order['id']}/payments", json={"amount": "1000.01"})
    assert response.status_code == 422
    assert response.json()["code"] == "exceeds_balance"

    response = client.post(f"{API}/{order['id']}/payments", json={"amount": "-1"})
    assert response.json()["code"] == "exceeds_balance"

    response = client.post(f"{API}/999999/cancel")
    assert response.status_code == 404
    assert response.json()["code"] == "order_not_found"

    client.post(f"{API}/{order['id']}/cancel")
    response = client.post(f"{API}/{order['id']}/payments", json={"amount": "1"})
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_request_validation_errors(client):
    response = client.post(API, json={"customer_id": "cust-1", "store_id": "store-1", "items": "nope"})

    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"

    response = client.post(
        API,
        json={"customer_id": "cust-1", "store_id": "store-1", "items": []},
    )
    assert response.status_code == 422
    assert response.json()["code"] == "invalid_quantity"


def test_contention_maps_to_503_with_retry_after(client):
    class BusyService:
        def process_payment(self, *args, **kwargs):
            raise Contention("supply order 1 is busy; retry the payment", details={"order_id": 1, "attempts": 5})

    app.dependency_overrides[get_service] = lambda: BusyService()

    response = client.post(f"{API}/1/payments", json={"amount": "1"})

    assert response.status_code == 503
    assert response.headers["Retry-After"] == "1"
    assert response.json()["code"] == "contention"


def test_store_header_scopes_lookups(client):
    order = _create(client)

    response = client.get(f"{API}/{order['id']}", headers={"X-Store-ID": "store-2"})
    assert response.status_code == 404
    assert response.json()["code"] == "order_not_found"

    response = client.get(API, headers={"X-Store-ID": "store-1"})
    assert [row["id"] for row in response.json()] == [order["id"]]

    response = client.get(API, params={"store_id": "store-1"}, headers={"X-Store-ID": "store-2"})
    assert response.status_code == 403


def test_pending_returns_and_stats_routes(client):
    order = _create(client, expected_return_date="2020-01-01")
    item_id = order["items"][0]["id"]
    client.post(f"{API}/{order['id']}/returns", json={"items": [{"item_id": item_id, "quantity": 2}]})

    response = client.get(f"{API}/pending-returns", params={"store_id": "store-1"})
    assert response.status_code == 200
    rows = response.json()
    assert rows[0]["order_id"] == order["id"]
    assert rows[0]["quantity_pending"] == 2
    assert rows[0]["is_overdue"] is True

    response = client.get(f"{API}/stats", params={"store_id": "store-1"})
    stats = response.json()
    assert stats["total_orders"] == 1
    assert stats["overdue_orders"] == 1
    assert stats["pending_returns"] == 1

    response = client.get("/api/v1/supply-returns", params={"store_id": "store-1"})
    assert response.json()[0]["return_number"].startswith("RET-")

    response = client.get("/api/v1/supply-payments")
    assert response.status_code == 400


def test_delete_requires_admin_scope(client, api_key):
    order = _create(client, headers=api_key)

    response = client.post("/api/v1/auth/token", json={"apiKey": "test-key", "subject": "clerk", "scopes": ["supply:write"]})
    assert response.status_code == 200
    clerk = {"Authorization": f"Bearer {response.json()['access_token']}"}

    response = client.delete(f"{API}/{order['id']}", headers=clerk)
    assert response.status_code == 403

    response = client.post("/api/v1/auth/token", json={"apiKey": "test-key", "scopes": [settings.ADMIN_SCOPE]})
    admin = {"Authorization": f"Bearer {response.json()['access_token']}"}

    response = client.delete(f"{API}/{order['id']}", headers=admin)
    assert response.status_code == 204
    assert client.get(f"{API}/{order['id']}", headers=api_key).status_code == 404


def test_missing_credentials_are_rejected_when_api_key_is_set(client, api_key):
    response = client.get(f"{API}/1")
    assert response.status_code == 401
    assert response.json()["code"] == "http_error"

    response = client.get(f"{API}/1", headers={"X-API-Key": "wrong"})
    assert response.status_code == 401


def test_token_pinned_to_store_overrides_header(client, api_key):
    order = _create(client, headers=api_key)
    response = client.post("/api/v1/auth/token", json={"apiKey": "test-key", "storeId": "store-2"})
    pinned = {"Authorization": f"Bearer {response.json()['access_token']}", "X-Store-ID": "store-1"}

    response = client.get(f"{API}/{order['id']}", headers=pinned)

    assert response.status_code == 404


def test_stock_credit_dispatch_route(client):
    response = client.post(f"{API}/stock-credits/dispatch")

    assert response.status_code == 200
    assert response.json() == {"delivered": [], "failed": []}


def test_token_exchange_validates_scopes_and_describes_principal(client, api_key):
    response = client.post("/api/v1/auth/token", json={"apiKey": "test-key", "scopes": ["supply:everything"]})
    assert response.status_code == 400

    response = client.post(
        "/api/v1/auth/token",
        json={"apiKey": "test-key", "subject": "clerk-7", "storeId": "store-1", "scopes": ["supply:write"]},
    )
    tokens = response.json()

    response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert response.json() == {
        "subject": "jwt:clerk-7",
        "scheme": "jwt",
        "scopes": ["supply:write"],
        "store_id": "store-1",
        "can_delete": False,
    }

    response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401

    response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200


def test_patch_updates_order_metadata(client):
    order = _create(client, notes="draft", expected_return_date="2026-01-10")

    response = client.patch(f"{API}/{order['id']}", json={"expected_return_date": "2026-03-01"})

    assert response.status_code == 200
    body = response.json()
    assert body["expected_return_date"] == "2026-03-01"
    assert body["notes"] == "draft"
    assert body["version"] == order["version"] + 1

    client.post(f"{API}/{order['id']}/cancel")
    response = client.patch(f"{API}/{order['id']}", json={"notes": "late"})
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_transition"


def test_sub_cent_price_is_rejected(client):
    payload = {
        "customer_id": "cust-1",
        "store_id": "store-1",
        "items": [{"product_id": "sku-1", "quantity": 3, "unit_price": "0.333"}],
    }

    response = client.post(API, json=payload)

    assert response.status_code == 422
    assert response.json()["code"] == "invalid_quantity"


def test_store_pinned_token_cannot_dispatch_or_read_other_stores(client, api_key):
    response = client.post(
        "/api/v1/auth/token",
        json={"apiKey": "test-key", "storeId": "store-1", "scopes": ["supply:write"]},
    )
    pinned = {"Authorization": f"Bearer {response.json()['access_token']}"}

    response = client.post(f"{API}/stock-credits/dispatch", headers=pinned)
    assert response.status_code == 403

    response = client.get("/api/v1/inventory/events", params={"store_id": "store-2"}, headers=pinned)
    assert response.status_code == 403

    response = client.get("/api/v1/inventory/events", params={"store_id": "store-1"}, headers=pinned)
    assert response.status_code == 200

    response = client.post(f"{API}/stock-credits/dispatch", headers=api_key)
    assert response.status_code == 200
