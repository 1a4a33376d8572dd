import json
import os
import sys
from pathlib import Path

import httpx
import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from supplyledger.core.config import settings
from supplyledger.core.errors import CollaboratorUnavailable
from supplyledger.crud.inventory import get_stock_level, list_inventory_events
from supplyledger.db.session import Base
from supplyledger.models import StockCredit, SupplyAcceptance
from supplyledger.routers.api_supply import get_service
from supplyledger.services.collaborators import HttpInventoryClient, LedgerInventory
from supplyledger.services.lifecycle import NewItem, SupplyOrderService


@pytest.fixture()
def db_session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False})
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


class FlakyInventory:
    """Fails until ``up`` is set, then credits the local ledger."""

    def __init__(self, db):
        self.ledger = LedgerInventory(db)
        self.up = False
        self.calls = []

    def increment_stock(self, product_id, store_id, quantity, *, dedupe_key):
        self.calls.append(dedupe_key)
        if not self.up:
            raise CollaboratorUnavailable("inventory offline")
        self.ledger.increment_stock(product_id, store_id, quantity, dedupe_key=dedupe_key)


def _accepted_order(service, quantity=3):
    order = service.create_order(
        store_id="store-1",
        customer_id="cust-1",
        items=[
            NewItem(product_id="sku-1", quantity=10, unit_price="5"),
            NewItem(product_id="sku-2", quantity=10, unit_price="5"),
        ],
    )
    first, second = (item.id for item in order.items)
    service.process_return(
        order.id,
        [{"item_id": first, "quantity": quantity}, {"item_id": second, "quantity": 1}],
    )
    return service.accept_return(
        order.id,
        [
            {"item_id": first, "quantity": 1},
            {"item_id": first, "quantity": quantity - 1},
            {"item_id": second, "quantity": 1},
        ],
    )


def test_acceptance_writes_one_credit_per_item(db_session):
    service = SupplyOrderService(db_session)

    order = _accepted_order(service)

    credits = db_session.execute(select(StockCredit).order_by(StockCredit.id)).scalars().all()
    acceptance_id = order.acceptances[0].id
    assert [c.dedupe_key for c in credits] == [
        f"acceptance:{acceptance_id}:item:{order.items[0].id}",
        f"acceptance:{acceptance_id}:item:{order.items[1].id}",
    ]
    assert [c.quantity for c in credits] == [3, 1]
    assert all(c.delivered_at for c in credits)
    assert order.pending_stock_credits == 0
    assert get_stock_level(db_session, "sku-1", "store-1") == 3


def test_failed_delivery_keeps_acceptance_and_leaves_credit_pending(db_session):
    inventory = FlakyInventory(db_session)
    service = SupplyOrderService(db_session, inventory=inventory)

    order = _accepted_order(service)

    assert order.items[0].quantity_accepted == 3
    assert order.pending_stock_credits == 2
    credit = order.stock_credits[0]
    assert credit.attempts == 1
    assert credit.last_error == "inventory offline"
    assert get_stock_level(db_session, "sku-1", "store-1") == 0

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        service.dispatch_stock_credits(raise_on_failure=True)
    assert len(excinfo.value.details["failed"]) == 2

    inventory.up = True
    result = service.dispatch_stock_credits()

    assert result.ok
    assert len(result.delivered) == 2
    assert get_stock_level(db_session, "sku-1", "store-1") == 3
    assert service.get_order(order.id).pending_stock_credits == 0
    assert service.dispatch_stock_credits().delivered == []


def test_redelivered_credit_is_applied_once(db_session):
    service = SupplyOrderService(db_session)
    order = _accepted_order(service)
    credit = order.stock_credits[0]

    LedgerInventory(db_session).increment_stock(
        credit.product_id, credit.store_id, credit.quantity, dedupe_key=credit.dedupe_key
    )
    db_session.commit()

    events = list_inventory_events(db_session, store_id="store-1")
    assert len(events) == 2
    assert get_stock_level(db_session, "sku-1", "store-1") == 3


def test_http_inventory_client_sends_idempotency_key():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"ok": True})

    client = HttpInventoryClient(
        "http://inventory.test/api/",
        token="secret",
        transport=httpx.MockTransport(handler),
    )
    client.increment_stock("sku-1", "store-1", 4, dedupe_key="acceptance:1:item:2")
    client.close()

    request = seen[0]
    assert request.url.path == "/api/stock/increments"
    assert request.headers["Idempotency-Key"] == "acceptance:1:item:2"
    assert request.headers["Authorization"] == "Bearer secret"
    assert json.loads(request.content) == {"product_id": "sku-1", "store_id": "store-1", "quantity": 4}


def test_http_inventory_client_treats_conflict_as_delivered():
    client = HttpInventoryClient(
        "http://inventory.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(409)),
    )

    client.increment_stock("sku-1", "store-1", 1, dedupe_key="k")


@pytest.mark.parametrize("status_code", [500, 503, 422])
def test_http_inventory_client_maps_failures(status_code):
    client = HttpInventoryClient(
        "http://inventory.test",
        transport=httpx.MockTransport(lambda request: httpx.Response(status_code)),
    )

    with pytest.raises(CollaboratorUnavailable) as excinfo:
        client.increment_stock("sku-1", "store-1", 1, dedupe_key="k")
    assert excinfo.value.details["status"] == status_code


def test_http_inventory_client_maps_transport_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    client = HttpInventoryClient("http://inventory.test", transport=httpx.MockTransport(handler))

    with pytest.raises(CollaboratorUnavailable):
        client.increment_stock("sku-1", "store-1", 1, dedupe_key="k")


def test_outbox_write_failure_after_commit_leaves_acceptance_durable(db_session, monkeypatch):
    service = SupplyOrderService(db_session)
    order = service.create_order(
        store_id="store-1",
        customer_id="cust-1",
        items=[
            NewItem(product_id="sku-1", quantity=10, unit_price="5"),
            NewItem(product_id="sku-2", quantity=10, unit_price="5"),
        ],
    )
    first, second = (item.id for item in order.items)
    service.process_return(order.id, [{"item_id": first, "quantity": 3}, {"item_id": second, "quantity": 1}])

    real_commit = db_session.commit
    calls = []

    def commit_locked_once():
        calls.append(1)
        # The acceptance itself commits first; the next commit saves a credit.
        if len(calls) == 2:
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        real_commit()

    monkeypatch.setattr(db_session, "commit", commit_locked_once)
    order = service.accept_return(order.id, [{"item_id": first, "quantity": 3}, {"item_id": second, "quantity": 1}])
    monkeypatch.setattr(db_session, "commit", real_commit)

    assert len(order.acceptances) == 1
    assert [item.quantity_accepted for item in order.items] == [3, 1]
    assert order.pending_stock_credits == 1

    result = service.dispatch_stock_credits()

    assert result.ok
    assert len(result.delivered) == 1
    assert get_stock_level(db_session, "sku-1", "store-1") == 3
    assert get_stock_level(db_session, "sku-2", "store-1") == 1
    assert len(db_session.execute(select(SupplyAcceptance)).scalars().all()) == 1


def test_service_closes_the_inventory_client_it_builds(db_session, monkeypatch):
    monkeypatch.setattr(settings, "INVENTORY_SERVICE_URL", "http://inventory.test")

    dependency = get_service(db_session)
    service = next(dependency)
    assert isinstance(service.inventory, HttpInventoryClient)
    assert not service.inventory._client.is_closed

    with pytest.raises(StopIteration):
        next(dependency)

    assert service.inventory._client.is_closed


def test_service_leaves_a_supplied_inventory_open(db_session):
    client = HttpInventoryClient("http://inventory.test")
    service = SupplyOrderService(db_session, inventory=client)

    service.close()

    assert not client._client.is_closed
    client.close()
