import os
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from supplyledger.db.session import Base
from supplyledger.crud.inventory import (
    get_event_by_reference,
    get_inventory_summary,
    get_stock_level,
    list_inventory_events,
    record_inventory_event,
)

# Ensure models are imported so metadata is populated
from supplyledger.models import inventory as inventory_model  # noqa: F401


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


def test_record_inventory_event_tracks_stock_per_store(db_session):
    record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=4, source="manual")
    record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=-1, source="manual")
    record_inventory_event(db_session, product_id="sku-1", store_id="store-2", change=7, source="manual")

    assert get_stock_level(db_session, "sku-1", "store-1") == 3
    assert get_stock_level(db_session, "sku-1", "store-2") == 7
    assert get_stock_level(db_session, "sku-9", "store-1") == 0


def test_reference_makes_events_idempotent(db_session):
    first = record_inventory_event(
        db_session,
        product_id="sku-1",
        store_id="store-1",
        change=2,
        source="supply:acceptance",
        reference="acceptance:1:item:1",
    )
    second = record_inventory_event(
        db_session,
        product_id="sku-1",
        store_id="store-1",
        change=2,
        source="supply:acceptance",
        reference="acceptance:1:item:1",
    )

    assert second.id == first.id
    assert get_event_by_reference(db_session, "acceptance:1:item:1").change == 2
    assert len(list_inventory_events(db_session)) == 1


def test_uncommitted_event_is_written_with_callers_commit(db_session):
    event = record_inventory_event(
        db_session,
        product_id="sku-1",
        store_id="store-1",
        change=5,
        reference="ref-1",
        commit=False,
    )
    assert event.id is None

    db_session.commit()

    assert get_stock_level(db_session, "sku-1", "store-1") == 5


def test_zero_change_is_rejected(db_session):
    with pytest.raises(ValueError):
        record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=0)


def test_inventory_summary_groups_by_product(db_session):
    record_inventory_event(db_session, product_id="sku-2", store_id="store-1", change=1)
    record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=3)
    record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=2)
    record_inventory_event(db_session, product_id="sku-1", store_id="store-2", change=9)

    summary = get_inventory_summary(db_session, "store-1")

    assert [(row["product_id"], row["quantity"]) for row in summary] == [("sku-1", 5), ("sku-2", 1)]
    assert all(row["last_activity"] for row in summary)


def test_list_inventory_events_filters_and_pages(db_session):
    for change in range(1, 6):
        record_inventory_event(db_session, product_id="sku-1", store_id="store-1", change=change)
    record_inventory_event(db_session, product_id="sku-1", store_id="store-2", change=1)

    page = list_inventory_events(db_session, store_id="store-1", limit=2, offset=1)

    assert len(page) == 2
    assert all(event.store_id == "store-1" for event in page)
