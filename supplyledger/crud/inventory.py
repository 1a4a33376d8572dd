"""Local stock ledger helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import desc, func, select
from sqlalchemy.orm import Session

from ..models.inventory import InventoryEvent


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def list_inventory_events(
    db: Session,
    *,
    store_id: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[InventoryEvent]:
    """Fetch a page of stock movements ordered by recency."""

    stmt = select(InventoryEvent).order_by(desc(InventoryEvent.created_at), desc(InventoryEvent.id))
    if store_id:
        stmt = stmt.where(InventoryEvent.store_id == store_id)
    return db.execute(stmt.limit(limit).offset(offset)).scalars().all()


def get_inventory_summary(db: Session, store_id: str) -> list[dict[str, object]]:
    """Aggregate stock movements per product for one store."""

    stmt = (
        select(
            InventoryEvent.product_id,
            func.coalesce(func.sum(InventoryEvent.change), 0).label("quantity"),
            func.max(InventoryEvent.created_at).label("last_activity"),
        )
        .where(InventoryEvent.store_id == store_id)
        .group_by(InventoryEvent.product_id)
        .order_by(InventoryEvent.product_id)
    )
    rows = db.execute(stmt).all()
    return [
        {
            "product_id": row.product_id,
            "store_id": store_id,
            "quantity": int(row.quantity or 0),
            "last_activity": row.last_activity,
        }
        for row in rows
    ]


def get_stock_level(db: Session, product_id: str, store_id: str) -> int:
    stmt = select(func.coalesce(func.sum(InventoryEvent.change), 0)).where(
        InventoryEvent.product_id == product_id,
        InventoryEvent.store_id == store_id,
    )
    return int(db.execute(stmt).scalar_one() or 0)


def get_event_by_reference(db: Session, reference: str) -> InventoryEvent | None:
    stmt = select(InventoryEvent).where(InventoryEvent.reference == reference)
    return db.execute(stmt).scalars().first()


def record_inventory_event(
    db: Session,
    *,
    product_id: str,
    store_id: str,
    change: int,
    source: str = "manual",
    reference: str | None = None,
    note: str | None = None,
    commit: bool = True,
) -> InventoryEvent:
    """Persist a stock movement.

    When ``reference`` is already recorded the existing event is returned and
    nothing new is written. With ``commit=False`` the event is only added to
    the session so the caller can commit it alongside its own changes.
    """

    if not change:
        raise ValueError("change must be non-zero")
    if reference:
        existing = get_event_by_reference(db, reference)
        if existing is not None:
            return existing
    event = InventoryEvent(
        product_id=product_id,
        store_id=store_id,
        change=change,
        source=source,
        reference=reference,
        note=note,
        created_at=_utcnow(),
    )
    db.add(event)
    if commit:
        db.commit()
        db.refresh(event)
    return event
