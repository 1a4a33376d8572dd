"""Read-side queries and small helpers for supply orders.

Writes to orders and their counters go through ``services.lifecycle``; this
module only loads, lists and aggregates.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from uuid import uuid4

from sqlalchemy import and_, case, desc, func, select
from sqlalchemy.orm import Session, selectinload

from ..core.money import ZERO
from ..models.supply import (
    TERMINAL_STATUSES,
    StockCredit,
    SupplyAcceptance,
    SupplyOrder,
    SupplyOrderItem,
    SupplyPayment,
    SupplyReturn,
)
from ..services.balance import compute_balance
from ..services.reconciler import reconcile


def utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


def today() -> date:
    return datetime.now(timezone.utc).date()


def next_document_number(prefix: str, when: date | None = None) -> str:
    """Human-facing document number such as ``SUP-4F1A9C2E-2026``."""

    year = (when or today()).year
    return f"{prefix}-{uuid4().hex[:8].upper()}-{year}"


def _order_options():
    return (
        selectinload(SupplyOrder.items),
        selectinload(SupplyOrder.returns).selectinload(SupplyReturn.lines),
        selectinload(SupplyOrder.acceptances).selectinload(SupplyAcceptance.lines),
        selectinload(SupplyOrder.payments),
        selectinload(SupplyOrder.refunds),
        selectinload(SupplyOrder.stock_credits),
    )


def get_order(
    db: Session,
    order_id: int,
    *,
    store_id: str | None = None,
    for_update: bool = False,
) -> SupplyOrder | None:
    """Load an order with its items and full event history.

    ``store_id`` restricts the lookup to one store; an order from another
    store is reported as missing. ``for_update`` takes a row lock on
    databases that support ``SELECT ... FOR UPDATE``.
    """

    stmt = select(SupplyOrder).options(*_order_options()).where(SupplyOrder.id == order_id)
    if store_id:
        stmt = stmt.where(SupplyOrder.store_id == store_id)
    if for_update:
        stmt = stmt.with_for_update(of=SupplyOrder)
    stmt = stmt.execution_options(populate_existing=True)
    return db.execute(stmt).scalars().first()


def list_orders(
    db: Session,
    store_id: str,
    *,
    status: str | None = None,
    customer_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[SupplyOrder]:
    stmt = (
        select(SupplyOrder)
        .options(*_order_options())
        .where(SupplyOrder.store_id == store_id)
        .order_by(desc(SupplyOrder.supply_date), desc(SupplyOrder.id))
        .limit(limit)
        .offset(offset)
    )
    if status:
        stmt = stmt.where(SupplyOrder.status == status)
    if customer_id:
        stmt = stmt.where(SupplyOrder.customer_id == customer_id)
    return db.execute(stmt).scalars().all()


def is_overdue(order: SupplyOrder, on: date | None = None) -> bool:
    """True when the expected return date has passed with goods still out."""

    if order.expected_return_date is None or order.status in TERMINAL_STATUSES:
        return False
    if reconcile(order.items).total_kept <= 0:
        return False
    return order.expected_return_date < (on or today())


def list_pending_returns(db: Session, store_id: str, *, on: date | None = None) -> list[dict[str, object]]:
    """Orders holding returned goods that have not been accepted into stock."""

    awaiting = SupplyOrderItem.quantity_returned - SupplyOrderItem.quantity_accepted
    stmt = (
        select(
            SupplyOrder.id.label("order_id"),
            SupplyOrder.supply_number,
            SupplyOrder.customer_id,
            SupplyOrder.status,
            SupplyOrder.expected_return_date,
            func.sum(case((awaiting > 0, 1), else_=0)).label("items_awaiting_acceptance"),
            func.sum(awaiting).label("quantity_pending"),
        )
        .join(SupplyOrderItem, SupplyOrderItem.order_id == SupplyOrder.id)
        .where(and_(SupplyOrder.store_id == store_id, SupplyOrder.status != "cancelled"))
        .group_by(
            SupplyOrder.id,
            SupplyOrder.supply_number,
            SupplyOrder.customer_id,
            SupplyOrder.status,
            SupplyOrder.expected_return_date,
        )
        .having(func.sum(awaiting) > 0)
        .order_by(SupplyOrder.expected_return_date, SupplyOrder.id)
    )
    reference = on or today()
    rows = db.execute(stmt).all()
    return [
        {
            "order_id": row.order_id,
            "supply_number": row.supply_number,
            "customer_id": row.customer_id,
            "status": row.status,
            "expected_return_date": row.expected_return_date,
            "items_awaiting_acceptance": int(row.items_awaiting_acceptance or 0),
            "quantity_pending": int(row.quantity_pending or 0),
            "is_overdue": bool(row.expected_return_date and row.expected_return_date < reference),
        }
        for row in rows
    ]


def list_payments(
    db: Session,
    *,
    order_id: int | None = None,
    store_id: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[SupplyPayment]:
    if order_id is None and not store_id:
        raise ValueError("order_id or store_id is required")
    stmt = (
        select(SupplyPayment)
        .join(SupplyOrder, SupplyOrder.id == SupplyPayment.order_id)
        .order_by(desc(SupplyPayment.created_at), desc(SupplyPayment.id))
        .limit(limit)
        .offset(offset)
    )
    if order_id is not None:
        stmt = stmt.where(SupplyPayment.order_id == order_id)
    if store_id:
        stmt = stmt.where(SupplyOrder.store_id == store_id)
    return db.execute(stmt).scalars().all()


def list_returns(db: Session, store_id: str, *, limit: int = 50, offset: int = 0) -> list[SupplyReturn]:
    stmt = (
        select(SupplyReturn)
        .options(selectinload(SupplyReturn.lines))
        .join(SupplyOrder, SupplyOrder.id == SupplyReturn.order_id)
        .where(SupplyOrder.store_id == store_id)
        .order_by(desc(SupplyReturn.created_at), desc(SupplyReturn.id))
        .limit(limit)
        .offset(offset)
    )
    return db.execute(stmt).scalars().all()


def list_pending_stock_credits(db: Session, *, limit: int = 100) -> list[StockCredit]:
    stmt = (
        select(StockCredit)
        .where(StockCredit.delivered_at.is_(None))
        .order_by(StockCredit.id)
        .limit(limit)
    )
    return db.execute(stmt).scalars().all()


def get_supply_stats(db: Session, store_id: str, *, on: date | None = None) -> dict[str, object]:
    """Store-level figures for the supply dashboard."""

    orders = list_orders(db, store_id, limit=10_000)
    status_counts: dict[str, int] = {}
    supplied = returned = accepted = 0
    total_value = ZERO
    outstanding = ZERO
    refunds_due = ZERO
    overdue = 0
    pending = 0
    for order in orders:
        status_counts[order.status] = status_counts.get(order.status, 0) + 1
        totals = reconcile(order.items)
        supplied += totals.total_supplied
        returned += totals.total_returned
        accepted += totals.total_accepted
        total_value += order.total_supplied_value
        if order.status != "cancelled":
            balance = compute_balance(order.items, order.payments, order.refunds)
            if balance.remaining_balance > ZERO:
                outstanding += balance.remaining_balance
            refunds_due += balance.refund_due
            if totals.total_awaiting_acceptance > 0:
                pending += 1
        if is_overdue(order, on):
            overdue += 1
    order_count = len(orders)
    return {
        "store_id": store_id,
        "total_orders": order_count,
        "orders_by_status": status_counts,
        "total_value": total_value,
        "average_order_value": (total_value / order_count).quantize(ZERO) if order_count else ZERO,
        "total_quantity_supplied": supplied,
        "total_quantity_returned": returned,
        "total_quantity_accepted": accepted,
        "return_rate": round(returned / supplied, 4) if supplied else 0.0,
        "acceptance_rate": round(accepted / returned, 4) if returned else 0.0,
        "outstanding_balance": outstanding,
        "refunds_due": refunds_due,
        "overdue_orders": overdue,
        "pending_returns": pending,
    }


__all__ = [
    "get_order",
    "get_supply_stats",
    "is_overdue",
    "list_orders",
    "list_payments",
    "list_pending_returns",
    "list_pending_stock_credits",
    "list_returns",
    "next_document_number",
    "today",
    "utcnow",
]
