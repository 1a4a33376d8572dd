"""Order lifecycle: every write to a supply order goes through here.

Each mutation runs as one transaction scoped to a single order:

1. load the order and its items (row-locked where the database supports it),
2. bump the order's ``version`` stamp,
3. validate the request against the current aggregates,
4. append the event and update the counters,
5. recompute the derived status,
6. commit.

The commit's ``UPDATE supply_orders ... WHERE version = <read value>`` fails
when another writer committed first. The transaction is then rolled back and
replayed against fresh state, up to the configured attempt and time budget,
after which ``Contention`` is raised. Validation errors are never retried.

Stock credits for accepted returns are written to the ``stock_credits``
outbox inside the acceptance transaction and delivered to the inventory
collaborator after commit. A failed delivery leaves the acceptance committed
and the credit pending for ``dispatch_stock_credits``.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, TypeVar

from prometheus_client import Counter
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..core.config import settings
from ..core.errors import (
    CollaboratorUnavailable,
    Contention,
    InvalidQuantity,
    InvalidTransition,
    OrderNotFound,
)
from ..core.money import ZERO, to_money
from ..crud import supply as supply_crud
from ..models.supply import (
    PAYMENT_METHODS,
    StockCredit,
    SupplyAcceptance,
    SupplyAcceptanceLine,
    SupplyOrder,
    SupplyOrderItem,
    SupplyPayment,
    SupplyRefund,
    SupplyReturn,
    SupplyReturnLine,
)
from .balance import Balance, compute_balance, validate_payment, validate_refund
from .collaborators import (
    ActivityRecorder,
    DatabaseActivityRecorder,
    InventoryCollaborator,
    build_inventory,
)
from .reconciler import (
    AcceptanceEntry,
    OrderTotals,
    ReturnEntry,
    coerce_entry,
    reconcile,
    replay,
    validate_acceptance,
    validate_return,
)
from .status import COMPLETED, derive_status

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUPPLY_MUTATIONS = Counter(
    "supply_mutations_total",
    "Committed supply order mutations.",
    ["operation"],
)
SUPPLY_CONTENTION_RETRIES = Counter(
    "supply_contention_retries_total",
    "Supply order transactions replayed after a concurrent write.",
    ["operation"],
)
STOCK_CREDIT_FAILURES = Counter(
    "supply_stock_credit_failures_total",
    "Stock credit deliveries the inventory collaborator rejected.",
)

_LOCK_SQLSTATES = {"55P03", "40001", "40P01"}

# Distinguishes "leave as is" from an explicit ``None`` in ``update_order``.
UNCHANGED: Any = object()


@dataclass(frozen=True)
class NewItem:
    product_id: str
    quantity: int
    unit_price: Any


@dataclass
class DispatchResult:
    delivered: list[int] = field(default_factory=list)
    failed: list[dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _is_lock_conflict(exc: OperationalError) -> bool:
    orig = getattr(exc, "orig", None)
    if getattr(orig, "pgcode", None) in _LOCK_SQLSTATES:
        return True
    message = str(orig or exc).lower()
    return "locked" in message or "lock timeout" in message or "could not obtain lock" in message


def order_totals(order: SupplyOrder) -> OrderTotals:
    return reconcile(order.items)


def order_balance(order: SupplyOrder) -> Balance:
    return compute_balance(order.items, order.payments, order.refunds)


def refresh_status(order: SupplyOrder) -> str:
    """Recompute and store the order's derived status."""

    totals = order_totals(order)
    balance = order_balance(order)
    order.status = derive_status(
        totals.total_supplied,
        totals.total_returned,
        totals.total_accepted,
        balance.remaining_balance,
        cancelled=order.cancelled_at is not None,
    )
    return order.status


def _ensure_open(order: SupplyOrder, action: str, *, reopen_completed: bool = False) -> None:
    if reopen_completed and order.status == COMPLETED:
        return
    if order.is_terminal:
        raise InvalidTransition(
            f"cannot {action} a {order.status} supply order",
            details={"order_id": order.id, "status": order.status},
        )


class SupplyOrderService:
    """Create, edit, return, accept, pay, refund, cancel and delete supply orders."""

    def __init__(
        self,
        db: Session,
        *,
        inventory: InventoryCollaborator | None = None,
        activity: ActivityRecorder | None = None,
        max_attempts: int | None = None,
        lock_timeout: float | None = None,
        retry_backoff: float | None = None,
    ) -> None:
        self.db = db
        self._owns_inventory = inventory is None
        self.inventory = inventory if inventory is not None else build_inventory(db)
        self.activity = activity if activity is not None else DatabaseActivityRecorder(db)
        self.max_attempts = max_attempts or settings.SUPPLY_MAX_ATTEMPTS
        self.lock_timeout = lock_timeout or settings.SUPPLY_LOCK_TIMEOUT_SECONDS
        self.retry_backoff = settings.SUPPLY_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff

    def close(self) -> None:
        """Release the inventory client this service built for itself."""

        close = getattr(self.inventory, "close", None)
        if self._owns_inventory and callable(close):
            close()

    # ------------------------------------------------------------------
    # transaction plumbing

    def _lock_order(self, order_id: int, store_id: str | None) -> SupplyOrder:
        bind = self.db.get_bind()
        if bind.dialect.name == "postgresql":
            timeout_ms = max(1, int(self.lock_timeout * 1000))
            self.db.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))
        order = supply_crud.get_order(self.db, order_id, store_id=store_id, for_update=True)
        if order is None:
            raise OrderNotFound(f"supply order {order_id} not found", details={"order_id": order_id})
        return order

    def run_order_transaction(
        self,
        order_id: int,
        mutate: Callable[[SupplyOrder], T],
        *,
        operation: str,
        store_id: str | None = None,
    ) -> tuple[SupplyOrder, T]:
        """Run ``mutate`` against a freshly loaded order and commit.

        ``mutate`` may be called more than once; it must derive everything it
        writes from the order it is handed.
        """

        deadline = time.monotonic() + self.lock_timeout
        attempt = 0
        while True:
            attempt += 1
            self.db.expire_all()
            try:
                order = self._lock_order(order_id, store_id)
                order.version = order.version + 1
                order.updated_at = supply_crud.utcnow()
                result = mutate(order)
                self.db.commit()
            except (StaleDataError, OperationalError) as exc:
                self.db.rollback()
                if isinstance(exc, OperationalError) and not _is_lock_conflict(exc):
                    raise
                remaining = deadline - time.monotonic()
                if attempt >= self.max_attempts or remaining <= 0:
                    logger.warning(
                        "Supply order %s %s gave up after %s attempt(s)",
                        order_id,
                        operation,
                        attempt,
                    )
                    raise Contention(
                        f"supply order {order_id} is busy; retry the {operation}",
                        details={"order_id": order_id, "attempts": attempt},
                    ) from exc
                SUPPLY_CONTENTION_RETRIES.labels(operation).inc()
                logger.warning(
                    "Concurrent write on supply order %s during %s; retrying (attempt %s)",
                    order_id,
                    operation,
                    attempt,
                )
                time.sleep(min(self.retry_backoff * (2 ** (attempt - 1)), max(remaining, 0)))
                continue
            except Exception:
                self.db.rollback()
                raise
            SUPPLY_MUTATIONS.labels(operation).inc()
            return order, result

    def _record(self, event_type: str, description: str, **metadata: Any) -> None:
        self.activity.record_activity(event_type, description, metadata)

    # ------------------------------------------------------------------
    # reads

    def get_order(self, order_id: int, *, store_id: str | None = None) -> SupplyOrder:
        order = supply_crud.get_order(self.db, order_id, store_id=store_id)
        if order is None:
            raise OrderNotFound(f"supply order {order_id} not found", details={"order_id": order_id})
        return order

    def list_pending_returns(self, store_id: str, *, on: date | None = None) -> list[dict[str, object]]:
        return supply_crud.list_pending_returns(self.db, store_id, on=on)

    def audit_order(self, order_id: int, *, store_id: str | None = None) -> dict[str, Any]:
        """Compare stored counters and status with a replay of the history."""

        order = self.get_order(order_id, store_id=store_id)
        rebuilt = replay(order.items, order.returns, order.acceptances)
        discrepancies: list[dict[str, Any]] = list(rebuilt.violations)
        for item in order.items:
            expected = rebuilt.items.get(item.id)
            if expected is None:
                continue
            if (item.quantity_returned, item.quantity_accepted) != (
                expected.quantity_returned,
                expected.quantity_accepted,
            ):
                discrepancies.append(
                    {
                        "item_id": item.id,
                        "reason": "stored counters differ from event history",
                        "stored": {"returned": item.quantity_returned, "accepted": item.quantity_accepted},
                        "replayed": {
                            "returned": expected.quantity_returned,
                            "accepted": expected.quantity_accepted,
                        },
                    }
                )
        totals = rebuilt.totals
        balance = compute_balance(rebuilt.items.values(), order.payments, order.refunds)
        derived = derive_status(
            totals.total_supplied,
            totals.total_returned,
            totals.total_accepted,
            balance.remaining_balance,
            cancelled=order.cancelled_at is not None,
        )
        if derived != order.status:
            discrepancies.append(
                {"reason": "stored status differs from derived status", "stored": order.status, "derived": derived}
            )
        expected_value = to_money(sum((item.line_total for item in order.items), ZERO))
        if expected_value != order.total_supplied_value:
            discrepancies.append(
                {
                    "reason": "total_supplied_value differs from items",
                    "stored": str(order.total_supplied_value),
                    "derived": str(expected_value),
                }
            )
        return {
            "order_id": order.id,
            "consistent": not discrepancies,
            "stored_status": order.status,
            "derived_status": derived,
            "totals": totals.as_dict(),
            "balance": balance.as_dict(),
            "discrepancies": discrepancies,
        }

    # ------------------------------------------------------------------
    # mutations

    def create_order(
        self,
        *,
        store_id: str,
        customer_id: str,
        items: Iterable[Any],
        notes: str | None = None,
        expected_return_date: date | None = None,
        supply_date: date | None = None,
        created_by: str | None = None,
    ) -> SupplyOrder:
        new_items = [coerce_entry(item, NewItem) for item in items]
        if not new_items:
            raise InvalidQuantity("a supply order needs at least one item")
        problems = []
        lines = []
        for index, new_item in enumerate(new_items):
            quantity = new_item.quantity
            try:
                price = to_money(new_item.unit_price, strict=True)
            except ValueError as exc:
                price = None
                problems.append({"line": index, "product_id": new_item.product_id, "reason": str(exc)})
            if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
                problems.append({"line": index, "product_id": new_item.product_id, "reason": "quantity must be positive"})
            if price is not None and price <= ZERO:
                problems.append({"line": index, "product_id": new_item.product_id, "reason": "unit_price must be positive"})
            if not (new_item.product_id or "").strip():
                problems.append({"line": index, "reason": "product_id is required"})
            lines.append((new_item, price))
        if problems:
            raise InvalidQuantity("supply order items are invalid", details={"lines": problems})

        supplied_on = supply_date or supply_crud.today()
        now = supply_crud.utcnow()
        order = SupplyOrder(
            supply_number=supply_crud.next_document_number("SUP", supplied_on),
            store_id=store_id,
            customer_id=customer_id,
            created_by=created_by,
            supply_date=supplied_on,
            expected_return_date=expected_return_date,
            notes=notes,
            created_at=now,
            updated_at=now,
            version=1,
        )
        total = ZERO
        for new_item, price in lines:
            order.items.append(
                SupplyOrderItem(
                    product_id=new_item.product_id.strip(),
                    unit_price=price,
                    quantity_supplied=new_item.quantity,
                    quantity_returned=0,
                    quantity_accepted=0,
                )
            )
            total += price * new_item.quantity
        order.total_supplied_value = to_money(total)
        refresh_status(order)
        self.db.add(order)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
        SUPPLY_MUTATIONS.labels("create").inc()
        logger.info(
            "Supply order %s created for customer %s (%s items, value %s)",
            order.supply_number,
            customer_id,
            len(lines),
            order.total_supplied_value,
        )
        self._record(
            "supply_order.created",
            f"Supply order {order.supply_number} created",
            order_id=order.id,
            supply_number=order.supply_number,
            store_id=store_id,
            customer_id=customer_id,
            total_supplied_value=order.total_supplied_value,
        )
        return self.get_order(order.id)

    def process_return(
        self,
        order_id: int,
        entries: Iterable[Any],
        *,
        notes: str | None = None,
        processed_by: str | None = None,
        store_id: str | None = None,
    ) -> SupplyOrder:
        entries = [coerce_entry(entry, ReturnEntry) for entry in entries]

        def mutate(order: SupplyOrder) -> SupplyReturn:
            # Goods coming back after settlement reopen a completed order.
            _ensure_open(order, "return goods on", reopen_completed=True)
            requested = validate_return(order.items, entries)
            items = {item.id: item for item in order.items}
            value = ZERO
            record = SupplyReturn(
                return_number=supply_crud.next_document_number("RET"),
                processed_by=processed_by,
                notes=notes,
                created_at=supply_crud.utcnow(),
            )
            for entry in entries:
                record.lines.append(
                    SupplyReturnLine(
                        item_id=entry.item_id,
                        quantity=entry.quantity,
                        condition=entry.condition,
                        reason=entry.reason,
                    )
                )
            for item_id, quantity in requested.items():
                item = items[item_id]
                item.quantity_returned += quantity
                value += item.unit_price * quantity
            record.total_returned_value = to_money(value)
            order.returns.append(record)
            refresh_status(order)
            return record

        order, record = self.run_order_transaction(order_id, mutate, operation="return", store_id=store_id)
        balance = order_balance(order)
        logger.info(
            "Return %s on supply order %s: value %s, status %s",
            record.return_number,
            order.supply_number,
            record.total_returned_value,
            order.status,
        )
        if balance.is_overpaid:
            logger.warning(
                "Supply order %s is overpaid by %s after return %s",
                order.supply_number,
                balance.refund_due,
                record.return_number,
            )
        self._record(
            "supply_order.returned",
            f"Return {record.return_number} processed on {order.supply_number}",
            order_id=order.id,
            return_id=record.id,
            total_returned_value=record.total_returned_value,
            status=order.status,
            refund_due=balance.refund_due,
        )
        return self.get_order(order.id)

    def accept_return(
        self,
        order_id: int,
        entries: Iterable[Any],
        *,
        notes: str | None = None,
        processed_by: str | None = None,
        store_id: str | None = None,
    ) -> SupplyOrder:
        entries = [coerce_entry(entry, AcceptanceEntry) for entry in entries]

        def mutate(order: SupplyOrder) -> tuple[SupplyAcceptance, list[StockCredit]]:
            _ensure_open(order, "accept returns on")
            requested = validate_acceptance(order.items, entries)
            items = {item.id: item for item in order.items}
            now = supply_crud.utcnow()
            record = SupplyAcceptance(processed_by=processed_by, notes=notes, created_at=now)
            for entry in entries:
                record.lines.append(SupplyAcceptanceLine(item_id=entry.item_id, quantity=entry.quantity))
            for item_id, quantity in requested.items():
                items[item_id].quantity_accepted += quantity
            order.acceptances.append(record)
            # The acceptance id keys the outbox rows.
            self.db.flush()
            credits = []
            for item_id, quantity in requested.items():
                credit = StockCredit(
                    acceptance_id=record.id,
                    dedupe_key=f"acceptance:{record.id}:item:{item_id}",
                    product_id=items[item_id].product_id,
                    store_id=order.store_id,
                    quantity=quantity,
                    attempts=0,
                    created_at=now,
                )
                order.stock_credits.append(credit)
                credits.append(credit)
            refresh_status(order)
            return record, credits

        order, (record, credits) = self.run_order_transaction(
            order_id, mutate, operation="accept", store_id=store_id
        )
        logger.info(
            "Acceptance %s on supply order %s: %s unit(s), status %s",
            record.id,
            order.supply_number,
            sum(credit.quantity for credit in credits),
            order.status,
        )
        result = self._deliver(credits)
        self._record(
            "supply_order.return_accepted",
            f"Returned goods accepted on {order.supply_number}",
            order_id=order.id,
            acceptance_id=record.id,
            quantity=sum(credit.quantity for credit in credits),
            status=order.status,
            stock_credits_pending=len(result.failed),
        )
        return self.get_order(order.id)

    def process_payment(
        self,
        order_id: int,
        amount: Any,
        method: str,
        *,
        notes: str | None = None,
        processed_by: str | None = None,
        store_id: str | None = None,
    ) -> SupplyOrder:
        method = _normalize_method(method)

        def mutate(order: SupplyOrder) -> SupplyPayment:
            _ensure_open(order, "take payment on")
            value = validate_payment(order_balance(order), amount)
            payment = SupplyPayment(
                payment_number=supply_crud.next_document_number("PAY"),
                amount=value,
                method=method,
                processed_by=processed_by,
                notes=notes,
                created_at=supply_crud.utcnow(),
            )
            order.payments.append(payment)
            refresh_status(order)
            return payment

        order, payment = self.run_order_transaction(order_id, mutate, operation="payment", store_id=store_id)
        logger.info(
            "Payment %s of %s on supply order %s, status %s",
            payment.payment_number,
            payment.amount,
            order.supply_number,
            order.status,
        )
        self._record(
            "supply_order.payment",
            f"Payment {payment.payment_number} recorded on {order.supply_number}",
            order_id=order.id,
            payment_id=payment.id,
            amount=payment.amount,
            method=method,
            status=order.status,
        )
        return self.get_order(order.id)

    def process_refund(
        self,
        order_id: int,
        amount: Any,
        method: str,
        *,
        notes: str | None = None,
        processed_by: str | None = None,
        store_id: str | None = None,
    ) -> SupplyOrder:
        """Hand back money paid for goods that were later returned."""

        method = _normalize_method(method)

        def mutate(order: SupplyOrder) -> SupplyRefund:
            _ensure_open(order, "refund")
            value = validate_refund(order_balance(order), amount)
            refund = SupplyRefund(
                amount=value,
                method=method,
                processed_by=processed_by,
                notes=notes,
                created_at=supply_crud.utcnow(),
            )
            order.refunds.append(refund)
            refresh_status(order)
            return refund

        order, refund = self.run_order_transaction(order_id, mutate, operation="refund", store_id=store_id)
        logger.info("Refund of %s on supply order %s, status %s", refund.amount, order.supply_number, order.status)
        self._record(
            "supply_order.refund",
            f"Refund issued on {order.supply_number}",
            order_id=order.id,
            refund_id=refund.id,
            amount=refund.amount,
            method=method,
            status=order.status,
        )
        return self.get_order(order.id)

    def update_order(
        self,
        order_id: int,
        *,
        notes: str | None = UNCHANGED,
        expected_return_date: date | None = UNCHANGED,
        updated_by: str | None = None,
        store_id: str | None = None,
    ) -> SupplyOrder:
        """Correct an open order's notes or expected return date.

        Quantities, prices and the event history are never touched here.
        """

        changed: dict[str, Any] = {}

        def mutate(order: SupplyOrder) -> None:
            _ensure_open(order, "update")
            changed.clear()
            if notes is not UNCHANGED:
                value = (notes or "").strip() or None
                if value != order.notes:
                    order.notes = value
                    changed["notes"] = value
            if expected_return_date is not UNCHANGED and expected_return_date != order.expected_return_date:
                order.expected_return_date = expected_return_date
                changed["expected_return_date"] = expected_return_date

        order, _ = self.run_order_transaction(order_id, mutate, operation="update", store_id=store_id)
        logger.info("Supply order %s updated: %s", order.supply_number, ", ".join(changed) or "no changes")
        if changed:
            self._record(
                "supply_order.updated",
                f"Supply order {order.supply_number} updated",
                order_id=order.id,
                supply_number=order.supply_number,
                updated_by=updated_by,
                **changed,
            )
        return self.get_order(order.id)

    def cancel_order(self, order_id: int, *, store_id: str | None = None) -> SupplyOrder:
        def mutate(order: SupplyOrder) -> None:
            _ensure_open(order, "cancel")
            order.cancelled_at = supply_crud.utcnow()
            refresh_status(order)

        order, _ = self.run_order_transaction(order_id, mutate, operation="cancel", store_id=store_id)
        logger.info("Supply order %s cancelled", order.supply_number)
        self._record(
            "supply_order.cancelled",
            f"Supply order {order.supply_number} cancelled",
            order_id=order.id,
            supply_number=order.supply_number,
        )
        return self.get_order(order.id)

    def delete_order(self, order_id: int, *, store_id: str | None = None) -> None:
        """Remove a non-completed order with its items and event history.

        Callers are responsible for checking the caller holds the admin scope.
        """

        snapshot: dict[str, Any] = {}

        def mutate(order: SupplyOrder) -> None:
            if order.status == COMPLETED:
                raise InvalidTransition(
                    "completed supply orders cannot be deleted",
                    details={"order_id": order.id, "status": order.status},
                )
            balance = order_balance(order)
            snapshot.update(
                order_id=order.id,
                supply_number=order.supply_number,
                store_id=order.store_id,
                customer_id=order.customer_id,
                status=order.status,
                total_paid=balance.total_paid,
                returns=len(order.returns),
                acceptances=len(order.acceptances),
                payments=len(order.payments),
            )
            self.db.delete(order)

        self.run_order_transaction(order_id, mutate, operation="delete", store_id=store_id)
        logger.info("Supply order %s deleted", snapshot.get("supply_number"))
        self._record(
            "supply_order.deleted",
            f"Supply order {snapshot.get('supply_number')} deleted",
            **snapshot,
        )

    # ------------------------------------------------------------------
    # stock credit outbox

    def _deliver(self, credits: Iterable[StockCredit]) -> DispatchResult:
        result = DispatchResult()
        for credit in credits:
            if credit.delivered_at is not None:
                continue
            credit_id, dedupe_key = credit.id, credit.dedupe_key
            credit.attempts = (credit.attempts or 0) + 1
            try:
                self.inventory.increment_stock(
                    credit.product_id,
                    credit.store_id,
                    credit.quantity,
                    dedupe_key=credit.dedupe_key,
                )
            except CollaboratorUnavailable as exc:
                STOCK_CREDIT_FAILURES.inc()
                credit.last_error = exc.message
                result.failed.append({"credit_id": credit.id, "dedupe_key": credit.dedupe_key, "error": exc.message})
                logger.warning("Stock credit %s not delivered: %s", credit.dedupe_key, exc.message)
            else:
                credit.delivered_at = supply_crud.utcnow()
                credit.last_error = None
                result.delivered.append(credit.id)
            try:
                self.db.commit()
            except IntegrityError:
                # A concurrent dispatcher applied this key first; the next
                # pass sees the existing stock event and marks it delivered.
                self.db.rollback()
                if result.delivered and result.delivered[-1] == credit_id:
                    result.delivered.pop()
                result.failed.append({"credit_id": credit_id, "dedupe_key": dedupe_key, "error": "concurrent delivery"})
                logger.warning("Stock credit %s delivered concurrently", dedupe_key)
            except SQLAlchemyError as exc:
                # The owning transaction is already committed; the credit
                # stays pending for the reconciliation job.
                self.db.rollback()
                STOCK_CREDIT_FAILURES.inc()
                if result.delivered and result.delivered[-1] == credit_id:
                    result.delivered.pop()
                error = str(getattr(exc, "orig", None) or exc)
                result.failed.append({"credit_id": credit_id, "dedupe_key": dedupe_key, "error": error})
                logger.warning("Stock credit %s could not be saved: %s", dedupe_key, exc, exc_info=True)
        return result

    def dispatch_stock_credits(self, *, limit: int = 100, raise_on_failure: bool = False) -> DispatchResult:
        """Redeliver pending stock credits; the reconciliation job."""

        pending = supply_crud.list_pending_stock_credits(self.db, limit=limit)
        result = self._deliver(pending)
        if pending:
            logger.info(
                "Stock credit dispatch: %s delivered, %s failed",
                len(result.delivered),
                len(result.failed),
            )
        if result.failed and raise_on_failure:
            raise CollaboratorUnavailable(
                f"{len(result.failed)} stock credit(s) could not be delivered",
                details={"delivered": result.delivered, "failed": result.failed},
            )
        return result


def _normalize_method(method: str) -> str:
    value = (method or "").strip().lower()
    if value not in PAYMENT_METHODS:
        raise ValueError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")
    return value


__all__ = [
    "DispatchResult",
    "NewItem",
    "SupplyOrderService",
    "UNCHANGED",
    "order_balance",
    "order_totals",
    "refresh_status",
]
