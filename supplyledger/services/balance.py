"""Amount owed and remaining balance for a supply order.

The customer owes only for goods they kept, so ``amount_owed`` shrinks each
time a return is processed. A payment taken before a later return can
therefore leave ``remaining_balance`` negative; that overpayment is reported
as ``refund_due`` and is never clamped away.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from ..core.errors import ExceedsBalance
from ..core.money import ZERO, to_money
from .reconciler import summarize_item


@dataclass(frozen=True)
class Balance:
    amount_owed: Decimal
    total_paid: Decimal
    remaining_balance: Decimal

    @property
    def refund_due(self) -> Decimal:
        return -self.remaining_balance if self.remaining_balance < ZERO else ZERO

    @property
    def is_overpaid(self) -> bool:
        return self.remaining_balance < ZERO

    @property
    def is_settled(self) -> bool:
        return self.remaining_balance == ZERO

    def as_dict(self) -> dict[str, Decimal | bool]:
        return {
            "amount_owed": self.amount_owed,
            "total_paid": self.total_paid,
            "remaining_balance": self.remaining_balance,
            "refund_due": self.refund_due,
            "is_overpaid": self.is_overpaid,
        }


def _amount_of(record: Any) -> Decimal:
    value = getattr(record, "amount", record)
    return to_money(value)


def amount_owed(items: Iterable[Any]) -> Decimal:
    total = ZERO
    for item in items:
        quantities = summarize_item(item)
        total += quantities.unit_price * quantities.quantity_kept
    return to_money(total)


def compute_balance(
    items: Iterable[Any],
    payments: Iterable[Any] = (),
    refunds: Iterable[Any] = (),
) -> Balance:
    """Compute what is owed, what has been paid net of refunds, and the gap."""

    owed = amount_owed(items)
    paid = sum((_amount_of(p) for p in payments), ZERO) - sum((_amount_of(r) for r in refunds), ZERO)
    paid = to_money(paid)
    return Balance(amount_owed=owed, total_paid=paid, remaining_balance=to_money(owed - paid))


def validate_payment(balance: Balance, amount: object) -> Decimal:
    """Return the payment amount as money, or raise ``ExceedsBalance``.

    ``balance`` must be computed inside the transaction that records the
    payment.
    """

    try:
        value = to_money(amount)
    except ValueError as exc:
        raise ExceedsBalance(str(exc)) from exc
    if value <= ZERO:
        raise ExceedsBalance(
            "payment amount must be greater than zero",
            details={"amount": str(value)},
        )
    if value > balance.remaining_balance:
        raise ExceedsBalance(
            f"payment of {value} exceeds remaining balance of {balance.remaining_balance}",
            details={"amount": str(value), "remaining_balance": str(balance.remaining_balance)},
        )
    return value


def validate_refund(balance: Balance, amount: object) -> Decimal:
    try:
        value = to_money(amount)
    except ValueError as exc:
        raise ExceedsBalance(str(exc)) from exc
    if value <= ZERO:
        raise ExceedsBalance("refund amount must be greater than zero", details={"amount": str(value)})
    if value > balance.refund_due:
        raise ExceedsBalance(
            f"refund of {value} exceeds overpaid amount of {balance.refund_due}",
            details={"amount": str(value), "refund_due": str(balance.refund_due)},
        )
    return value


__all__ = [
    "Balance",
    "amount_owed",
    "compute_balance",
    "validate_payment",
    "validate_refund",
]
