"""Derive a supply order's lifecycle status from its aggregates."""

from __future__ import annotations

from decimal import Decimal

from ..core.money import ZERO

SUPPLIED = "supplied"
PARTIALLY_RETURNED = "partially_returned"
FULLY_RETURNED = "fully_returned"
COMPLETED = "completed"
CANCELLED = "cancelled"


def derive_status(
    total_supplied: int,
    total_returned: int,
    total_accepted: int,
    remaining_balance: Decimal,
    *,
    cancelled: bool = False,
) -> str:
    """Map reconciled quantities and the remaining balance to a status.

    Terminal states are checked first. ``completed`` needs the balance
    settled to exactly zero and every returned unit accepted; a negative
    balance is an open overpayment and keeps the order open until refunded.
    """

    if cancelled:
        return CANCELLED
    if remaining_balance == ZERO and total_returned == total_accepted:
        return COMPLETED
    if total_returned >= total_supplied:
        return FULLY_RETURNED
    if total_returned > 0:
        return PARTIALLY_RETURNED
    return SUPPLIED


__all__ = [
    "CANCELLED",
    "COMPLETED",
    "FULLY_RETURNED",
    "PARTIALLY_RETURNED",
    "SUPPLIED",
    "derive_status",
]
