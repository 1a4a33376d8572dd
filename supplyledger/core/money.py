"""Decimal helpers for currency amounts."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_money(value: object, *, strict: bool = False) -> Decimal:
    """Coerce ints, floats, strings and Decimals into a cent-rounded Decimal.

    Floats go through ``str`` first so ``0.1`` becomes ``Decimal("0.10")``
    instead of its binary expansion. With ``strict`` an amount carrying
    fractions of a cent is rejected rather than rounded.
    """

    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError("amount must be numeric")
    elif isinstance(value, (int, float)):
        amount = Decimal(str(value))
    elif isinstance(value, str):
        cleaned = value.strip().replace(",", "")
        if not cleaned:
            raise ValueError("amount must be numeric")
        try:
            amount = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValueError(f"invalid amount: {value!r}") from exc
    else:
        raise ValueError(f"invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError("amount must be finite")
    rounded = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if strict and rounded != amount:
        raise ValueError(f"amount has fractions of a cent: {value!r}")
    return rounded
