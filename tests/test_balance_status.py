import os
import sys
from decimal import Decimal
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATA_DIR", str(ROOT / "data"))

from supplyledger.core.errors import ExceedsBalance
from supplyledger.core.money import to_money
from supplyledger.services.balance import compute_balance, validate_payment, validate_refund
from supplyledger.services.reconciler import ItemQuantities
from supplyledger.services.status import (
    CANCELLED,
    COMPLETED,
    FULLY_RETURNED,
    PARTIALLY_RETURNED,
    SUPPLIED,
    derive_status,
)


def _item(supplied=10, returned=0, accepted=0, price="100"):
    return ItemQuantities(
        item_id=1,
        quantity_supplied=supplied,
        quantity_returned=returned,
        quantity_accepted=accepted,
        unit_price=Decimal(price),
    )


def test_amount_owed_covers_only_kept_goods():
    balance = compute_balance([_item(returned=4)])

    assert balance.amount_owed == Decimal("600.00")
    assert balance.remaining_balance == Decimal("600.00")
    assert balance.refund_due == Decimal("0.00")


def test_overpayment_is_reported_not_clamped():
    balance = compute_balance([_item(returned=4)], payments=[Decimal("1000")])

    assert balance.remaining_balance == Decimal("-400.00")
    assert balance.is_overpaid
    assert balance.refund_due == Decimal("400.00")


def test_refunds_reduce_total_paid():
    balance = compute_balance([_item(returned=4)], payments=["1000"], refunds=["400"])

    assert balance.total_paid == Decimal("600.00")
    assert balance.is_settled


def test_payment_must_not_exceed_remaining_balance():
    balance = compute_balance([_item()], payments=["999.99"])

    assert validate_payment(balance, "0.01") == Decimal("0.01")
    with pytest.raises(ExceedsBalance):
        validate_payment(balance, "0.02")


@pytest.mark.parametrize("amount", [0, "-5", "abc", None])
def test_non_positive_or_malformed_payments_are_rejected(amount):
    balance = compute_balance([_item()])

    with pytest.raises(ExceedsBalance):
        validate_payment(balance, amount)


def test_refund_is_bounded_by_refund_due():
    balance = compute_balance([_item(returned=4)], payments=["1000"])

    assert validate_refund(balance, "400") == Decimal("400.00")
    with pytest.raises(ExceedsBalance):
        validate_refund(balance, "400.01")
    with pytest.raises(ExceedsBalance):
        validate_refund(compute_balance([_item()]), "1")


def test_to_money_rounds_half_up_to_cents():
    assert to_money(0.1) == Decimal("0.10")
    assert to_money("1,234.565") == Decimal("1234.57")
    with pytest.raises(ValueError):
        to_money("nan")
    with pytest.raises(ValueError):
        to_money(True)


def test_strict_to_money_refuses_fractions_of_a_cent():
    assert to_money("2.5", strict=True) == Decimal("2.50")
    assert to_money(Decimal("1.500"), strict=True) == Decimal("1.50")
    with pytest.raises(ValueError):
        to_money(0.333, strict=True)


@pytest.mark.parametrize(
    "supplied,returned,accepted,remaining,cancelled,expected",
    [
        (10, 0, 0, Decimal("1000"), False, SUPPLIED),
        (10, 4, 0, Decimal("600"), False, PARTIALLY_RETURNED),
        (10, 4, 4, Decimal("600"), False, PARTIALLY_RETURNED),
        (10, 10, 3, Decimal("0"), False, FULLY_RETURNED),
        (10, 4, 4, Decimal("0"), False, COMPLETED),
        (10, 10, 10, Decimal("0"), False, COMPLETED),
        (10, 4, 4, Decimal("-400"), False, PARTIALLY_RETURNED),
        (10, 4, 0, Decimal("0"), False, PARTIALLY_RETURNED),
        (10, 4, 4, Decimal("0"), True, CANCELLED),
    ],
)
def test_derive_status(supplied, returned, accepted, remaining, cancelled, expected):
    assert derive_status(supplied, returned, accepted, remaining, cancelled=cancelled) == expected


def test_derive_status_is_deterministic():
    args = (10, 4, 2, Decimal("123.45"))

    assert {derive_status(*args) for _ in range(5)} == {PARTIALLY_RETURNED}
