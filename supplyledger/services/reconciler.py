"""Quantity reconciliation for supply orders.

Everything here is pure: functions take items and event entries (ORM rows or
any object exposing the same attribute names) and return new values without
touching the database. ``services.lifecycle`` runs these checks inside its
transaction before writing anything.

Two pools bound the two mutation paths:

* ``quantity_kept`` (supplied - returned) bounds how much can still be returned.
* ``quantity_awaiting_acceptance`` (returned - accepted) bounds how much can
  still be accepted back into stock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping

from ..core.errors import InvalidQuantity
from ..core.money import ZERO
from ..models.supply import RETURN_CONDITIONS


@dataclass(frozen=True)
class ReturnEntry:
    item_id: int
    quantity: int
    condition: str = "good"
    reason: str | None = None

    def __post_init__(self) -> None:
        condition = (self.condition or "good").strip().lower()
        if condition not in RETURN_CONDITIONS:
            raise ValueError(f"condition must be one of: {', '.join(RETURN_CONDITIONS)}")
        object.__setattr__(self, "condition", condition)


@dataclass(frozen=True)
class AcceptanceEntry:
    item_id: int
    quantity: int


@dataclass(frozen=True)
class ItemQuantities:
    item_id: int
    quantity_supplied: int
    quantity_returned: int = 0
    quantity_accepted: int = 0
    unit_price: Decimal = ZERO

    @classmethod
    def from_item(cls, item: Any) -> "ItemQuantities":
        return cls(
            item_id=item.id,
            quantity_supplied=int(item.quantity_supplied),
            quantity_returned=int(item.quantity_returned or 0),
            quantity_accepted=int(item.quantity_accepted or 0),
            unit_price=item.unit_price if item.unit_price is not None else ZERO,
        )

    @property
    def quantity_kept(self) -> int:
        return self.quantity_supplied - self.quantity_returned

    @property
    def quantity_awaiting_acceptance(self) -> int:
        return self.quantity_returned - self.quantity_accepted

    @property
    def is_conserved(self) -> bool:
        return 0 <= self.quantity_accepted <= self.quantity_returned <= self.quantity_supplied


@dataclass(frozen=True)
class OrderTotals:
    total_supplied: int = 0
    total_returned: int = 0
    total_accepted: int = 0

    @property
    def total_kept(self) -> int:
        return self.total_supplied - self.total_returned

    @property
    def total_awaiting_acceptance(self) -> int:
        return self.total_returned - self.total_accepted

    def as_dict(self) -> dict[str, int]:
        return {
            "total_supplied": self.total_supplied,
            "total_returned": self.total_returned,
            "total_accepted": self.total_accepted,
            "total_kept": self.total_kept,
            "total_awaiting_acceptance": self.total_awaiting_acceptance,
        }


@dataclass
class ReplayResult:
    items: dict[int, ItemQuantities] = field(default_factory=dict)
    violations: list[dict[str, Any]] = field(default_factory=list)

    @property
    def totals(self) -> OrderTotals:
        return reconcile(self.items.values())


def _as_quantities(items: Iterable[Any]) -> list[ItemQuantities]:
    return [item if isinstance(item, ItemQuantities) else ItemQuantities.from_item(item) for item in items]


def summarize_item(item: Any) -> ItemQuantities:
    return item if isinstance(item, ItemQuantities) else ItemQuantities.from_item(item)


def reconcile(items: Iterable[Any]) -> OrderTotals:
    """Sum per-item counters into order-level totals."""

    supplied = returned = accepted = 0
    for item in _as_quantities(items):
        supplied += item.quantity_supplied
        returned += item.quantity_returned
        accepted += item.quantity_accepted
    return OrderTotals(total_supplied=supplied, total_returned=returned, total_accepted=accepted)


def coerce_entry(entry: Any, cls: type) -> Any:
    if isinstance(entry, cls):
        return entry
    if isinstance(entry, Mapping):
        data = dict(entry)
    else:
        data = {name: getattr(entry, name) for name in cls.__dataclass_fields__ if hasattr(entry, name)}
    return cls(**{k: v for k, v in data.items() if k in cls.__dataclass_fields__})


def _aggregate(entries: Iterable[Any]) -> tuple[dict[int, int], list[dict[str, Any]]]:
    """Sum requested quantities per item, flagging non-positive lines."""

    requested: dict[int, int] = {}
    problems: list[dict[str, Any]] = []
    for index, entry in enumerate(entries):
        quantity = entry.quantity
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            problems.append(
                {
                    "line": index,
                    "item_id": entry.item_id,
                    "requested": quantity,
                    "reason": "quantity must be a positive integer",
                }
            )
            continue
        requested[entry.item_id] = requested.get(entry.item_id, 0) + quantity
    return requested, problems


def _validate(
    items: Iterable[Any],
    entries: Iterable[Any],
    *,
    entry_cls: type,
    available_of,
    pool: str,
    action: str,
) -> dict[int, int]:
    entries = [coerce_entry(entry, entry_cls) for entry in entries]
    if not entries:
        raise InvalidQuantity(f"at least one line is required to {action}")
    by_id = {item.item_id: item for item in _as_quantities(items)}
    requested, problems = _aggregate(entries)
    for item_id, quantity in requested.items():
        item = by_id.get(item_id)
        if item is None:
            problems.append({"item_id": item_id, "requested": quantity, "reason": "item does not belong to this order"})
            continue
        available = available_of(item)
        if quantity > available:
            problems.append(
                {
                    "item_id": item_id,
                    "requested": quantity,
                    "available": available,
                    "reason": f"exceeds {pool}",
                }
            )
    if problems:
        raise InvalidQuantity(f"cannot {action}: {len(problems)} line(s) rejected", details={"lines": problems})
    return requested


def validate_return(items: Iterable[Any], entries: Iterable[Any]) -> dict[int, int]:
    """Check a return event against what the customer still holds.

    Returns the requested quantity per item id. Raises ``InvalidQuantity``
    naming every offending line when any line asks for more than
    ``quantity_supplied - quantity_returned``.
    """

    return _validate(
        items,
        entries,
        entry_cls=ReturnEntry,
        available_of=lambda item: item.quantity_kept,
        pool="quantity still held by the customer",
        action="return goods",
    )


def validate_acceptance(items: Iterable[Any], entries: Iterable[Any]) -> dict[int, int]:
    """Check an acceptance event against returned-but-unaccepted stock."""

    return _validate(
        items,
        entries,
        entry_cls=AcceptanceEntry,
        available_of=lambda item: item.quantity_awaiting_acceptance,
        pool="quantity awaiting acceptance",
        action="accept returned goods",
    )


def apply_return(items: Iterable[Any], entries: Iterable[Any]) -> dict[int, ItemQuantities]:
    """Validate then return new item quantities with the return applied."""

    requested = validate_return(items, entries)
    updated = {}
    for item in _as_quantities(items):
        added = requested.get(item.item_id, 0)
        updated[item.item_id] = ItemQuantities(
            item_id=item.item_id,
            quantity_supplied=item.quantity_supplied,
            quantity_returned=item.quantity_returned + added,
            quantity_accepted=item.quantity_accepted,
            unit_price=item.unit_price,
        )
    return updated


def apply_acceptance(items: Iterable[Any], entries: Iterable[Any]) -> dict[int, ItemQuantities]:
    requested = validate_acceptance(items, entries)
    updated = {}
    for item in _as_quantities(items):
        added = requested.get(item.item_id, 0)
        updated[item.item_id] = ItemQuantities(
            item_id=item.item_id,
            quantity_supplied=item.quantity_supplied,
            quantity_returned=item.quantity_returned,
            quantity_accepted=item.quantity_accepted + added,
            unit_price=item.unit_price,
        )
    return updated


def replay(items: Iterable[Any], returns: Iterable[Any], acceptances: Iterable[Any]) -> ReplayResult:
    """Rebuild item counters from the event history alone.

    Only ``quantity_supplied`` and ``unit_price`` are taken from the items;
    returned and accepted counts are summed from the event lines. Conservation
    breaches in the history are reported in ``violations``.
    """

    base = {
        item.item_id: ItemQuantities(
            item_id=item.item_id,
            quantity_supplied=item.quantity_supplied,
            unit_price=item.unit_price,
        )
        for item in _as_quantities(items)
    }
    returned: dict[int, int] = {}
    accepted: dict[int, int] = {}
    violations: list[dict[str, Any]] = []
    for event in returns:
        for line in event.lines:
            returned[line.item_id] = returned.get(line.item_id, 0) + int(line.quantity)
    for event in acceptances:
        for line in event.lines:
            accepted[line.item_id] = accepted.get(line.item_id, 0) + int(line.quantity)

    for item_id in set(returned) | set(accepted):
        if item_id not in base:
            violations.append({"item_id": item_id, "reason": "event references an unknown item"})

    result = ReplayResult(violations=violations)
    for item_id, item in base.items():
        rebuilt = ItemQuantities(
            item_id=item_id,
            quantity_supplied=item.quantity_supplied,
            quantity_returned=returned.get(item_id, 0),
            quantity_accepted=accepted.get(item_id, 0),
            unit_price=item.unit_price,
        )
        if not rebuilt.is_conserved:
            violations.append(
                {
                    "item_id": item_id,
                    "reason": "accepted <= returned <= supplied does not hold",
                    "quantity_supplied": rebuilt.quantity_supplied,
                    "quantity_returned": rebuilt.quantity_returned,
                    "quantity_accepted": rebuilt.quantity_accepted,
                }
            )
        result.items[item_id] = rebuilt
    return result


__all__ = [
    "AcceptanceEntry",
    "ItemQuantities",
    "OrderTotals",
    "RETURN_CONDITIONS",
    "ReplayResult",
    "ReturnEntry",
    "apply_acceptance",
    "apply_return",
    "coerce_entry",
    "reconcile",
    "replay",
    "summarize_item",
    "validate_acceptance",
    "validate_return",
]
