"""Importing this package registers every table with ``Base.metadata``."""

from .activity import ActivityLog
from .inventory import InventoryEvent
from .supply import (
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

__all__ = [
    "ActivityLog",
    "InventoryEvent",
    "StockCredit",
    "SupplyAcceptance",
    "SupplyAcceptanceLine",
    "SupplyOrder",
    "SupplyOrderItem",
    "SupplyPayment",
    "SupplyRefund",
    "SupplyReturn",
    "SupplyReturnLine",
]
