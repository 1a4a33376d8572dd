"""Pydantic schemas for supply order payloads.

Quantities and amounts are deliberately left unconstrained here so that the
ledger's own checks report them with their domain error codes.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

ReturnCondition = Literal["good", "damaged", "defective", "expired"]
PaymentMethod = Literal["cash", "card", "mobile", "other"]


class SupplyItemIn(BaseModel):
    product_id: str = Field(min_length=1)
    quantity: int
    unit_price: Decimal


class SupplyOrderCreate(BaseModel):
    customer_id: str = Field(min_length=1)
    store_id: Optional[str] = None
    items: list[SupplyItemIn]
    notes: Optional[str] = None
    supply_date: Optional[date] = None
    expected_return_date: Optional[date] = None

    model_config = {
        "json_schema_extra": {
            "example": {
                "customer_id": "cust-42",
                "store_id": "store-1",
                "items": [{"product_id": "sku-1", "quantity": 10, "unit_price": "5.00"}],
                "expected_return_date": "2026-11-30",
            }
        }
    }


class SupplyOrderUpdate(BaseModel):
    """Order metadata staff may correct; fields left out stay unchanged."""

    notes: Optional[str] = None
    expected_return_date: Optional[date] = None


class ReturnEntryIn(BaseModel):
    item_id: int
    quantity: int
    condition: ReturnCondition = "good"
    reason: Optional[str] = None


class ReturnCreate(BaseModel):
    items: list[ReturnEntryIn]
    notes: Optional[str] = None


class AcceptanceEntryIn(BaseModel):
    item_id: int
    quantity: int


class AcceptanceCreate(BaseModel):
    items: list[AcceptanceEntryIn]
    notes: Optional[str] = None


class PaymentCreate(BaseModel):
    amount: Decimal
    method: PaymentMethod = "cash"
    notes: Optional[str] = None


class RefundCreate(PaymentCreate):
    pass


class SupplyOrderItemOut(BaseModel):
    id: int
    product_id: str
    unit_price: Decimal
    quantity_supplied: int
    quantity_returned: int
    quantity_accepted: int
    quantity_kept: int
    quantity_awaiting_acceptance: int
    line_total: Decimal

    class Config:
        from_attributes = True


class ReturnLineOut(BaseModel):
    id: int
    item_id: int
    quantity: int
    condition: str
    reason: Optional[str] = None

    class Config:
        from_attributes = True


class SupplyReturnOut(BaseModel):
    id: int
    order_id: int
    return_number: str
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    total_returned_value: Decimal
    created_at: str
    lines: list[ReturnLineOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class AcceptanceLineOut(BaseModel):
    id: int
    item_id: int
    quantity: int

    class Config:
        from_attributes = True


class SupplyAcceptanceOut(BaseModel):
    id: int
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: str
    lines: list[AcceptanceLineOut] = Field(default_factory=list)

    class Config:
        from_attributes = True


class SupplyPaymentOut(BaseModel):
    id: int
    order_id: int
    payment_number: str
    amount: Decimal
    method: str
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: str

    class Config:
        from_attributes = True


class SupplyRefundOut(BaseModel):
    id: int
    amount: Decimal
    method: str
    processed_by: Optional[str] = None
    notes: Optional[str] = None
    created_at: str

    class Config:
        from_attributes = True


class OrderTotalsOut(BaseModel):
    total_supplied: int
    total_returned: int
    total_accepted: int
    total_kept: int
    total_awaiting_acceptance: int


class BalanceOut(BaseModel):
    amount_owed: Decimal
    total_paid: Decimal
    remaining_balance: Decimal
    refund_due: Decimal
    is_overpaid: bool


class SupplyOrderOut(BaseModel):
    id: int
    supply_number: str
    store_id: str
    customer_id: str
    created_by: Optional[str] = None
    supply_date: date
    expected_return_date: Optional[date] = None
    notes: Optional[str] = None
    status: str
    total_supplied_value: Decimal
    cancelled_at: Optional[str] = None
    created_at: str
    updated_at: str
    version: int
    totals: Optional[OrderTotalsOut] = None
    balance: Optional[BalanceOut] = None
    is_overdue: bool = False
    pending_stock_credits: int = 0

    class Config:
        from_attributes = True


class SupplyOrderDetail(SupplyOrderOut):
    items: list[SupplyOrderItemOut] = Field(default_factory=list)
    returns: list[SupplyReturnOut] = Field(default_factory=list)
    acceptances: list[SupplyAcceptanceOut] = Field(default_factory=list)
    payments: list[SupplyPaymentOut] = Field(default_factory=list)
    refunds: list[SupplyRefundOut] = Field(default_factory=list)


class PendingReturnOut(BaseModel):
    order_id: int
    supply_number: str
    customer_id: str
    status: str
    expected_return_date: Optional[date] = None
    items_awaiting_acceptance: int
    quantity_pending: int
    is_overdue: bool


class SupplyStatsOut(BaseModel):
    store_id: str
    total_orders: int
    orders_by_status: dict[str, int]
    total_value: Decimal
    average_order_value: Decimal
    total_quantity_supplied: int
    total_quantity_returned: int
    total_quantity_accepted: int
    return_rate: float
    acceptance_rate: float
    outstanding_balance: Decimal
    refunds_due: Decimal
    overdue_orders: int
    pending_returns: int


class StockCreditDispatchOut(BaseModel):
    delivered: list[int]
    failed: list[dict[str, Any]]


class OrderAuditOut(BaseModel):
    order_id: int
    consistent: bool
    stored_status: str
    derived_status: str
    totals: OrderTotalsOut
    balance: BalanceOut
    discrepancies: list[dict[str, Any]]


class InventorySummaryItem(BaseModel):
    product_id: str
    store_id: str
    quantity: int
    last_activity: Optional[str]


class InventoryEventOut(BaseModel):
    id: int
    product_id: str
    store_id: str
    change: int
    source: str
    reference: Optional[str] = None
    note: Optional[str] = None
    created_at: str

    class Config:
        from_attributes = True
