"""SQLAlchemy models for supply orders and their event history.

A supply order owns its items and every event recorded against it. Events
(returns, acceptances, payments, refunds) are append-only; the counters on
``SupplyOrderItem`` are the running aggregate of those events and are only
written by ``services.lifecycle``.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, Column, Date, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship

from ..db.session import Base
from ..db.types import Money

ORDER_STATUSES = ("supplied", "partially_returned", "fully_returned", "completed", "cancelled")
TERMINAL_STATUSES = frozenset({"completed", "cancelled"})
RETURN_CONDITIONS = ("good", "damaged", "defective", "expired")
PAYMENT_METHODS = ("cash", "card", "mobile", "other")


class SupplyOrder(Base):
    __tablename__ = "supply_orders"

    id = Column(Integer, primary_key=True, index=True)
    supply_number = Column(Text, nullable=False, unique=True)
    store_id = Column(Text, nullable=False, index=True)
    customer_id = Column(Text, nullable=False, index=True)
    created_by = Column(Text, nullable=True)
    supply_date = Column(Date, nullable=False)
    expected_return_date = Column(Date, nullable=True)
    notes = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="supplied", index=True)
    total_supplied_value = Column(Money, nullable=False)
    cancelled_at = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    updated_at = Column(Text, nullable=False)
    # Bumped explicitly by every mutation; the UPDATE is conditioned on the
    # value read at the start of the transaction.
    version = Column(Integer, nullable=False, default=1)

    items = relationship(
        "SupplyOrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplyOrderItem.id",
    )
    returns = relationship(
        "SupplyReturn",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplyReturn.id",
    )
    acceptances = relationship(
        "SupplyAcceptance",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplyAcceptance.id",
    )
    payments = relationship(
        "SupplyPayment",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplyPayment.id",
    )
    refunds = relationship(
        "SupplyRefund",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="SupplyRefund.id",
    )
    stock_credits = relationship("StockCredit", back_populates="order", order_by="StockCredit.id")

    __mapper_args__ = {"version_id_col": version, "version_id_generator": False}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def pending_stock_credits(self) -> int:
        return sum(1 for credit in self.stock_credits if credit.delivered_at is None)


class SupplyOrderItem(Base):
    __tablename__ = "supply_order_items"
    __table_args__ = (
        CheckConstraint("quantity_supplied > 0", name="ck_item_supplied_positive"),
        CheckConstraint(
            "quantity_accepted >= 0 AND quantity_accepted <= quantity_returned "
            "AND quantity_returned <= quantity_supplied",
            name="ck_item_quantity_conservation",
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Text, nullable=False, index=True)
    unit_price = Column(Money, nullable=False)
    quantity_supplied = Column(Integer, nullable=False)
    quantity_returned = Column(Integer, nullable=False, default=0)
    quantity_accepted = Column(Integer, nullable=False, default=0)

    order = relationship("SupplyOrder", back_populates="items")

    @property
    def quantity_kept(self) -> int:
        return self.quantity_supplied - self.quantity_returned

    @property
    def quantity_awaiting_acceptance(self) -> int:
        return self.quantity_returned - self.quantity_accepted

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity_supplied


class SupplyReturn(Base):
    __tablename__ = "supply_returns"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    return_number = Column(Text, nullable=False, unique=True)
    processed_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    total_returned_value = Column(Money, nullable=False)
    created_at = Column(Text, nullable=False)

    order = relationship("SupplyOrder", back_populates="returns")
    lines = relationship(
        "SupplyReturnLine",
        back_populates="supply_return",
        cascade="all, delete-orphan",
        order_by="SupplyReturnLine.id",
    )


class SupplyReturnLine(Base):
    __tablename__ = "supply_return_lines"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_return_line_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    return_id = Column(Integer, ForeignKey("supply_returns.id", ondelete="CASCADE"), nullable=False, index=True)
    item_id = Column(Integer, ForeignKey("supply_order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    condition = Column(Text, nullable=False, default="good")
    reason = Column(Text, nullable=True)

    supply_return = relationship("SupplyReturn", back_populates="lines")
    item = relationship("SupplyOrderItem")


class SupplyAcceptance(Base):
    __tablename__ = "supply_acceptances"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    processed_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    order = relationship("SupplyOrder", back_populates="acceptances")
    lines = relationship(
        "SupplyAcceptanceLine",
        back_populates="acceptance",
        cascade="all, delete-orphan",
        order_by="SupplyAcceptanceLine.id",
    )


class SupplyAcceptanceLine(Base):
    __tablename__ = "supply_acceptance_lines"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_acceptance_line_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    acceptance_id = Column(
        Integer, ForeignKey("supply_acceptances.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id = Column(Integer, ForeignKey("supply_order_items.id", ondelete="CASCADE"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)

    acceptance = relationship("SupplyAcceptance", back_populates="lines")
    item = relationship("SupplyOrderItem")


class SupplyPayment(Base):
    __tablename__ = "supply_payments"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_payment_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_number = Column(Text, nullable=False, unique=True)
    amount = Column(Money, nullable=False)
    method = Column(Text, nullable=False)
    processed_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    order = relationship("SupplyOrder", back_populates="payments")


class SupplyRefund(Base):
    """Money handed back to a customer whose payments exceed what they owe."""

    __tablename__ = "supply_refunds"
    __table_args__ = (CheckConstraint("amount > 0", name="ck_refund_positive"),)

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Money, nullable=False)
    method = Column(Text, nullable=False)
    processed_by = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)

    order = relationship("SupplyOrder", back_populates="refunds")


class StockCredit(Base):
    """Outbox row for one stock increment owed to the inventory collaborator.

    Written in the same transaction as the acceptance that produced it and
    delivered afterwards. ``dedupe_key`` is unique and is passed to the
    collaborator so a redelivery never credits stock twice.
    """

    __tablename__ = "stock_credits"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("supply_orders.id", ondelete="SET NULL"), nullable=True, index=True)
    acceptance_id = Column(Integer, nullable=False, index=True)
    dedupe_key = Column(Text, nullable=False, unique=True)
    product_id = Column(Text, nullable=False)
    store_id = Column(Text, nullable=False)
    quantity = Column(Integer, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)
    delivered_at = Column(Text, nullable=True, index=True)

    order = relationship("SupplyOrder", back_populates="stock_credits")


__all__ = [
    "ORDER_STATUSES",
    "PAYMENT_METHODS",
    "RETURN_CONDITIONS",
    "TERMINAL_STATUSES",
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
