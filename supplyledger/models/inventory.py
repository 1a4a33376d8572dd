"""Local stock ledger used when no remote inventory service is configured."""

from __future__ import annotations

from sqlalchemy import Column, Integer, Text

from ..db.session import Base


class InventoryEvent(Base):
    """A change in stock for a product at a store.

    Positive ``change`` values represent stock being added. ``reference`` is
    the caller's idempotency key; a second event with the same reference is
    never written.
    """

    __tablename__ = "inventory_events"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Text, nullable=False, index=True)
    store_id = Column(Text, nullable=False, index=True)
    change = Column(Integer, nullable=False)
    source = Column(Text, nullable=False, default="manual")
    reference = Column(Text, nullable=True, unique=True)
    note = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)


__all__ = ["InventoryEvent"]
