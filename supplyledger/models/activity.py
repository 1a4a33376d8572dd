"""Audit trail rows written by the activity recorder."""

from __future__ import annotations

from sqlalchemy import JSON, Column, Integer, Text

from ..db.session import Base


class ActivityLog(Base):
    __tablename__ = "activity_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=False)
    # ``metadata`` is reserved on declarative classes.
    event_metadata = Column("metadata", JSON, nullable=True)
    principal = Column(Text, nullable=True)
    created_at = Column(Text, nullable=False)


__all__ = ["ActivityLog"]
