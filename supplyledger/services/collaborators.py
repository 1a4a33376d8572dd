"""Adapters for the collaborators the supply ledger calls out to.

* Inventory: receives a stock increment for every accepted return line. Calls
  carry a ``dedupe_key`` so a redelivered credit is applied once.
* Activity: a fire-and-forget audit trail. A failure to record activity is
  logged and never fails the operation that triggered it.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Mapping, Protocol

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.errors import CollaboratorUnavailable
from ..crud.inventory import record_inventory_event
from ..crud.supply import utcnow
from ..middlewares import principal_ctx_var
from ..models.activity import ActivityLog

logger = logging.getLogger(__name__)
activity_logger = logging.getLogger("supplyledger.activity")


class InventoryCollaborator(Protocol):
    def increment_stock(self, product_id: str, store_id: str, quantity: int, *, dedupe_key: str) -> None:
        ...


class ActivityRecorder(Protocol):
    def record_activity(self, event_type: str, description: str, metadata: Mapping[str, Any] | None = None) -> None:
        ...


class LedgerInventory:
    """Credits stock into the local ``inventory_events`` table.

    The event is added to the caller's session and committed together with
    the outbox row that marks the credit delivered.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def increment_stock(self, product_id: str, store_id: str, quantity: int, *, dedupe_key: str) -> None:
        try:
            record_inventory_event(
                self.db,
                product_id=product_id,
                store_id=store_id,
                change=quantity,
                source="supply:acceptance",
                reference=dedupe_key,
                note="Returned goods accepted back into stock",
                commit=False,
            )
        except SQLAlchemyError as exc:
            raise CollaboratorUnavailable(f"stock ledger unavailable: {exc}") from exc


class HttpInventoryClient:
    """Credits stock through a remote inventory service.

    ``POST {base_url}/stock/increments`` with an ``Idempotency-Key`` header.
    A 409 means the key was already applied and counts as delivered.
    """

    def __init__(
        self,
        base_url: str,
        *,
        token: str = "",
        timeout: float = 5.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=httpx.Timeout(timeout),
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def increment_stock(self, product_id: str, store_id: str, quantity: int, *, dedupe_key: str) -> None:
        payload = {"product_id": product_id, "store_id": store_id, "quantity": quantity}
        try:
            response = self._client.post(
                "/stock/increments",
                json=payload,
                headers={"Idempotency-Key": dedupe_key},
            )
        except httpx.HTTPError as exc:
            logger.warning("Inventory service request failed for %s: %s", dedupe_key, exc)
            raise CollaboratorUnavailable(f"inventory service unreachable: {exc}") from exc
        if response.status_code == 409:
            logger.info("Inventory service already applied %s", dedupe_key)
            return
        if response.status_code >= 400:
            logger.warning("Inventory service returned %s for %s", response.status_code, dedupe_key)
            raise CollaboratorUnavailable(
                f"inventory service returned {response.status_code}",
                details={"status": response.status_code, "dedupe_key": dedupe_key},
            )


class DatabaseActivityRecorder:
    """Writes activity rows with the request's session after its commit."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def record_activity(self, event_type: str, description: str, metadata: Mapping[str, Any] | None = None) -> None:
        principal = principal_ctx_var.get()
        data = json.loads(json.dumps(dict(metadata or {}), default=str))
        activity_logger.info(event_type, extra={"extra_data": {"event_type": event_type, **data}})
        try:
            self.db.add(
                ActivityLog(
                    event_type=event_type,
                    description=description,
                    event_metadata=data,
                    principal=principal,
                    created_at=utcnow(),
                )
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.warning("Failed to record activity %s", event_type, exc_info=True)


def build_inventory(db: Session) -> InventoryCollaborator:
    if settings.INVENTORY_SERVICE_URL:
        return HttpInventoryClient(
            settings.INVENTORY_SERVICE_URL,
            token=settings.INVENTORY_SERVICE_TOKEN,
            timeout=settings.INVENTORY_TIMEOUT_SECONDS,
        )
    return LedgerInventory(db)


__all__ = [
    "ActivityRecorder",
    "DatabaseActivityRecorder",
    "HttpInventoryClient",
    "InventoryCollaborator",
    "LedgerInventory",
    "build_inventory",
]
