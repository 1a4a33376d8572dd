from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..crud.inventory import get_inventory_summary, list_inventory_events
from ..db.session import get_db
from ..deps.auth import require_api_or_jwt, store_scope
from ..schemas.supply import InventoryEventOut, InventorySummaryItem
from .api_supply import resolve_store

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"], dependencies=[Depends(require_api_or_jwt)])


@router.get("/summary", response_model=list[InventorySummaryItem])
def api_inventory_summary(
    store_id: Optional[str] = None,
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    return get_inventory_summary(db, resolve_store(store_id, scope))


@router.get("/events", response_model=list[InventoryEventOut])
def api_inventory_events(
    store_id: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    if store_id or scope:
        store_id = resolve_store(store_id, scope)
    return list_inventory_events(db, store_id=store_id, limit=limit, offset=offset)
