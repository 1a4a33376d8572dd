from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..crud.supply import list_payments, list_returns
from ..db.session import get_db
from ..deps.auth import require_api_or_jwt, store_scope
from ..schemas.supply import SupplyPaymentOut, SupplyReturnOut
from .api_supply import resolve_store

router = APIRouter(prefix="/api/v1", tags=["supply-records"], dependencies=[Depends(require_api_or_jwt)])


@router.get("/supply-payments", response_model=list[SupplyPaymentOut])
def api_list_payments(
    order_id: Optional[int] = None,
    store_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    if order_id is None and not (store_id or scope):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="order_id or store_id is required")
    store = resolve_store(store_id, scope) if (store_id or scope) else None
    return list_payments(db, order_id=order_id, store_id=store, limit=limit, offset=offset)


@router.get("/supply-returns", response_model=list[SupplyReturnOut])
def api_list_returns(
    store_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    return list_returns(db, resolve_store(store_id, scope), limit=limit, offset=offset)
