from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.orm import Session

from ..core.config import settings
from ..crud.supply import get_supply_stats, is_overdue, list_orders
from ..db.session import get_db
from ..deps.auth import AuthContext, require_api_or_jwt, require_scope, store_scope
from ..models.supply import ORDER_STATUSES, SupplyOrder
from ..schemas.supply import (
    AcceptanceCreate,
    BalanceOut,
    OrderAuditOut,
    OrderTotalsOut,
    PaymentCreate,
    PendingReturnOut,
    RefundCreate,
    ReturnCreate,
    StockCreditDispatchOut,
    SupplyOrderCreate,
    SupplyOrderDetail,
    SupplyOrderOut,
    SupplyOrderUpdate,
    SupplyStatsOut,
)
from ..services.lifecycle import SupplyOrderService, order_balance, order_totals

router = APIRouter(prefix="/api/v1/supply-orders", tags=["supply-orders"], dependencies=[Depends(require_api_or_jwt)])


def get_service(db: Session = Depends(get_db)):
    service = SupplyOrderService(db)
    try:
        yield service
    finally:
        service.close()


def resolve_store(requested: Optional[str], scope: Optional[str]) -> str:
    """Pick the store a request works against, refusing cross-store access."""

    requested = (requested or "").strip() or None
    if scope and requested and requested != scope:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Store outside the caller's scope")
    store = scope or requested
    if not store:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="store_id is required")
    return store


def _order_to_schema(order: SupplyOrder, *, include_history: bool = False) -> SupplyOrderOut | SupplyOrderDetail:
    base = SupplyOrderOut.model_validate(order, from_attributes=True).model_copy(
        update={
            "totals": OrderTotalsOut(**order_totals(order).as_dict()),
            "balance": BalanceOut(**order_balance(order).as_dict()),
            "is_overdue": is_overdue(order),
            "pending_stock_credits": order.pending_stock_credits,
        }
    )
    if not include_history:
        return base
    return SupplyOrderDetail.model_validate(
        {
            **base.model_dump(),
            "items": order.items,
            "returns": order.returns,
            "acceptances": order.acceptances,
            "payments": order.payments,
            "refunds": order.refunds,
        },
        from_attributes=True,
    )


@router.post("", response_model=SupplyOrderDetail, status_code=201)
def api_create_order(
    payload: SupplyOrderCreate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.create_order(
        store_id=resolve_store(payload.store_id, scope),
        customer_id=payload.customer_id,
        items=[item.model_dump() for item in payload.items],
        notes=payload.notes,
        supply_date=payload.supply_date,
        expected_return_date=payload.expected_return_date,
        created_by=auth.subject,
    )
    return _order_to_schema(order, include_history=True)


@router.get("", response_model=list[SupplyOrderOut])
def api_list_orders(
    store_id: Optional[str] = None,
    status_filter: Optional[str] = Query(default=None, alias="status"),
    customer_id: Optional[str] = None,
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    if status_filter and status_filter not in ORDER_STATUSES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown status")
    orders = list_orders(
        db,
        resolve_store(store_id, scope),
        status=status_filter,
        customer_id=customer_id,
        limit=limit,
        offset=offset,
    )
    return [_order_to_schema(order) for order in orders]


@router.get("/pending-returns", response_model=list[PendingReturnOut])
def api_pending_returns(
    store_id: Optional[str] = None,
    on: Optional[date] = None,
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    return service.list_pending_returns(resolve_store(store_id, scope), on=on)


@router.get("/stats", response_model=SupplyStatsOut)
def api_supply_stats(
    store_id: Optional[str] = None,
    scope: Optional[str] = Depends(store_scope),
    db: Session = Depends(get_db),
):
    return get_supply_stats(db, resolve_store(store_id, scope))


@router.post(
    "/stock-credits/dispatch",
    response_model=StockCreditDispatchOut,
    dependencies=[Depends(require_scope(settings.ADMIN_SCOPE))],
)
def api_dispatch_stock_credits(
    limit: int = Query(default=100, ge=1, le=1000),
    service: SupplyOrderService = Depends(get_service),
):
    result = service.dispatch_stock_credits(limit=limit, raise_on_failure=True)
    return StockCreditDispatchOut(delivered=result.delivered, failed=result.failed)


@router.get("/{order_id}", response_model=SupplyOrderDetail)
def api_get_order(
    order_id: int,
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    return _order_to_schema(service.get_order(order_id, store_id=scope), include_history=True)


@router.patch("/{order_id}", response_model=SupplyOrderDetail)
def api_update_order(
    order_id: int,
    payload: SupplyOrderUpdate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.update_order(
        order_id,
        updated_by=auth.subject,
        store_id=scope,
        **payload.model_dump(exclude_unset=True),
    )
    return _order_to_schema(order, include_history=True)


@router.get("/{order_id}/audit", response_model=OrderAuditOut)
def api_audit_order(
    order_id: int,
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    return service.audit_order(order_id, store_id=scope)


@router.post("/{order_id}/returns", response_model=SupplyOrderDetail, status_code=201)
def api_process_return(
    order_id: int,
    payload: ReturnCreate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.process_return(
        order_id,
        [entry.model_dump() for entry in payload.items],
        notes=payload.notes,
        processed_by=auth.subject,
        store_id=scope,
    )
    return _order_to_schema(order, include_history=True)


@router.post("/{order_id}/accept-return", response_model=SupplyOrderDetail, status_code=201)
def api_accept_return(
    order_id: int,
    payload: AcceptanceCreate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.accept_return(
        order_id,
        [entry.model_dump() for entry in payload.items],
        notes=payload.notes,
        processed_by=auth.subject,
        store_id=scope,
    )
    return _order_to_schema(order, include_history=True)


@router.post("/{order_id}/payments", response_model=SupplyOrderDetail, status_code=201)
def api_process_payment(
    order_id: int,
    payload: PaymentCreate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.process_payment(
        order_id,
        payload.amount,
        payload.method,
        notes=payload.notes,
        processed_by=auth.subject,
        store_id=scope,
    )
    return _order_to_schema(order, include_history=True)


@router.post("/{order_id}/refunds", response_model=SupplyOrderDetail, status_code=201)
def api_process_refund(
    order_id: int,
    payload: RefundCreate,
    auth: AuthContext = Depends(require_api_or_jwt),
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    order = service.process_refund(
        order_id,
        payload.amount,
        payload.method,
        notes=payload.notes,
        processed_by=auth.subject,
        store_id=scope,
    )
    return _order_to_schema(order, include_history=True)


@router.post("/{order_id}/cancel", response_model=SupplyOrderDetail)
def api_cancel_order(
    order_id: int,
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    return _order_to_schema(service.cancel_order(order_id, store_id=scope), include_history=True)


@router.delete("/{order_id}", status_code=204, dependencies=[Depends(require_scope(settings.ADMIN_SCOPE))])
def api_delete_order(
    order_id: int,
    scope: Optional[str] = Depends(store_scope),
    service: SupplyOrderService = Depends(get_service),
):
    service.delete_order(order_id, store_id=scope)
    return Response(status_code=204)
