from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class SupplyError(Exception):
    """Base class for every failure the supply ledger reports to callers.

    ``code`` is the stable machine-readable kind, ``message`` the
    human-readable reason and ``details`` optional structured context
    (offending lines, balances).
    """

    code = "supply_error"
    http_status = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, *, details: Any | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidQuantity(SupplyError):
    code = "invalid_quantity"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class ExceedsBalance(SupplyError):
    code = "exceeds_balance"
    http_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class OrderNotFound(SupplyError):
    code = "order_not_found"
    http_status = status.HTTP_404_NOT_FOUND


class InvalidTransition(SupplyError):
    code = "invalid_transition"
    http_status = status.HTTP_409_CONFLICT


class Contention(SupplyError):
    code = "contention"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class CollaboratorUnavailable(SupplyError):
    code = "collaborator_unavailable"
    http_status = status.HTTP_503_SERVICE_UNAVAILABLE


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def supply_error_handler(request: Request, exc: SupplyError):
    headers = {"Retry-After": "1"} if isinstance(exc, Contention) else None
    return ErrorEnvelope(
        status_code=exc.http_status,
        code=exc.code,
        message=exc.message,
        details=exc.details,
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return ErrorEnvelope(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        code="validation_error",
        message="Validation failed",
        details={"errors": jsonable_encoder(exc.errors())},
    )
