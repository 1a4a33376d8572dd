from __future__ import annotations

import logging
import time
from contextvars import ContextVar
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

request_id_ctx_var: ContextVar[str | None] = ContextVar("request_id", default=None)
principal_ctx_var: ContextVar[str | None] = ContextVar("principal_id", default=None)
logger = logging.getLogger("supplyledger.request")


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Tag each request with a correlation id and log one line per request.

    Server errors are logged at WARNING so ledger contention and collaborator
    outages stand out from ordinary traffic.
    """

    def __init__(self, app, header_name: str = "X-Request-ID", store_header: str = "X-Store-ID") -> None:  # type: ignore[override]
        super().__init__(app)
        self.header_name = header_name
        self.store_header = store_header

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(self.header_name) or uuid4().hex
        token = request_id_ctx_var.set(request_id)
        request.state.request_id = request_id
        start = time.perf_counter()
        data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
        }
        store_id = request.headers.get(self.store_header)
        if store_id:
            data["store_id"] = store_id
        try:
            response = await call_next(request)
        except Exception:
            data["duration_ms"] = round((time.perf_counter() - start) * 1000, 2)
            logger.exception("request.failed", extra={"extra_data": data})
            raise
        finally:
            request_id_ctx_var.reset(token)
        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[self.header_name] = request_id
        response.headers.setdefault("X-Response-Time", f"{duration_ms:.2f}ms")
        data.update(status=response.status_code, duration_ms=round(duration_ms, 2))
        principal = getattr(request.state, "principal", None)
        if principal:
            data["principal"] = principal
        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(level, "request.completed", extra={"extra_data": data})
        return response
