"""Application wiring for the supply ledger API.

Importing this module builds the FastAPI app: models are registered, tables
are created, middleware and error handlers are installed and the API routers
are mounted.
"""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    SupplyError,
    http_exception_handler,
    supply_error_handler,
    validation_exception_handler,
)
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware

# Registers every table on ``Base.metadata``.
from . import models as _models  # noqa: F401

app = FastAPI(title=settings.APP_NAME)

Base.metadata.create_all(bind=engine)

app.add_middleware(RequestIdMiddleware)
if settings.ALLOWED_ORIGINS:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_exception_handler(SupplyError, supply_error_handler)
app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)

from .routers import api_auth as api_auth_router  # noqa: E402

app.include_router(api_auth_router.router)

from .routers import api_supply as api_supply_router  # noqa: E402

app.include_router(api_supply_router.router)

from .routers import api_supply_records as api_supply_records_router  # noqa: E402

app.include_router(api_supply_records_router.router)

from .routers import api_inventory as api_inventory_router  # noqa: E402

app.include_router(api_inventory_router.router)


__all__ = ["app"]
