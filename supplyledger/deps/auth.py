from __future__ import annotations

import hmac

from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security.utils import get_authorization_scheme_param

from ..core.config import settings
from ..core.security import decode_token
from ..middlewares import principal_ctx_var

ALL_SCOPES = "*"


class AuthContext:
    def __init__(
        self,
        *,
        subject: str,
        scheme: str,
        scopes: list[str] | None = None,
        store_id: str | None = None,
    ) -> None:
        self.subject = subject
        self.scheme = scheme
        self.scopes = scopes or []
        self.store_id = store_id

    def has_scope(self, scope: str) -> bool:
        return ALL_SCOPES in self.scopes or scope in self.scopes


def _unauthorized(detail: str = "Unauthorized") -> None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _set_principal(request: Request, principal: str) -> None:
    principal_ctx_var.set(principal)
    request.state.principal = principal


async def require_api_or_jwt(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
) -> AuthContext:
    api_key = settings.API_KEY
    provided_key = (x_api_key or "").strip()
    if api_key and provided_key and hmac.compare_digest(api_key, provided_key):
        _set_principal(request, "api-key")
        return AuthContext(subject="api-key", scheme="api_key", scopes=[ALL_SCOPES])

    if not api_key and not authorization:
        _set_principal(request, "anonymous")
        return AuthContext(subject="anonymous", scheme="open", scopes=[ALL_SCOPES])

    if authorization:
        scheme, credentials = get_authorization_scheme_param(authorization)
        if scheme.lower() == "bearer" and credentials:
            try:
                payload = decode_token(credentials, verify_type="access")
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
            subject = f"jwt:{payload.sub}"
            _set_principal(request, subject)
            request.state.token_payload = payload
            return AuthContext(subject=subject, scheme="jwt", scopes=payload.scopes, store_id=payload.store_id)

    if api_key and provided_key:
        _unauthorized("Invalid API key")
    _unauthorized("Authorization required")


def require_scope(scope: str):
    """Dependency factory rejecting callers whose credentials lack ``scope``."""

    async def _check(auth: AuthContext = Depends(require_api_or_jwt)) -> AuthContext:
        if not auth.has_scope(scope):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Missing scope: {scope}")
        return auth

    return _check


async def store_scope(
    auth: AuthContext = Depends(require_api_or_jwt),
    x_store_id: str | None = Header(default=None, alias="X-Store-ID"),
) -> str | None:
    """Store an order lookup is confined to.

    A token pinned to a store always wins over the header.
    """

    if auth.store_id:
        return auth.store_id
    value = (x_store_id or "").strip()
    return value or None
