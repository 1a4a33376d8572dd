from __future__ import annotations

import hmac

from fastapi import APIRouter, Depends, Header, HTTPException, status

from ..core.config import settings
from ..core.security import issue_token_pair, refresh_access_token
from ..deps.auth import AuthContext, require_api_or_jwt
from ..schemas.auth import PrincipalOut, RefreshRequest, TokenRequest, TokenResponse

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])

SUPPLY_WRITE_SCOPE = "supply:write"


def grantable_scopes() -> set[str]:
    return {SUPPLY_WRITE_SCOPE, settings.ADMIN_SCOPE}


@router.post("/token", response_model=TokenResponse, summary="Exchange the API key for store-scoped JWTs")
async def exchange_token(
    payload: TokenRequest,
    x_api_key: str | None = Header(default=None, alias="X-API-Key"),
):
    configured_key = (settings.API_KEY or "").strip()
    if not configured_key:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="API key authentication is disabled")
    provided = (payload.api_key or x_api_key or "").strip()
    if not provided or not hmac.compare_digest(provided, configured_key):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")
    unknown = sorted(set(payload.scopes) - grantable_scopes())
    if unknown:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown scope(s): {', '.join(unknown)}",
        )
    pair = issue_token_pair(
        subject=payload.subject.strip(),
        scopes=sorted(set(payload.scopes)),
        store_id=(payload.store_id or "").strip() or None,
    )
    return TokenResponse(**pair.model_dump())


@router.post("/refresh", response_model=TokenResponse, summary="Refresh access token")
async def refresh_token(payload: RefreshRequest):
    try:
        pair = refresh_access_token(payload.refresh_token)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    return TokenResponse(**pair.model_dump())


@router.get("/me", response_model=PrincipalOut, summary="Describe the calling principal")
async def whoami(auth: AuthContext = Depends(require_api_or_jwt)):
    return PrincipalOut(
        subject=auth.subject,
        scheme=auth.scheme,
        scopes=auth.scopes,
        store_id=auth.store_id,
        can_delete=auth.has_scope(settings.ADMIN_SCOPE),
    )
