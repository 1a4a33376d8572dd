from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TokenRequest(BaseModel):
    api_key: str = Field(..., alias="apiKey", min_length=1)
    subject: str = Field(default="api-client", min_length=1)
    store_id: Optional[str] = Field(default=None, alias="storeId")
    scopes: list[str] = Field(default_factory=list)

    model_config = {
        "populate_by_name": True,
        "json_schema_extra": {
            "example": {
                "apiKey": "super-secret-key",
                "subject": "clerk-7",
                "storeId": "store-1",
                "scopes": ["supply:write"],
            }
        },
    }


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int

    model_config = {
        "json_schema_extra": {
            "example": {
                "access_token": "<jwt>",
                "refresh_token": "<jwt>",
                "token_type": "bearer",
                "expires_in": 900,
            }
        }
    }


class RefreshRequest(BaseModel):
    refresh_token: str

    model_config = {
        "json_schema_extra": {
            "example": {"refresh_token": "<jwt>"}
        }
    }


class PrincipalOut(BaseModel):
    subject: str
    scheme: str
    scopes: list[str]
    store_id: Optional[str] = None
    can_delete: bool = False
