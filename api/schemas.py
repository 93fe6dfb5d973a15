"""Pydantic schemas for integration API requests and responses."""

from typing import Any, Optional

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class IntegrationCreate(BaseModel):
    provider: str = Field(..., min_length=1, max_length=50)
    credentials: dict[str, Any] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)
    name: Optional[str] = Field(None, max_length=200)
    webhook_url: Optional[str] = Field(None, max_length=1000)


class IntegrationUpdate(BaseModel):
    credentials: Optional[dict[str, Any]] = None
    config: Optional[dict[str, Any]] = None
    name: Optional[str] = Field(None, max_length=200)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ConnectionTestResponse(BaseModel):
    success: bool
    message: Optional[str] = None
    error: Optional[str] = None


class AuthorizeResponse(BaseModel):
    provider: str
    authorization_url: str
    state: str


class ProviderInfo(BaseModel):
    provider: str
    type: str
    auth_type: str
    config_schema: dict[str, Any]
    capabilities: list[str]
    accepts_webhooks: bool
