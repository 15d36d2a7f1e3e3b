"""HTTP request and response models."""
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class SubscriptionFormat(str, Enum):
    JSON = "json"
    XML = "xml"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class SubscriptionCreate(BaseModel):
    topic: str = Field(..., min_length=1, pattern=r"^[a-z_]+/[a-z_]+$")
    address: str = Field(..., pattern=r"^https?://\S+$")
    format: SubscriptionFormat = SubscriptionFormat.JSON
    fields: Optional[list[str]] = None
    metafield_namespaces: Optional[list[str]] = None
    private_metafield_namespaces: Optional[list[str]] = None


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: Optional[str] = None


class AuthorizeResponse(BaseModel):
    success: bool = True
    shop: str
    auth_url: str
    message: str = "Redirect the merchant to auth_url to complete installation"


class CallbackResponse(BaseModel):
    success: bool = True
    shop: str
    scopes: list[str] = Field(default_factory=list)
    message: str = "Installation complete"


class TokenStatusResponse(BaseModel):
    success: bool = True
    shop: str
    authenticated: bool
    scopes: list[str] = Field(default_factory=list)
    expires_at: Optional[str] = None


class RevokeResponse(BaseModel):
    success: bool
    shop: str
    message: str


class WebhookResponse(BaseModel):
    success: bool
    message: str
    state: str
    delivery_id: str
    topic: str
    duplicate: bool = False
    data: Any = None


class EventListResponse(BaseModel):
    success: bool = True
    shop: str
    count: int
    events: list[dict[str, Any]] = Field(default_factory=list)
    has_more: bool = False


class HealthResponse(BaseModel):
    status: str = "healthy"
    version: str
    environment: str
    handlers: list[str] = Field(default_factory=list)


class SubscriptionResponse(BaseModel):
    success: bool = True
    shop: str
    message: str
    data: Any = None
