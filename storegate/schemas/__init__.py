"""Pydantic schemas for request/response validation."""

from storegate.schemas.common import ErrorResponse, HealthResponse, WebhookAck
from storegate.schemas.shop import (
    ProxyShopResponse,
    SessionResponse,
    ShopAuthResponse,
    ShopResponse,
)

__all__ = [
    "HealthResponse",
    "ErrorResponse",
    "WebhookAck",
    "ShopResponse",
    "SessionResponse",
    "ShopAuthResponse",
    "ProxyShopResponse",
]
