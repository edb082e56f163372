"""Pydantic schemas for authenticated shop data.

Access tokens are deliberately absent from every schema here.
"""

from datetime import datetime

from storegate.schemas.common import BaseSchema


class ShopResponse(BaseSchema):
    """A stored shop."""

    domain: str
    name: str
    email: str | None = None
    timezone: str | None = None
    currency: str | None = None
    plan: str | None = None
    updated_at: datetime | None = None


class SessionResponse(BaseSchema):
    """Public view of a stored session."""

    id: str
    shop: str
    is_online: bool
    scope: str | None = None
    expires: datetime | None = None


class ShopAuthResponse(BaseSchema):
    """Session and shop of the authenticated tenant."""

    session: SessionResponse
    shop: ShopResponse


class ProxyShopResponse(BaseSchema):
    """Live shop details read through the Admin API for an app-proxy request."""

    domain: str
    name: str
    email: str | None = None
    timezone: str | None = None
    currency: str | None = None
    plan: str | None = None
