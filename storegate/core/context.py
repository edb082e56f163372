"""Request-scoped contexts produced by authentication.

Contexts are built fresh for every request and never cached. Building one
fails closed when the session has no access token.
"""

from dataclasses import dataclass, field
from typing import Any

from storegate.core.errors import AuthError, Err, Ok, Result
from storegate.integrations.shopify.client import ShopifyAdminClient
from storegate.models.session import Session
from storegate.models.shop import Shop


@dataclass(frozen=True)
class AuthContext:
    """Tenant identity for session-token (embedded UI) requests."""

    shop: Shop
    session: Session
    client: ShopifyAdminClient = field(repr=False)

    @property
    def shop_domain(self) -> str:
        return self.shop.domain


@dataclass(frozen=True)
class ProxyContext(AuthContext):
    """Tenant identity for app-proxy and webhook requests."""


@dataclass(frozen=True)
class WebhookContext:
    """Verified webhook delivery.

    ``shop_domain`` and ``webhook_topic`` come from headers; they are
    trusted because the body HMAC verified.
    """

    valid: bool
    shop_domain: str | None
    webhook_topic: str | None
    body: Any = field(default=None, repr=False)


def build_context[C: AuthContext](
    context_cls: type[C],
    shop: Shop,
    session: Session,
) -> Result[C]:
    """Bind an Admin API client to the shop, refusing empty credentials."""
    if not session.access_token:
        return Err(AuthError.INVALID_SESSION, "Session missing access token")

    client = ShopifyAdminClient(shop.domain, session.access_token)
    return Ok(context_cls(shop=shop, session=session, client=client))
