"""Authentication dependencies for FastAPI routes.

Each dependency runs one authenticator and converts a failed result into
an HTTP error with the status for that failure kind.
"""

from typing import Annotated

from fastapi import Depends, Request

from storegate.core.context import AuthContext, ProxyContext, WebhookContext
from storegate.core.deps import (
    get_proxy_authenticator,
    get_session_token_authenticator,
    get_webhook_authenticator,
)
from storegate.core.errors import Err
from storegate.services.shop_auth_service import (
    ProxyAuthenticator,
    SessionTokenAuthenticator,
    WebhookAuthenticator,
)


async def get_auth_context(
    request: Request,
    authenticator: SessionTokenAuthenticator = Depends(get_session_token_authenticator),
) -> AuthContext:
    """Tenant context for embedded-app requests (session token)."""
    result = await authenticator.authenticate(
        request.headers,
        request.query_params,
        route=request.url.path,
    )
    if isinstance(result, Err):
        raise result.to_http_exception()
    return result.value


async def get_proxy_context(
    request: Request,
    authenticator: ProxyAuthenticator = Depends(get_proxy_authenticator),
) -> ProxyContext:
    """Tenant context for app-proxy requests (signed query string)."""
    result = await authenticator.authenticate(request.query_params, route=request.url.path)
    if isinstance(result, Err):
        raise result.to_http_exception()
    return result.value


async def get_webhook_context(
    request: Request,
    authenticator: WebhookAuthenticator = Depends(get_webhook_authenticator),
) -> WebhookContext:
    """Verified webhook delivery.

    The body is read here as raw bytes, exactly once, before any parsing.
    """
    body = await request.body()
    result = authenticator.authenticate(body, request.headers, route=request.url.path)
    if isinstance(result, Err):
        raise result.to_http_exception()
    return result.value


# Type aliases for dependency injection
ShopAuth = Annotated[AuthContext, Depends(get_auth_context)]
ProxyAuth = Annotated[ProxyContext, Depends(get_proxy_context)]
VerifiedWebhook = Annotated[WebhookContext, Depends(get_webhook_context)]
