"""App-proxy endpoints, called by Shopify on behalf of storefront visitors."""

import logging

import httpx
from fastapi import APIRouter, HTTPException, Request, status

from storegate.core.auth import ProxyAuth
from storegate.core.config import settings
from storegate.core.rate_limit import limiter
from storegate.integrations.shopify.client import ShopifyAPIError
from storegate.schemas.common import ErrorResponse
from storegate.schemas.shop import ProxyShopResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/proxy-endpoint",
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
)
@limiter.limit(settings.proxy_rate_limit)
async def proxy_endpoint(
    request: Request,  # noqa: ARG001 (slowapi reads it)
    context: ProxyAuth,
) -> ProxyShopResponse:
    """Live shop details fetched with the shop's stored credentials."""
    try:
        profile = await context.client.get_shop_profile()
    except (httpx.HTTPError, ShopifyAPIError) as e:
        logger.error(
            "Admin API call failed for proxy request: %s",
            type(e).__name__,
            extra={"shop_domain": context.shop_domain},
        )
        raise HTTPException(status.HTTP_502_BAD_GATEWAY, "Could not reach Shopify") from e

    return ProxyShopResponse(
        domain=context.shop_domain,
        name=profile.name,
        email=profile.email,
        timezone=profile.timezone,
        currency=profile.currency,
        plan=profile.plan,
    )
