"""API v1 router combining all route modules."""

from fastapi import APIRouter

from storegate.api.v1 import health, proxy, shop
from storegate.api.v1.webhooks import app as app_webhooks

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Embedded app (session token auth)
api_router.include_router(
    shop.router,
    prefix="/shop",
    tags=["shop"],
)

# App proxy (signed query string)
api_router.include_router(
    proxy.router,
    tags=["proxy"],
)

# App lifecycle and compliance webhooks (no auth - verified via HMAC)
api_router.include_router(
    app_webhooks.router,
    prefix="/webhooks/app",
    tags=["webhooks"],
)
