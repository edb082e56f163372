"""App lifecycle and compliance webhooks (verified via HMAC, no session auth)."""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import PlainTextResponse

from storegate.core.auth import VerifiedWebhook
from storegate.core.deps import SessionStoreDep
from storegate.core.errors import AuthError, Err
from storegate.schemas.common import WebhookAck

logger = logging.getLogger(__name__)

router = APIRouter()

# Topics whose only obligation is a 200; no customer data is stored here
CUSTOMER_TOPICS = frozenset({"customers/data_request", "customers/redact"})
SHOP_REDACT_TOPIC = "shop/redact"


@router.post("/compliance", response_class=PlainTextResponse)
async def compliance(webhook: VerifiedWebhook, store: SessionStoreDep) -> PlainTextResponse:
    """Handle mandatory GDPR compliance topics.

    Unknown topics are acknowledged so Shopify does not keep redelivering.
    """
    shop_domain = webhook.shop_domain
    topic = webhook.webhook_topic
    if not shop_domain or not topic:
        logger.error(
            "Invalid compliance webhook",
            extra={"shop_domain": shop_domain, "webhook_topic": topic},
        )
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "Invalid webhook")

    logger.info("Received %s webhook for %s", topic, shop_domain)

    if topic in CUSTOMER_TOPICS:
        logger.info("Handled %s webhook for shop: %s", topic, shop_domain)
        return PlainTextResponse("No customer data stored")

    if topic == SHOP_REDACT_TOPIC:
        deleted_sessions = await store.delete_sessions_for_shop(shop_domain)
        deleted_shop = await store.delete_shop(shop_domain)
        logger.info(
            "Handled shop/redact webhook for shop: %s (sessions=%d, shop=%s)",
            shop_domain,
            deleted_sessions,
            deleted_shop,
        )
        return PlainTextResponse("Shop data removed")

    logger.info("Unhandled compliance webhook topic: %s", topic)
    return PlainTextResponse("OK")


@router.post("/uninstalled")
async def uninstalled(webhook: VerifiedWebhook, store: SessionStoreDep) -> WebhookAck:
    """Drop every session of a shop that removed the app.

    Sessions are deleted by domain whether or not any of them is usable,
    so an online token cannot outlive an empty offline one. The shop row
    stays so a reinstall refreshes it in place; it is only removed by
    ``shop/redact``.
    """
    shop_domain = webhook.shop_domain
    if not shop_domain:
        raise Err(AuthError.MISSING_WEBHOOK_HEADER, "Missing shop domain header").to_http_exception()

    deleted = await store.delete_sessions_for_shop(shop_domain)
    if not deleted:
        # Already offboarded; a retry of an earlier delivery lands here
        logger.info("Ignored app/uninstalled webhook for %s, no sessions stored", shop_domain)
        return WebhookAck(status="ignored")

    logger.info("Received app/uninstalled webhook for %s, removed %d sessions", shop_domain, deleted)
    return WebhookAck(status="uninstalled")
