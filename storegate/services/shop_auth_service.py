"""Request authentication for embedded-app, app-proxy and webhook traffic.

Each authenticator turns request inputs into a tenant-scoped context or an
``Err`` naming what went wrong. Failures are logged here, once, with the
route and shop domain; tokens and secrets are never part of a log record.
"""

import asyncio
import json
import logging
from collections.abc import Mapping
from typing import Any

import redis.asyncio as aioredis
from redis.exceptions import LockError, RedisError

from storegate.core.context import AuthContext, ProxyContext, WebhookContext, build_context
from storegate.core.errors import AuthError, Err, Ok, Result
from storegate.integrations.shopify.signatures import (
    ProxySignatureVerifier,
    QueryItems,
    SessionTokenVerifier,
    WebhookSignatureVerifier,
    extract_session_token,
)
from storegate.integrations.shopify.token_exchange import TokenExchangeClient
from storegate.services.session_store import SessionStore

logger = logging.getLogger(__name__)

HMAC_HEADER = "x-shopify-hmac-sha256"
SHOP_DOMAIN_HEADER = "x-shopify-shop-domain"
TOPIC_HEADER = "x-shopify-topic"

INSTALL_LOCK_PREFIX = "shopify_install:"


def _log_failure(err: Err, *, route: str, shop_domain: str | None) -> None:
    level = logging.ERROR if err.status_code >= 500 else logging.WARNING
    logger.log(
        level,
        "Authentication failed: %s",
        err.message or err.kind.value,
        extra={"route": route, "shop_domain": shop_domain, "error_kind": err.kind.value},
    )


async def resolve_tenant(store: SessionStore, shop_domain: str) -> Result[ProxyContext]:
    """Read-only lookup of a shop and a usable session. Never repairs state."""
    found = await store.find_shop_with_session(shop_domain)
    if found is None:
        return Err(AuthError.SHOP_NOT_FOUND, f"Shop not found: {shop_domain}")

    shop, session = found
    if session is None or not session.access_token:
        return Err(AuthError.NO_VALID_SESSION, f"No valid session found for shop: {shop_domain}")

    return build_context(ProxyContext, shop, session)


class SessionTokenAuthenticator:
    """Authenticates embedded-app requests carrying an App Bridge session token.

    Known shops are served from the store. The first request from a shop
    (or one whose stored token is gone) runs the token-exchange handshake
    and upserts the result. With a redis client, concurrent first requests
    for one shop wait on a per-shop lock so only one of them exchanges.
    """

    def __init__(
        self,
        store: SessionStore,
        exchange_client: TokenExchangeClient,
        verifier: SessionTokenVerifier,
        redis: aioredis.Redis | None = None,
        lock_timeout: float = 30.0,
        lock_wait: float = 10.0,
    ) -> None:
        self.store = store
        self.exchange_client = exchange_client
        self.verifier = verifier
        self.redis = redis
        self.lock_timeout = lock_timeout
        self.lock_wait = lock_wait

    async def authenticate(
        self,
        headers: Mapping[str, str],
        query_params: Mapping[str, str],
        *,
        route: str = "",
    ) -> Result[AuthContext]:
        token = extract_session_token(headers, query_params)
        if not token:
            err = Err(AuthError.MISSING_TOKEN, "No session token found")
            _log_failure(err, route=route, shop_domain=None)
            return err

        claims = self.verifier.decode(token)
        if isinstance(claims, Err):
            _log_failure(claims, route=route, shop_domain=None)
            return claims

        shop_domain = claims.value.shop_domain
        result = await self._lookup(shop_domain)
        if result is None:
            result = await self._install(shop_domain, token)

        if isinstance(result, Err):
            _log_failure(result, route=route, shop_domain=shop_domain)
        return result

    async def _lookup(self, shop_domain: str) -> Result[AuthContext] | None:
        """Stored offline session and shop, or None if either is missing."""
        session, shop = await asyncio.gather(
            self.store.find_session(self.store.offline_session_id(shop_domain)),
            self.store.find_shop(shop_domain),
        )
        if session is None or shop is None or not session.access_token:
            return None
        return build_context(AuthContext, shop, session)

    async def _install(self, shop_domain: str, token: str) -> Result[AuthContext]:
        if self.redis is None:
            return await self._exchange_and_store(shop_domain, token)

        lock = self.redis.lock(
            f"{INSTALL_LOCK_PREFIX}{shop_domain}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_wait,
        )
        try:
            acquired = await lock.acquire()
        except RedisError as e:
            logger.warning(
                "Install lock unavailable for %s (%s), exchanging without it",
                shop_domain,
                type(e).__name__,
            )
            return await self._exchange_and_store(shop_domain, token)

        if not acquired:
            logger.warning("Timed out waiting for install lock of %s", shop_domain)
            return await self._exchange_and_store(shop_domain, token)

        try:
            # Another request may have finished the install while we waited
            existing = await self._lookup(shop_domain)
            if existing is not None:
                return existing
            return await self._exchange_and_store(shop_domain, token)
        finally:
            try:
                await lock.release()
            except LockError:
                logger.warning("Install lock for %s expired before release", shop_domain)

    async def _exchange_and_store(self, shop_domain: str, token: str) -> Result[AuthContext]:
        handshake = await self.exchange_client.handshake(shop_domain, token)
        if isinstance(handshake, Err):
            return handshake

        session_data, profile = handshake.value
        # A started upsert must finish or roll back even if the client goes away
        stored = await asyncio.shield(self.store.upsert_session_and_shop(session_data, profile))
        if isinstance(stored, Err):
            return stored

        session, shop = stored.value
        logger.info("Completed token exchange for %s", shop.domain)
        return build_context(AuthContext, shop, session)


class ProxyAuthenticator:
    """Authenticates storefront requests forwarded through the app proxy."""

    def __init__(self, store: SessionStore, verifier: ProxySignatureVerifier) -> None:
        self.store = store
        self.verifier = verifier

    async def authenticate(
        self,
        query_params: QueryItems,
        *,
        route: str = "",
    ) -> Result[ProxyContext]:
        if not self.verifier.verify(query_params):
            err = Err(AuthError.INVALID_PROXY_SIGNATURE, "Invalid Shopify proxy request")
            _log_failure(err, route=route, shop_domain=None)
            return err

        shop_domain = _single_value(query_params, "shop")
        if not shop_domain:
            err = Err(AuthError.MISSING_SHOP_PARAMETER, "Missing shop parameter")
            _log_failure(err, route=route, shop_domain=None)
            return err

        result = await resolve_tenant(self.store, shop_domain)
        if isinstance(result, Err):
            _log_failure(result, route=route, shop_domain=shop_domain)
        return result


class WebhookAuthenticator:
    """Verifies webhook deliveries and optionally resolves their shop."""

    def __init__(self, store: SessionStore, verifier: WebhookSignatureVerifier) -> None:
        self.store = store
        self.verifier = verifier

    def authenticate(
        self,
        body: bytes,
        headers: Mapping[str, str],
        *,
        route: str = "",
    ) -> Result[WebhookContext]:
        """Check the HMAC over the raw body, then parse it.

        ``body`` must be the bytes exactly as received; a re-serialized
        JSON document will not match the signature.
        """
        shop_domain = headers.get(SHOP_DOMAIN_HEADER)
        hmac_header = headers.get(HMAC_HEADER)
        if not hmac_header:
            err = Err(AuthError.MISSING_WEBHOOK_HEADER, "Invalid Shopify webhook: Missing HMAC header")
            _log_failure(err, route=route, shop_domain=shop_domain)
            return err

        if not self.verifier.verify(body, hmac_header):
            err = Err(
                AuthError.INVALID_WEBHOOK_SIGNATURE,
                "Invalid Shopify webhook: HMAC verification failed",
            )
            _log_failure(err, route=route, shop_domain=shop_domain)
            return err

        return Ok(
            WebhookContext(
                valid=True,
                shop_domain=shop_domain or None,
                webhook_topic=headers.get(TOPIC_HEADER) or None,
                body=_parse_body(body),
            )
        )

    async def resolve_tenant(
        self,
        webhook: WebhookContext,
        *,
        route: str = "",
    ) -> Result[ProxyContext]:
        """Read-only lookup of the shop that sent a verified webhook."""
        if not webhook.shop_domain:
            err = Err(AuthError.MISSING_WEBHOOK_HEADER, "Missing shop domain header")
            _log_failure(err, route=route, shop_domain=None)
            return err

        result = await resolve_tenant(self.store, webhook.shop_domain)
        if isinstance(result, Err):
            _log_failure(result, route=route, shop_domain=webhook.shop_domain)
        return result


def _parse_body(body: bytes) -> Any:
    """JSON value of the body, its text if it is not JSON, None if empty."""
    if not body:
        return None
    text = body.decode("utf-8", errors="replace")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        return text


def _single_value(params: QueryItems, key: str) -> str | None:
    if isinstance(params, Mapping):
        value = params.get(key)
        return str(value) if value else None
    return next((v for k, v in params if k == key and v), None)
