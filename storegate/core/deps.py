"""Dependency injection for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated

import redis.asyncio as aioredis
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storegate.core.config import Settings, get_settings
from storegate.core.database import async_session_maker, get_async_session
from storegate.integrations.shopify.signatures import (
    ProxySignatureVerifier,
    SessionTokenVerifier,
    WebhookSignatureVerifier,
)
from storegate.integrations.shopify.token_exchange import TokenExchangeClient
from storegate.services.session_store import SessionStore
from storegate.services.shop_auth_service import (
    ProxyAuthenticator,
    SessionTokenAuthenticator,
    WebhookAuthenticator,
)

SettingsDep = Annotated[Settings, Depends(get_settings)]


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Database session for a single request."""
    async for session in get_async_session():
        yield session


# Database session dependency
DBSession = Annotated[AsyncSession, Depends(get_db)]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory the session store opens its transactions from."""
    return async_session_maker


def get_session_store(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> SessionStore:
    return SessionStore(session_factory)


def get_exchange_client(settings: SettingsDep) -> TokenExchangeClient:
    return TokenExchangeClient(
        api_key=settings.shopify_api_key,
        api_secret=settings.shopify_api_secret,
        api_version=settings.shopify_api_version,
    )


# Shared Redis connection pool
_redis_pool: aioredis.ConnectionPool | None = None


def _get_redis_pool(settings: Settings) -> aioredis.ConnectionPool:
    global _redis_pool  # noqa: PLW0603
    if _redis_pool is None:
        _redis_pool = aioredis.ConnectionPool.from_url(str(settings.redis_url))
    return _redis_pool


async def get_redis(settings: SettingsDep) -> AsyncGenerator[aioredis.Redis | None, None]:
    """Yield a Redis client for the install lock, or None when it is disabled."""
    if not settings.install_lock_enabled:
        yield None
        return

    r = aioredis.Redis(connection_pool=_get_redis_pool(settings))
    try:
        yield r
    finally:
        await r.aclose()


SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]


def get_session_token_authenticator(
    settings: SettingsDep,
    store: SessionStoreDep,
    exchange_client: TokenExchangeClient = Depends(get_exchange_client),
    redis: aioredis.Redis | None = Depends(get_redis),
) -> SessionTokenAuthenticator:
    return SessionTokenAuthenticator(
        store=store,
        exchange_client=exchange_client,
        verifier=SessionTokenVerifier(settings.shopify_api_secret, settings.shopify_api_key),
        redis=redis,
        lock_timeout=settings.install_lock_timeout_seconds,
        lock_wait=settings.install_lock_wait_seconds,
    )


def get_proxy_authenticator(settings: SettingsDep, store: SessionStoreDep) -> ProxyAuthenticator:
    return ProxyAuthenticator(store, ProxySignatureVerifier(settings.shopify_app_proxy_secret))


def get_webhook_authenticator(settings: SettingsDep, store: SessionStoreDep) -> WebhookAuthenticator:
    return WebhookAuthenticator(store, WebhookSignatureVerifier(settings.effective_webhook_secret))


__all__ = [
    "DBSession",
    "SessionStoreDep",
    "SettingsDep",
    "get_db",
    "get_exchange_client",
    "get_proxy_authenticator",
    "get_redis",
    "get_session_factory",
    "get_session_store",
    "get_session_token_authenticator",
    "get_webhook_authenticator",
]
