"""Pytest configuration and fixtures for the Storegate test suite.

Provides:
- A fresh SQLite database per test (file-backed so concurrent sessions
  get their own connections)
- A fake Shopify (httpx MockTransport) for token exchange and GraphQL
- Mock Redis (fakeredis) for the install lock
- Disabled rate limiting
- Factories for Shop and Session rows
- Signing helpers for session tokens, app-proxy queries and webhooks
"""

import base64
import hashlib
import hmac
import json
import time
from collections.abc import AsyncGenerator, Callable
from pathlib import Path
from typing import Any

import fakeredis.aioredis
import httpx
import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from storegate.core.deps import get_db, get_exchange_client, get_redis, get_session_factory
from storegate.core.rate_limit import limiter
from storegate.integrations.shopify.signatures import proxy_message
from storegate.integrations.shopify.token_exchange import TokenExchangeClient
from storegate.main import app
from storegate.models import Base, Session, Shop, offline_session_id
from storegate.services.session_store import SessionStore

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------
SHOPIFY_TEST_API_KEY = "test-shopify-api-key"
SHOPIFY_TEST_API_SECRET = "test-shopify-api-secret"
SHOPIFY_TEST_PROXY_SECRET = "test-shopify-proxy-secret"
SHOPIFY_TEST_API_VERSION = "2025-10"
SHOPIFY_TEST_SHOP = "test-store.myshopify.com"

FRESH_ACCESS_TOKEN = "shpat_fresh_token_from_exchange"
STORED_ACCESS_TOKEN = "shpat_stored_token"

# ---------------------------------------------------------------------------
# Disable rate limiting globally for tests
# ---------------------------------------------------------------------------
limiter.enabled = False


@pytest.fixture(autouse=True)
def set_shopify_test_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure Shopify settings are set for all tests."""
    monkeypatch.setattr("storegate.core.config.settings.shopify_api_key", SHOPIFY_TEST_API_KEY)
    monkeypatch.setattr(
        "storegate.core.config.settings.shopify_api_secret", SHOPIFY_TEST_API_SECRET
    )
    monkeypatch.setattr(
        "storegate.core.config.settings.shopify_app_proxy_secret", SHOPIFY_TEST_PROXY_SECRET
    )
    monkeypatch.setattr("storegate.core.config.settings.shopify_webhook_secret", "")
    monkeypatch.setattr(
        "storegate.core.config.settings.shopify_api_version", SHOPIFY_TEST_API_VERSION
    )


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session factory bound to a throwaway SQLite database with all tables."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'storegate.db'}",
        poolclass=NullPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def store(session_factory: async_sessionmaker[AsyncSession]) -> SessionStore:
    return SessionStore(session_factory)


@pytest.fixture
def shop_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory that creates Shop rows."""

    async def _create(
        *,
        domain: str = SHOPIFY_TEST_SHOP,
        name: str = "Test Store",
        email: str | None = "owner@example.com",
        timezone: str | None = "America/New_York",
        currency: str | None = "USD",
        plan: str | None = "Basic",
    ) -> Shop:
        shop = Shop(
            domain=domain,
            name=name,
            email=email,
            timezone=timezone,
            currency=currency,
            plan=plan,
        )
        async with session_factory() as db:
            db.add(shop)
            await db.commit()
            await db.refresh(shop)
        return shop

    return _create


@pytest.fixture
def session_row_factory(session_factory: async_sessionmaker[AsyncSession]) -> Callable[..., Any]:
    """Factory that creates Session rows (the shop must exist)."""

    async def _create(
        *,
        shop: str = SHOPIFY_TEST_SHOP,
        session_id: str | None = None,
        access_token: str = STORED_ACCESS_TOKEN,
        is_online: bool = False,
        scope: str | None = "read_products",
    ) -> Session:
        session = Session(
            id=session_id or offline_session_id(shop),
            shop=shop,
            state="",
            is_online=is_online,
            scope=scope,
            access_token=access_token,
        )
        async with session_factory() as db:
            db.add(session)
            await db.commit()
            await db.refresh(session)
        return session

    return _create


@pytest.fixture
def installed_shop(
    shop_factory: Callable[..., Any],
    session_row_factory: Callable[..., Any],
) -> Callable[..., Any]:
    """Factory for a shop with a usable offline session."""

    async def _create(domain: str = SHOPIFY_TEST_SHOP, **shop_fields: Any) -> tuple[Shop, Session]:
        shop = await shop_factory(domain=domain, **shop_fields)
        session = await session_row_factory(shop=domain)
        return shop, session

    return _create


# ---------------------------------------------------------------------------
# Fake Shopify
# ---------------------------------------------------------------------------


class FakeShopify:
    """In-process stand-in for the token-exchange and Admin GraphQL endpoints."""

    def __init__(self) -> None:
        self.exchange_requests: list[dict[str, Any]] = []
        self.graphql_requests: list[dict[str, Any]] = []
        self.exchange_status = 200
        self.exchange_body: dict[str, Any] = {
            "access_token": FRESH_ACCESS_TOKEN,
            "scope": "read_products,write_products",
        }
        self.graphql_status = 200
        self.graphql_body: Any = None
        self.shop_payload: dict[str, Any] = {
            "id": "gid://shopify/Shop/1",
            "name": "Fresh Store",
            "email": "fresh@example.com",
            "ianaTimezone": "Europe/Berlin",
            "currencyCode": "EUR",
            "myshopifyDomain": SHOPIFY_TEST_SHOP,
            "plan": {"publicDisplayName": "Shopify Plus"},
        }
        self.fail_with: Exception | None = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        if self.fail_with is not None:
            raise self.fail_with

        if request.url.path == "/admin/oauth/access_token":
            self.exchange_requests.append({"host": request.url.host, **json.loads(request.content)})
            return httpx.Response(self.exchange_status, json=self.exchange_body)

        if request.url.path.endswith("/graphql.json"):
            self.graphql_requests.append(
                {
                    "host": request.url.host,
                    "path": request.url.path,
                    "access_token": request.headers.get("X-Shopify-Access-Token"),
                    "body": json.loads(request.content),
                }
            )
            body = self.graphql_body or {"data": {"shop": self.shop_payload}}
            return httpx.Response(self.graphql_status, json=body)

        return httpx.Response(404, json={"errors": "Not Found"})

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def fake_shopify() -> FakeShopify:
    return FakeShopify()


@pytest.fixture
def exchange_client(fake_shopify: FakeShopify) -> TokenExchangeClient:
    return TokenExchangeClient(
        api_key=SHOPIFY_TEST_API_KEY,
        api_secret=SHOPIFY_TEST_API_SECRET,
        api_version=SHOPIFY_TEST_API_VERSION,
        transport=fake_shopify.transport,
    )


# ---------------------------------------------------------------------------
# Fake Redis
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_redis() -> fakeredis.aioredis.FakeRedis:
    """Provide a fresh fakeredis instance per test."""
    return fakeredis.aioredis.FakeRedis()


# ---------------------------------------------------------------------------
# HTTP client (overrides DB, Redis and the Shopify transport)
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    exchange_client: TokenExchangeClient,
    fake_redis: fakeredis.aioredis.FakeRedis,
) -> AsyncGenerator[AsyncClient, None]:
    """Async test client wired to the test database and fake Shopify.

    App exceptions are rendered as responses (not re-raised) so 500
    handling can be asserted.
    """

    async def _override_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as s:
            yield s

    async def _override_redis() -> AsyncGenerator[fakeredis.aioredis.FakeRedis, None]:
        yield fake_redis

    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_db] = _override_db
    app.dependency_overrides[get_exchange_client] = lambda: exchange_client
    app.dependency_overrides[get_redis] = _override_redis

    async with AsyncClient(
        transport=ASGITransport(app=app, raise_app_exceptions=False),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Signing helpers
# ---------------------------------------------------------------------------


@pytest.fixture
def make_session_token() -> Callable[..., str]:
    """Mint App Bridge session tokens.

    Usage:
        token = make_session_token()                      # valid for SHOPIFY_TEST_SHOP
        token = make_session_token(shop="a.myshopify.com")
        token = make_session_token(exp_offset=-120)       # expired
        token = make_session_token(claims={"dest": None}) # drop a claim
    """

    def _make(
        *,
        shop: str = SHOPIFY_TEST_SHOP,
        secret: str = SHOPIFY_TEST_API_SECRET,
        exp_offset: int = 60,
        claims: dict[str, Any] | None = None,
    ) -> str:
        now = int(time.time())
        payload: dict[str, Any] = {
            "iss": f"https://{shop}/admin",
            "dest": f"https://{shop}",
            "aud": SHOPIFY_TEST_API_KEY,
            "sub": "42",
            "exp": now + exp_offset,
            "nbf": now - 5,
            "iat": now - 5,
            "jti": "test-jti",
            "sid": "test-sid",
        }
        for key, value in (claims or {}).items():
            if value is None:
                payload.pop(key, None)
            else:
                payload[key] = value
        return jwt.encode(payload, secret, algorithm="HS256")

    return _make


@pytest.fixture
def sign_proxy_params() -> Callable[..., list[tuple[str, str]]]:
    """Append a valid app-proxy ``signature`` to a list of query pairs."""

    def _sign(
        params: list[tuple[str, str]],
        secret: str = SHOPIFY_TEST_PROXY_SECRET,
    ) -> list[tuple[str, str]]:
        signature = hmac.new(
            secret.encode(),
            proxy_message(params).encode(),
            hashlib.sha256,
        ).hexdigest()
        return [*params, ("signature", signature)]

    return _sign


@pytest.fixture
def shopify_webhook_signature() -> Callable[[bytes], str]:
    """Generate a valid Shopify webhook HMAC signature for a given body."""

    def _sign(body: bytes) -> str:
        return base64.b64encode(
            hmac.new(
                SHOPIFY_TEST_API_SECRET.encode(),
                body,
                hashlib.sha256,
            ).digest()
        ).decode()

    return _sign


@pytest.fixture
def shopify_webhook_headers(
    shopify_webhook_signature: Callable[[bytes], str],
) -> Callable[..., dict[str, str]]:
    """Generate complete Shopify webhook headers for a given body, shop and topic.

    Usage:
        body = b'{"shop_domain": "my-store.myshopify.com"}'
        headers = shopify_webhook_headers(body, "my-store.myshopify.com", "shop/redact")
        response = await client.post("/api/v1/webhooks/app/compliance", content=body, headers=headers)
    """

    def _headers(
        body: bytes,
        shop: str = SHOPIFY_TEST_SHOP,
        topic: str = "shop/redact",
    ) -> dict[str, str]:
        return {
            "X-Shopify-Hmac-Sha256": shopify_webhook_signature(body),
            "X-Shopify-Shop-Domain": shop,
            "X-Shopify-Topic": topic,
            "Content-Type": "application/json",
        }

    return _headers
