"""Shopify token exchange: session token in, durable access token out.

The handshake is two calls: the OAuth token-exchange grant, then a shop
profile fetch authenticated with the token it returned. Nothing is
retried and nothing is written to the database here.
"""

import enum
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

from storegate.core.errors import AuthError, Err, Ok, Result
from storegate.integrations.shopify.client import (
    DEFAULT_TIMEOUT,
    ShopifyAdminClient,
    ShopifyAPIError,
    ShopProfile,
)
from storegate.models.session import offline_session_id, online_session_id

logger = logging.getLogger(__name__)

TOKEN_EXCHANGE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
ID_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:id_token"


class RequestedTokenType(str, enum.Enum):
    """Kinds of access token the exchange grant can issue."""

    ONLINE = "urn:shopify:params:oauth:token-type:online-access-token"
    OFFLINE = "urn:shopify:params:oauth:token-type:offline-access-token"


@dataclass(frozen=True)
class SessionData:
    """Session fields produced by a token exchange, ready to upsert."""

    id: str
    shop: str
    access_token: str
    scope: str | None = None
    is_online: bool = False
    expires: datetime | None = None
    state: str = ""

    def __repr__(self) -> str:
        return f"SessionData(id={self.id!r}, shop={self.shop!r}, is_online={self.is_online})"

    @classmethod
    def from_exchange_response(
        cls,
        shop: str,
        data: dict[str, Any],
        requested_token_type: RequestedTokenType,
        now: datetime | None = None,
    ) -> "SessionData":
        is_online = requested_token_type is RequestedTokenType.ONLINE
        expires = None
        if data.get("expires_in"):
            expires = (now or datetime.now(UTC)) + timedelta(seconds=int(data["expires_in"]))

        session_id = offline_session_id(shop)
        if is_online:
            user = data.get("associated_user") or {}
            session_id = online_session_id(shop, user.get("id", ""))

        return cls(
            id=session_id,
            shop=shop,
            access_token=data["access_token"],
            scope=data.get("scope"),
            is_online=is_online,
            expires=expires,
        )


class TokenExchangeClient:
    """Performs the token-exchange grant and the follow-up profile fetch."""

    def __init__(
        self,
        api_key: str,
        api_secret: str,
        api_version: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_version = api_version
        self._transport = transport

    async def exchange(
        self,
        shop: str,
        session_token: str,
        requested_token_type: RequestedTokenType = RequestedTokenType.OFFLINE,
    ) -> Result[SessionData]:
        """Trade a verified session token for an access token."""
        url = f"https://{shop}/admin/oauth/access_token"
        body = {
            "client_id": self.api_key,
            "client_secret": self.api_secret,
            "grant_type": TOKEN_EXCHANGE_GRANT_TYPE,
            "subject_token": session_token,
            "subject_token_type": ID_TOKEN_TYPE,
            "requested_token_type": requested_token_type.value,
        }

        try:
            async with httpx.AsyncClient(timeout=DEFAULT_TIMEOUT, transport=self._transport) as client:
                response = await client.post(url, json=body, headers={"Accept": "application/json"})
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                "Token exchange rejected for %s: HTTP %s",
                shop,
                e.response.status_code,
            )
            return Err(AuthError.TOKEN_EXCHANGE_FAILED, "Token exchange was rejected")
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Token exchange failed for %s: %s", shop, type(e).__name__)
            return Err(AuthError.TOKEN_EXCHANGE_FAILED, "Token exchange failed")

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error("Token exchange for %s returned no access token", shop)
            return Err(AuthError.TOKEN_EXCHANGE_FAILED, "Token exchange returned no access token")

        try:
            session_data = SessionData.from_exchange_response(shop, data, requested_token_type)
        except (AttributeError, TypeError, ValueError) as e:
            logger.error("Token exchange for %s returned an unusable payload: %s", shop, type(e).__name__)
            return Err(AuthError.TOKEN_EXCHANGE_FAILED, "Token exchange returned an unusable payload")

        return Ok(session_data)

    async def fetch_profile(self, shop: str, access_token: str) -> Result[ShopProfile]:
        """Read the shop profile with a freshly issued access token."""
        client = ShopifyAdminClient(shop, access_token, self.api_version, transport=self._transport)
        try:
            profile = await client.get_shop_profile()
        except httpx.HTTPError as e:
            logger.error("Shop profile fetch failed for %s: %s", shop, type(e).__name__)
            return Err(AuthError.PROFILE_FETCH_FAILED, "Could not fetch shop profile")
        except (ShopifyAPIError, AttributeError, TypeError, ValueError) as e:
            logger.error("Shop profile fetch for %s returned an unusable payload: %s", shop, e)
            return Err(AuthError.PROFILE_FETCH_FAILED, "Could not fetch shop profile")

        return Ok(profile)

    async def handshake(
        self,
        shop: str,
        session_token: str,
    ) -> Result[tuple[SessionData, ShopProfile]]:
        """Exchange for an offline token, then fetch the profile with it."""
        exchanged = await self.exchange(shop, session_token, RequestedTokenType.OFFLINE)
        if isinstance(exchanged, Err):
            return exchanged

        session_data = exchanged.value
        profile = await self.fetch_profile(session_data.shop, session_data.access_token)
        if isinstance(profile, Err):
            return profile

        return Ok((session_data, profile.value))
