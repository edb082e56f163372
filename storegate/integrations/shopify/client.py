"""Shopify Admin GraphQL API client using httpx."""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from storegate.core.config import settings
from storegate.integrations.shopify.queries import SHOP_QUERY

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0


class ShopifyAPIError(Exception):
    """The Admin API answered with GraphQL errors or an unusable payload."""

    def __init__(self, message: str, errors: list[Any] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


@dataclass(frozen=True)
class ShopProfile:
    """Shop fields mirrored into the ``shops`` table."""

    name: str
    email: str | None
    timezone: str | None
    currency: str | None
    plan: str | None

    @classmethod
    def from_graphql(cls, shop: dict[str, Any]) -> "ShopProfile":
        plan = shop.get("plan")
        if not isinstance(plan, dict):
            plan = {}
        return cls(
            name=shop.get("name") or "",
            email=shop.get("email"),
            timezone=shop.get("ianaTimezone"),
            currency=shop.get("currencyCode"),
            plan=plan.get("publicDisplayName"),
        )


class ShopifyAdminClient:
    """Async client for the Shopify Admin GraphQL API, bound to one shop."""

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        api_version: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not access_token:
            raise ValueError(f"Refusing to build an Admin API client for {shop_domain} without an access token")
        self.shop_domain = shop_domain
        self.api_version = api_version or settings.shopify_api_version
        self.graphql_url = f"https://{shop_domain}/admin/api/{self.api_version}/graphql.json"
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }
        self._transport = transport

    def __repr__(self) -> str:
        return f"<ShopifyAdminClient {self.shop_domain} ({self.api_version})>"

    async def graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL document and return its ``data`` object.

        Raises:
            httpx.HTTPError: On transport failures or non-2xx responses.
            ShopifyAPIError: If the response carries GraphQL errors.
        """
        body: dict[str, Any] = {"query": query}
        if variables:
            body["variables"] = variables

        async with httpx.AsyncClient(
            headers=self.headers,
            timeout=DEFAULT_TIMEOUT,
            transport=self._transport,
        ) as client:
            response = await client.post(self.graphql_url, json=body)
            response.raise_for_status()
            payload = response.json()

        if not isinstance(payload, dict):
            raise ShopifyAPIError("GraphQL response was not a JSON object")

        if payload.get("errors"):
            logger.warning(
                "GraphQL errors from %s: %s",
                self.shop_domain,
                payload["errors"],
            )
            raise ShopifyAPIError("GraphQL request failed", payload["errors"])

        data: dict[str, Any] = payload.get("data") or {}
        return data

    async def get_shop(self) -> dict[str, Any]:
        """Fetch the raw ``shop`` object."""
        data = await self.graphql(SHOP_QUERY)
        shop = data.get("shop")
        if not shop or not isinstance(shop, dict):
            raise ShopifyAPIError("Response did not include a shop")
        return dict(shop)

    async def get_shop_profile(self) -> ShopProfile:
        """Fetch the shop fields stored locally."""
        return ShopProfile.from_graphql(await self.get_shop())
