import logging
from collections.abc import Callable
from typing import Any

import httpx

from trackpro.core.config import settings

logger = logging.getLogger(__name__)

# Fields requested when scanning orders for a display-name match
ORDER_SEARCH_FIELDS = "id,name,order_number"


class ShopifyAdminAPIClientError(Exception):
    """Custom exception for Shopify API client errors."""

    def __init__(self, message, status_code=None, shopify_errors=None):
        super().__init__(message)
        self.status_code = status_code
        self.shopify_errors = shopify_errors  # "errors" payload from Shopify, if any

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404


class ShopifyAdminAPIClient:
    """Client for the Shopify Admin REST API (Async).

    One instance per (shop, access token). Use as an async context manager so
    the underlying httpx client is closed.
    """

    def __init__(
        self,
        shop_domain: str,
        access_token: str,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.shop_domain = shop_domain
        self._access_token = access_token
        self._base_url = (
            f"https://{self.shop_domain}/admin/api/{settings.SHOPIFY_API_VERSION}"
        )
        self._client = httpx.AsyncClient(
            timeout=settings.SHOPIFY_HTTP_TIMEOUT_SECONDS, transport=transport
        )

    async def __aenter__(self) -> "ShopifyAdminAPIClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _amake_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Makes an async REST request to the Shopify Admin API."""
        url = f"{self._base_url}/{path.lstrip('/')}"
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Access-Token": self._access_token,
        }

        logger.debug(f"Making async Shopify request {method} {url}")
        try:
            response = await self._client.request(
                method, url, headers=headers, params=params, json=json
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            shopify_errors = None
            try:
                shopify_errors = e.response.json().get("errors")
            except ValueError:
                pass
            logger.error(
                f"HTTP error occurred during Shopify request: {method} {path} - {e.response.status_code} {e.response.reason_phrase}",
                extra={"props": {"shop": self.shop_domain, "shopify_errors": str(shopify_errors)}},
            )
            raise ShopifyAdminAPIClientError(
                f"Shopify API request failed: {e.response.status_code} {e.response.reason_phrase}",
                status_code=e.response.status_code,
                shopify_errors=shopify_errors,
            ) from e
        except httpx.RequestError as e:
            logger.error(
                f"HTTP request to Shopify failed: {e}",
                extra={"props": {"shop": self.shop_domain}},
            )
            raise ShopifyAdminAPIClientError(
                f"Failed to communicate with Shopify: {e}"
            ) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ShopifyAdminAPIClientError(
                "Invalid response from Shopify API (not JSON).",
                status_code=response.status_code,
            ) from e

    # --- Read Operations ---

    async def aget_shop(self) -> dict[str, Any]:
        """Fetches the shop resource. Cheapest call that proves the token works."""
        data = await self._amake_request("GET", "shop.json")
        return data.get("shop", {})

    async def aget_orders(
        self,
        limit: int = 50,
        fields: str | None = None,
        status: str = "any",
        fulfillment_status: str | None = None,
        email: str | None = None,
    ) -> list[dict[str, Any]]:
        """Fetches the most recent orders, optionally narrowed upstream."""
        params: dict[str, Any] = {
            "status": status,
            "limit": limit,
            "order": "created_at desc",
        }
        if fields:
            params["fields"] = fields
        if fulfillment_status:
            params["fulfillment_status"] = fulfillment_status
        if email:
            params["email"] = email
        logger.info(
            f"Fetching orders for shop {self.shop_domain} (limit: {limit}, fields: {fields})"
        )
        data = await self._amake_request("GET", "orders.json", params=params)
        return data.get("orders") or []

    async def aget_order_fulfillments(self, order_id: str) -> list[dict[str, Any]]:
        data = await self._amake_request("GET", f"orders/{order_id}/fulfillments.json")
        return data.get("fulfillments") or []

    async def aget_recurring_charge(self, charge_id: str) -> dict[str, Any]:
        data = await self._amake_request(
            "GET", f"recurring_application_charges/{charge_id}.json"
        )
        return data.get("recurring_application_charge") or {}

    async def aget_application_charge(self, charge_id: str) -> dict[str, Any]:
        data = await self._amake_request("GET", f"application_charges/{charge_id}.json")
        return data.get("application_charge") or {}

    # --- Write Operations ---

    async def acreate_recurring_charge(self, charge: dict[str, Any]) -> dict[str, Any]:
        data = await self._amake_request(
            "POST",
            "recurring_application_charges.json",
            json={"recurring_application_charge": charge},
        )
        return data.get("recurring_application_charge") or {}

    async def acreate_application_charge(self, charge: dict[str, Any]) -> dict[str, Any]:
        data = await self._amake_request(
            "POST", "application_charges.json", json={"application_charge": charge}
        )
        return data.get("application_charge") or {}

    async def aactivate_recurring_charge(self, charge_id: str) -> dict[str, Any]:
        data = await self._amake_request(
            "POST", f"recurring_application_charges/{charge_id}/activate.json", json={}
        )
        return data.get("recurring_application_charge") or {}

    async def aclose(self):
        await self._client.aclose()


# Routers receive this through a dependency so tests can swap in a client
# backed by httpx.MockTransport.
ShopifyClientFactory = Callable[[str, str], ShopifyAdminAPIClient]
