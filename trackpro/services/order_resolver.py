"""Resolves a merchant- or customer-supplied order reference to a Shopify order id.

References arrive either as the numeric id the Admin API uses (``5123456789``)
or as the display name shown to customers (``#1002``). Display names need a
search, which is bounded to two upstream calls: a first page of recent orders
and, if that misses, one wider page. Results are never cached.
"""

import logging
from collections.abc import Iterator
from typing import Any

from opentelemetry import trace

from trackpro.core.config import settings
from trackpro.services.shopify_client import (
    ORDER_SEARCH_FIELDS,
    ShopifyAdminAPIClient,
    ShopifyAdminAPIClientError,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

DISPLAY_PREFIX = "#"


def is_numeric_reference(reference: str) -> bool:
    # ASCII digits only
    return reference.isascii() and reference.isdecimal()


def bare_candidate(reference: str) -> str:
    """``#1002`` -> ``1002``; also tolerates whitespace around the marker."""
    return reference.strip().lstrip(DISPLAY_PREFIX).strip()


def search_page_sizes() -> Iterator[int]:
    """The two bounded search steps: a first page, then one widened page."""
    yield settings.ORDER_SEARCH_PAGE_SIZE
    yield settings.ORDER_SEARCH_WIDENED_PAGE_SIZE


def match_order(orders: list[dict[str, Any]], reference: str) -> dict[str, Any] | None:
    """First order whose display name or sequential number matches exactly."""
    candidate = bare_candidate(reference)
    names = {reference, candidate, f"{DISPLAY_PREFIX}{candidate}"}
    number = int(candidate) if is_numeric_reference(candidate) else None

    for order in orders:
        if order.get("name") in names:
            return order
        if number is not None and order.get("order_number") == number:
            return order
    return None


async def aresolve_order_id(client: ShopifyAdminAPIClient, reference: str) -> str | None:
    """Returns the numeric order id for ``reference``, or None if not found.

    Numeric references are returned unchanged without calling Shopify.
    Search failures are reported as not found.
    """
    reference = reference.strip()
    if is_numeric_reference(reference):
        return reference

    log_props = {"shop": client.shop_domain, "order_reference": reference}
    with tracer.start_as_current_span("order_resolution") as span:
        span.set_attribute("trackpro.order_reference", reference)
        for attempt, page_size in enumerate(search_page_sizes(), start=1):
            try:
                orders = await client.aget_orders(limit=page_size, fields=ORDER_SEARCH_FIELDS)
            except ShopifyAdminAPIClientError as e:
                logger.warning(
                    f"Order search failed, treating as not found: {e}",
                    extra={"props": {**log_props, "attempt": attempt, "status_code": e.status_code}},
                )
                span.set_attribute("trackpro.resolution", "search_error")
                return None

            match = match_order(orders, reference)
            if match is not None:
                logger.info(
                    "Resolved order reference",
                    extra={"props": {**log_props, "attempt": attempt, "order_id": match.get("id")}},
                )
                span.set_attribute("trackpro.resolution", "found")
                span.set_attribute("trackpro.attempts", attempt)
                return str(match["id"])

            logger.info(
                "Order reference not in search page",
                extra={"props": {**log_props, "attempt": attempt, "page_size": page_size, "scanned": len(orders)}},
            )

        span.set_attribute("trackpro.resolution", "not_found")
        return None
