import logging
from typing import Any

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud
from trackpro.core.config import settings
from trackpro.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    UpstreamServiceError,
)
from trackpro.schemas.tracking import (
    TrackingOutcome,
    TrackingOutcomeKind,
    TrackingRecord,
)
from trackpro.services.order_resolver import aresolve_order_id
from trackpro.services.shopify_client import (
    ShopifyAdminAPIClient,
    ShopifyAdminAPIClientError,
    ShopifyClientFactory,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def _first_of(single: Any, many: Any) -> str | None:
    if single:
        return single
    if isinstance(many, list) and many:
        return many[0] or None
    return None


def tracking_record_from_fulfillment(fulfillment: dict[str, Any]) -> TrackingRecord:
    """Reads tracking fields from one fulfillment, never mixing fulfillments."""
    return TrackingRecord(
        tracking_number=_first_of(
            fulfillment.get("tracking_number"), fulfillment.get("tracking_numbers")
        ),
        tracking_company=fulfillment.get("tracking_company") or None,
        tracking_url=_first_of(
            fulfillment.get("tracking_url"), fulfillment.get("tracking_urls")
        ),
    )


def select_fulfillment(fulfillments: list[dict[str, Any]]) -> dict[str, Any] | None:
    """First fulfillment with a tracking number, else the first one returned."""
    if not fulfillments:
        return None
    for fulfillment in fulfillments:
        if tracking_record_from_fulfillment(fulfillment).tracking_number:
            return fulfillment
    return fulfillments[0]


async def aprobe_access_token(client: ShopifyAdminAPIClient) -> None:
    """Fails fast when Shopify no longer accepts the stored token."""
    try:
        await client.aget_shop()
    except ShopifyAdminAPIClientError as e:
        if e.is_unauthorized:
            raise AuthenticationError(
                "Authentication failed. Please reinstall the app."
            ) from e
        raise UpstreamServiceError(
            "Failed to lookup tracking information", upstream_status=e.status_code
        ) from e


async def afetch_tracking(
    db: AsyncSession,
    shop_domain: str,
    order_reference: str,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> TrackingOutcome:
    """Looks up the tracking record for an order.

    Raises NotFoundError when the shop never installed the app,
    AuthenticationError when its token is rejected and UpstreamServiceError
    for any other Shopify failure. A missing order or missing tracking is a
    normal outcome, not an exception.
    """
    log_props = {"shop": shop_domain, "order_reference": order_reference}

    access_token = await crud.aget_access_token(db, shop_domain)
    if not access_token:
        logger.info("Tracking lookup for unknown shop", extra={"props": log_props})
        raise NotFoundError("Shop not found")

    with tracer.start_as_current_span("tracking_retrieval") as span:
        span.set_attribute("trackpro.shop", shop_domain)
        async with client_factory(shop_domain, access_token) as client:
            await aprobe_access_token(client)

            order_id = await aresolve_order_id(client, order_reference)
            if order_id is None:
                logger.info("Order reference did not resolve", extra={"props": log_props})
                return TrackingOutcome(kind=TrackingOutcomeKind.ORDER_NOT_FOUND)

            try:
                fulfillments = await client.aget_order_fulfillments(order_id)
            except ShopifyAdminAPIClientError as e:
                if e.is_not_found:
                    logger.info(
                        "Order not found upstream",
                        extra={"props": {**log_props, "order_id": order_id}},
                    )
                    return TrackingOutcome(
                        kind=TrackingOutcomeKind.ORDER_NOT_FOUND, order_id=order_id
                    )
                if e.is_unauthorized:
                    raise AuthenticationError("Authentication failed") from e
                logger.error(
                    f"Fulfillment fetch failed: {e}",
                    extra={"props": {**log_props, "order_id": order_id, "status_code": e.status_code}},
                )
                raise UpstreamServiceError(
                    "Failed to lookup tracking information", upstream_status=e.status_code
                ) from e

        fulfillment = select_fulfillment(fulfillments)
        if fulfillment is None:
            span.set_attribute("trackpro.outcome", TrackingOutcomeKind.NOT_DISPATCHED.value)
            return TrackingOutcome(kind=TrackingOutcomeKind.NOT_DISPATCHED, order_id=order_id)

        record = tracking_record_from_fulfillment(fulfillment)
        kind = TrackingOutcomeKind.NO_TRACKING if record.is_empty else TrackingOutcomeKind.FOUND
        span.set_attribute("trackpro.outcome", kind.value)
        logger.info(
            "Tracking lookup complete",
            extra={"props": {**log_props, "order_id": order_id, "outcome": kind.value, "fulfillments": len(fulfillments)}},
        )
        return TrackingOutcome(
            kind=kind,
            order_id=order_id,
            record=None if record.is_empty else record,
        )


def _summarize_fulfillment(fulfillment: dict[str, Any]) -> dict[str, Any]:
    record = tracking_record_from_fulfillment(fulfillment)
    return {
        "id": fulfillment.get("id"),
        "status": fulfillment.get("status"),
        **record.model_dump(),
        "created_at": fulfillment.get("created_at"),
        "updated_at": fulfillment.get("updated_at"),
    }


def summarize_order(order: dict[str, Any]) -> dict[str, Any]:
    """Admin dashboard view of an order with its fulfillments and line items."""
    return {
        "id": order.get("id"),
        "name": order.get("name"),
        "email": order.get("email"),
        "created_at": order.get("created_at"),
        "updated_at": order.get("updated_at"),
        "total_price": order.get("total_price"),
        "currency": order.get("currency"),
        "financial_status": order.get("financial_status"),
        "fulfillment_status": order.get("fulfillment_status"),
        "fulfillments": [_summarize_fulfillment(f) for f in order.get("fulfillments") or []],
        "line_items": [
            {
                "id": item.get("id"),
                "name": item.get("name"),
                "quantity": item.get("quantity"),
                "price": item.get("price"),
                "sku": item.get("sku"),
                "variant_id": item.get("variant_id"),
                "product_id": item.get("product_id"),
            }
            for item in order.get("line_items") or []
        ],
    }


async def alist_recent_orders(
    db: AsyncSession,
    shop_domain: str,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> list[dict[str, Any]]:
    """Most recent orders across all statuses, one upstream page."""
    access_token = await crud.aget_access_token(db, shop_domain)
    if not access_token:
        raise AuthenticationError("Shop not found. Please reinstall the app.")

    try:
        async with client_factory(shop_domain, access_token) as client:
            orders = await client.aget_orders(limit=settings.ORDER_SEARCH_WIDENED_PAGE_SIZE)
    except ShopifyAdminAPIClientError as e:
        if e.is_unauthorized:
            raise AuthenticationError("Authentication failed. Please reinstall the app.") from e
        raise UpstreamServiceError("Failed to fetch orders", upstream_status=e.status_code) from e

    return [summarize_order(order) for order in orders]


def _tracking_fulfillment(fulfillment: dict[str, Any]) -> dict[str, Any]:
    record = tracking_record_from_fulfillment(fulfillment)
    return {
        "id": fulfillment.get("id"),
        "status": fulfillment.get("status"),
        "tracking_company": record.tracking_company,
        "tracking_number": record.tracking_number,
        "tracking_url": record.tracking_url,
        "shipped_date": fulfillment.get("created_at"),
        "updated_at": fulfillment.get("updated_at"),
        "line_items": [
            {"name": item.get("name"), "quantity": item.get("quantity"), "sku": item.get("sku")}
            for item in fulfillment.get("line_items") or []
        ],
    }


def _carries_tracking_number(fulfillment: dict[str, Any], tracking_number: str) -> bool:
    if fulfillment.get("tracking_number") == tracking_number:
        return True
    return tracking_number in (fulfillment.get("tracking_numbers") or [])


def tracking_entry(order: dict[str, Any], tracking_number: str | None = None) -> dict[str, Any]:
    """Storefront view of an order; with a tracking number, only its fulfillments."""
    fulfillments = order.get("fulfillments") or []
    if tracking_number:
        fulfillments = [f for f in fulfillments if _carries_tracking_number(f, tracking_number)]
    return {
        "order_id": order.get("id"),
        "order_name": order.get("name"),
        "order_date": order.get("created_at"),
        "customer_email": order.get("email"),
        "total_price": order.get("total_price"),
        "currency": order.get("currency"),
        "financial_status": order.get("financial_status"),
        "fulfillment_status": order.get("fulfillment_status"),
        "fulfillments": [_tracking_fulfillment(f) for f in fulfillments],
    }


async def asearch_tracking(
    db: AsyncSession,
    shop_domain: str,
    tracking_number: str | None = None,
    email: str | None = None,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> list[dict[str, Any]]:
    """Finds orders by tracking number or by customer email.

    A tracking number is matched against one page of shipped orders; an email
    is filtered upstream. Both read a single bounded page. Returns an empty
    list when nothing matches.
    """
    if not tracking_number and not email:
        raise ValueError("tracking_number or email is required")
    mode = "tracking_number" if tracking_number else "email"
    log_props = {"shop": shop_domain, "mode": mode}

    access_token = await crud.aget_access_token(db, shop_domain)
    if not access_token:
        logger.info("Tracking search for unknown shop", extra={"props": log_props})
        raise NotFoundError("Shop not found")

    with tracer.start_as_current_span("tracking_search") as span:
        span.set_attribute("trackpro.shop", shop_domain)
        span.set_attribute("trackpro.search_mode", mode)
        async with client_factory(shop_domain, access_token) as client:
            await aprobe_access_token(client)
            try:
                if tracking_number:
                    orders = await client.aget_orders(
                        limit=settings.ORDER_SEARCH_WIDENED_PAGE_SIZE,
                        fulfillment_status="shipped",
                    )
                    orders = [
                        order for order in orders
                        if any(
                            _carries_tracking_number(f, tracking_number)
                            for f in order.get("fulfillments") or []
                        )
                    ]
                else:
                    orders = await client.aget_orders(
                        limit=settings.ORDER_SEARCH_PAGE_SIZE, email=email
                    )
            except ShopifyAdminAPIClientError as e:
                if e.is_unauthorized:
                    raise AuthenticationError("Authentication failed") from e
                logger.error(
                    f"Order search failed: {e}",
                    extra={"props": {**log_props, "status_code": e.status_code}},
                )
                raise UpstreamServiceError(
                    "Failed to lookup tracking information", upstream_status=e.status_code
                ) from e

        span.set_attribute("trackpro.matches", len(orders))
    logger.info(
        "Tracking search complete", extra={"props": {**log_props, "matches": len(orders)}}
    )
    return [tracking_entry(order, tracking_number) for order in orders]
