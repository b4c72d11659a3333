import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro.auth.dependencies import get_shopify_client_factory, verify_session_token
from trackpro.billing.dependencies import require_active_billing
from trackpro.core.exceptions import NotFoundError, ValidationError
from trackpro.core.limiter import limiter
from trackpro.database import get_async_db
from trackpro.services import tracking_service
from trackpro.services.shopify_client import ShopifyClientFactory

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Tracking"])


@router.get("/tracking")
@limiter.limit("60/minute")
async def get_tracking(
    request: Request,  # required by the rate limiter
    _session_shop: str | None = Depends(verify_session_token),
    shop_domain: str = Depends(require_active_billing),
    order_id: str | None = Query(None, description="Numeric order id or display name such as #1002"),
    tracking_number: str | None = Query(None, description="Carrier tracking number"),
    email: str | None = Query(None, description="Email the order was placed with"),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    """Tracking details for one order, or a search by tracking number or email.

    Unknown orders and orders without tracking are answered with 200 and a
    ``message`` so the storefront widget can show them as normal states.
    Searches answer ``{"found": true, "tracking_data": [...]}`` or 404.
    """
    order_id = (order_id or "").strip()
    tracking_number = (tracking_number or "").strip()
    email = (email or "").strip()

    if order_id:
        outcome = await tracking_service.afetch_tracking(
            db, shop_domain, order_id, client_factory=client_factory
        )
        return outcome.to_response()

    if not tracking_number and not email:
        raise ValidationError("Order ID, tracking number, or email is required")

    tracking_data = await tracking_service.asearch_tracking(
        db,
        shop_domain,
        tracking_number=tracking_number or None,
        email=None if tracking_number else email,
        client_factory=client_factory,
    )
    if not tracking_data:
        raise NotFoundError("No orders found with the provided criteria")
    return {"found": True, "tracking_data": tracking_data}


@router.get("/orders")
async def list_orders(
    shop_domain: str = Depends(require_active_billing),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    orders = await tracking_service.alist_recent_orders(
        db, shop_domain, client_factory=client_factory
    )
    return {"orders": orders}
