import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud, schemas
from trackpro.auth.dependencies import get_shop_domain, get_shopify_client_factory
from trackpro.core.exceptions import ValidationError
from trackpro.core.shop_domain import normalize_shop_domain
from trackpro.database import get_async_db
from trackpro.models.charge import ChargeType
from trackpro.services import billing_reconciler, billing_service
from trackpro.services.shopify_client import ShopifyClientFactory

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/billing", tags=["Billing"])


async def _start_charge(
    db: AsyncSession,
    shop_domain: str,
    plan: ChargeType,
    client_factory: ShopifyClientFactory,
) -> HTMLResponse:
    redirect = await billing_service.acreate_charge(
        db, shop_domain, plan, client_factory=client_factory
    )
    return HTMLResponse(billing_service.render_top_level_redirect(redirect.confirmation_url))


@router.get("/subscribe", response_class=HTMLResponse)
async def subscribe(
    shop_domain: str = Depends(get_shop_domain),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    """Starts the monthly plan: creates a recurring charge and sends the merchant to approve it."""
    return await _start_charge(db, shop_domain, ChargeType.RECURRING, client_factory)


@router.get("/lifetime", response_class=HTMLResponse)
async def lifetime(
    shop_domain: str = Depends(get_shop_domain),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    return await _start_charge(db, shop_domain, ChargeType.LIFETIME, client_factory)


@router.get("/free")
async def free_plan(
    shop_domain: str = Depends(get_shop_domain),
    host: str | None = Query(None),
    db: AsyncSession = Depends(get_async_db),
):
    """Puts the shop on the free plan and returns the merchant to the pricing page."""
    try:
        await billing_service.aactivate_free_plan(db, shop_domain)
    except SQLAlchemyError as e:
        logger.error(
            f"Free plan activation failed: {e}", extra={"props": {"shop": shop_domain}}
        )
        await db.rollback()
        return RedirectResponse(
            url=billing_service.free_plan_redirect_url(shop_domain, succeeded=False, host=host),
            status_code=302,
        )
    return RedirectResponse(
        url=billing_service.free_plan_redirect_url(shop_domain, succeeded=True, host=host),
        status_code=302,
    )


@router.get("/callback")
async def billing_callback(
    shop: str | None = Query(None),
    charge_type: str | None = Query(None, alias="type"),
    charge_id: str | None = Query(None),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    """Return leg from Shopify's approval page. Always answers with a redirect."""
    try:
        shop_domain = normalize_shop_domain(shop)
    except ValidationError:
        logger.warning("Billing callback without a valid shop", extra={"props": {"shop": shop}})
        return RedirectResponse(
            url=billing_reconciler.build_admin_redirect(None, billing_reconciler.BILLING_ERROR),
            status_code=302,
        )

    url = await billing_reconciler.areconcile_charge(
        db, shop_domain, charge_type, charge_id, client_factory=client_factory
    )
    return RedirectResponse(url=url, status_code=302)


@router.get("/status")
async def billing_status(
    shop_domain: str = Depends(get_shop_domain),
    db: AsyncSession = Depends(get_async_db),
):
    latest = await crud.aget_latest_charge(db, shop_domain)
    status = schemas.BillingStatus(
        has_active_billing=await billing_service.ahas_active_billing(db, shop_domain),
        plan=schemas.Charge.model_validate(latest) if latest is not None else None,
    )
    return status.model_dump(mode="json", by_alias=True)
