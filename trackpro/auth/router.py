import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro.auth import service as auth_service
from trackpro.auth.dependencies import get_shop_domain, get_shopify_client_factory
from trackpro.core.config import settings
from trackpro.core.exceptions import PermissionDeniedError, ValidationError
from trackpro.core.security import verify_shopify_hmac, verify_signed_state
from trackpro.core.shop_domain import normalize_shop_domain
from trackpro.database import get_async_db
from trackpro.services.shopify_client import ShopifyClientFactory

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Authentication"])


def _auth_path(shop: str) -> str:
    return f"/auth?{urlencode({'shop': shop})}"


@router.get("/")
async def read_root(shop: str | None = Query(None)):
    """Entry point Shopify opens on install; bounces into OAuth when a shop is given."""
    if shop:
        return RedirectResponse(url=_auth_path(shop))
    return {"message": "Order Tracking Pro API", "status": "running"}


# --- Shopify OAuth Endpoints ---


@router.get("/auth")
async def start_shopify_oauth(
    shop_domain: str = Depends(get_shop_domain),
    host: str | None = Query(None),
    return_url: str | None = Query(None, alias="returnUrl"),
):
    """Initiates the Shopify OAuth flow by redirecting the merchant to Shopify."""
    auth_url = auth_service.generate_shopify_auth_url(
        shop_domain, host=host, return_url=return_url
    )
    logger.info("Redirecting to Shopify OAuth", extra={"props": {"shop": shop_domain}})
    return RedirectResponse(url=auth_url)


@router.get("/callback")
async def handle_shopify_callback(
    request: Request,
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
    shop: str | None = Query(None),
    code: str | None = Query(None),
    state: str | None = Query(None),
):
    """Handles the redirect from Shopify after the merchant authorizes the app."""
    if not shop or not code:
        raise ValidationError("Missing required parameters")
    shop_domain = normalize_shop_domain(shop)

    query_param_dict = dict(request.query_params)
    if not settings.SHOPIFY_API_SECRET or not verify_shopify_hmac(
        query_param_dict, settings.SHOPIFY_API_SECRET
    ):
        logger.error("HMAC verification failed", extra={"props": {"shop": shop_domain}})
        raise PermissionDeniedError("Invalid HMAC signature")

    preserved = verify_signed_state(
        state, settings.SHOPIFY_API_SECRET, settings.OAUTH_STATE_TTL_SECONDS
    )
    if state and not preserved:
        logger.warning("OAuth state invalid or expired; ignoring preserved values", extra={"props": {"shop": shop_domain}})

    access_token = await auth_service.aexchange_shopify_code_for_token(shop_domain, code)
    await auth_service.astore_shopify_credentials(
        db, shop_domain, access_token, client_factory=client_factory
    )

    app_url = auth_service.build_post_install_url(
        shop_domain, host=preserved.get("host"), return_url=preserved.get("return_url")
    )
    logger.info("OAuth flow complete", extra={"props": {"shop": shop_domain}})
    return {
        "success": True,
        "message": "App installed successfully",
        "shop": shop_domain,
        "app_url": app_url,
    }


@router.get("/shop/status")
async def shop_status(
    shop_domain: str = Depends(get_shop_domain),
    db: AsyncSession = Depends(get_async_db),
    client_factory: ShopifyClientFactory = Depends(get_shopify_client_factory),
):
    if await auth_service.ashop_needs_auth(db, shop_domain, client_factory=client_factory):
        return {"installed": False, "needsAuth": True, "authUrl": _auth_path(shop_domain)}
    return {"installed": True, "needsAuth": False}
