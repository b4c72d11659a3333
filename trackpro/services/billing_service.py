import html
import json
import logging
import time
import uuid
from decimal import Decimal
from urllib.parse import urlencode

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud
from trackpro.core.config import settings
from trackpro.core.exceptions import NotFoundError, UpstreamServiceError
from trackpro.models.charge import Charge, ChargeStatus, ChargeType
from trackpro.schemas.billing import ChargeRedirect
from trackpro.services.billing_reconciler import BILLING_ERROR, BILLING_SUCCESS
from trackpro.services.shopify_client import (
    ShopifyAdminAPIClient,
    ShopifyAdminAPIClientError,
    ShopifyClientFactory,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

PLAN_NAMES = {
    ChargeType.RECURRING: "Order Tracking Pro - Monthly",
    ChargeType.LIFETIME: "Order Tracking Pro - Lifetime",
    ChargeType.FREE: "Order Tracking Pro - Free",
}


def plan_price(plan: ChargeType) -> float:
    if plan is ChargeType.RECURRING:
        return settings.RECURRING_PRICE
    if plan is ChargeType.LIFETIME:
        return settings.LIFETIME_PRICE
    return 0.0


def plan_trial_days(plan: ChargeType) -> int:
    # One-time charges have no trial upstream
    return settings.BILLING_TRIAL_DAYS if plan is ChargeType.RECURRING else 0


def billing_return_url(shop_domain: str, plan: ChargeType) -> str:
    """Callback URL carrying shop and plan so the pending charge can be found
    even when Shopify does not echo charge_id back."""
    query = urlencode({"shop": shop_domain, "type": plan.value})
    return f"{settings.BACKEND_URL.rstrip('/')}/billing/callback?{query}"


def build_charge_request(shop_domain: str, plan: ChargeType) -> dict:
    charge = {
        "name": PLAN_NAMES[plan],
        "price": plan_price(plan),
        "return_url": billing_return_url(shop_domain, plan),
        "test": not settings.is_production,
    }
    trial_days = plan_trial_days(plan)
    if trial_days:
        charge["trial_days"] = trial_days
    return charge


async def acreate_charge(
    db: AsyncSession,
    shop_domain: str,
    plan: ChargeType,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> ChargeRedirect:
    """Creates the charge upstream and records it locally as pending.

    The returned confirmation URL must be opened in the top-level window;
    Shopify's approval page refuses to render inside the admin iframe.
    """
    if plan is ChargeType.FREE:
        raise ValueError("The free plan has no Shopify charge; use aactivate_free_plan")
    log_props = {"shop": shop_domain, "plan": plan.value}

    access_token = await crud.aget_access_token(db, shop_domain)
    if not access_token:
        raise NotFoundError("Shop not found")

    request_body = build_charge_request(shop_domain, plan)
    with tracer.start_as_current_span("charge_creation") as span:
        span.set_attribute("trackpro.shop", shop_domain)
        span.set_attribute("trackpro.plan", plan.value)
        try:
            async with client_factory(shop_domain, access_token) as client:
                if plan is ChargeType.RECURRING:
                    charge = await client.acreate_recurring_charge(request_body)
                else:
                    charge = await client.acreate_application_charge(request_body)
        except ShopifyAdminAPIClientError as e:
            logger.error(
                f"Charge creation failed: {e}",
                extra={"props": {**log_props, "status_code": e.status_code, "shopify_errors": str(e.shopify_errors)}},
            )
            raise UpstreamServiceError(
                "Failed to create subscription"
                if plan is ChargeType.RECURRING
                else "Failed to create lifetime charge",
                upstream_status=e.status_code,
            ) from e

        if not charge.get("id") or not charge.get("confirmation_url"):
            logger.error(
                "Charge creation response missing id or confirmation_url",
                extra={"props": log_props},
            )
            raise UpstreamServiceError("Invalid response from Shopify billing API")

        charge_id = str(charge["id"])
        await crud.acreate_charge(
            db,
            shop=shop_domain,
            charge_id=charge_id,
            charge_type=plan,
            amount=Decimal(str(charge.get("price") or request_body["price"])),
            currency=charge.get("currency") or settings.BILLING_CURRENCY,
            trial_days=int(charge.get("trial_days") or plan_trial_days(plan)),
        )
        span.set_attribute("trackpro.charge_id", charge_id)

    logger.info(
        "Pending charge recorded", extra={"props": {**log_props, "charge_id": charge_id}}
    )
    return ChargeRedirect(charge_id=charge_id, confirmation_url=charge["confirmation_url"])


async def ahas_active_billing(db: AsyncSession, shop_domain: str) -> bool:
    """True iff the shop's most recently created charge is active."""
    latest = await crud.aget_latest_charge(db, shop_domain)
    return latest is not None and latest.status is ChargeStatus.ACTIVE


async def aactivate_free_plan(db: AsyncSession, shop_domain: str) -> Charge:
    """Records the free plan as an active charge. Nothing is sent to Shopify."""
    charge_id = f"free_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
    charge = await crud.acreate_charge(
        db,
        shop=shop_domain,
        charge_id=charge_id,
        charge_type=ChargeType.FREE,
        amount=Decimal("0.00"),
        currency=settings.BILLING_CURRENCY,
        status=ChargeStatus.ACTIVE,
    )
    logger.info(
        "Free plan activated", extra={"props": {"shop": shop_domain, "charge_id": charge_id}}
    )
    return charge


def free_plan_redirect_url(shop_domain: str, succeeded: bool, host: str | None = None) -> str:
    """Pricing page of the frontend, tagged with the free-plan outcome."""
    query = {"shop": shop_domain, "billing": BILLING_SUCCESS if succeeded else BILLING_ERROR}
    if succeeded:
        query["plan"] = ChargeType.FREE.value
    if host:
        query["host"] = host
    return f"{settings.FRONTEND_URL.rstrip('/')}/pricing?{urlencode(query)}"


def render_top_level_redirect(url: str) -> str:
    """HTML that sends the top-level window to ``url``.

    The admin embeds the app in an iframe; a plain 302 would load the
    confirmation page inside it.
    """
    script_url = json.dumps(url).replace("</", "<\\/")
    link_url = html.escape(url, quote=True)
    return f"""<!DOCTYPE html>
<html>
  <head>
    <meta charset="utf-8">
    <title>Redirecting to Shopify billing</title>
    <script>
      window.top.location.href = {script_url};
    </script>
  </head>
  <body>
    <p>Redirecting to Shopify to approve the charge.</p>
    <p><a href="{link_url}" target="_top">Continue to billing</a></p>
  </body>
</html>
"""
