"""Reconciles a local charge with Shopify after the merchant returns from the
confirmation page.

This is the only place local and remote billing state meet. Whatever happens,
the merchant is sent back to the admin with a ``billing=`` tag; errors never
surface as an HTTP error page.
"""

import logging
from urllib.parse import urlencode

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud
from trackpro.core.config import settings
from trackpro.logging_config import correlation_id_cv
from trackpro.models.charge import Charge, ChargeStatus, ChargeType
from trackpro.services.shopify_client import (
    ShopifyAdminAPIClient,
    ShopifyClientFactory,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

BILLING_SUCCESS = "success"
BILLING_DECLINED = "declined"
BILLING_ERROR = "error"


def billing_tag(status: ChargeStatus | None) -> str:
    if status is ChargeStatus.ACTIVE:
        return BILLING_SUCCESS
    if status is ChargeStatus.DECLINED:
        return BILLING_DECLINED
    return BILLING_ERROR


def build_admin_redirect(shop_domain: str | None, tag: str, **extra: str) -> str:
    """URL of the app inside the shop's admin, tagged with the billing outcome.

    Falls back to the standalone frontend when no API key is configured or the
    shop is unknown.
    """
    query = urlencode({"billing": tag, **{k: v for k, v in extra.items() if v}})
    if shop_domain and settings.SHOPIFY_API_KEY:
        return f"https://{shop_domain}/admin/apps/{settings.SHOPIFY_API_KEY}?{query}"
    base = settings.FRONTEND_URL.rstrip("/")
    if shop_domain:
        query = f"{query}&{urlencode({'shop': shop_domain})}"
    return f"{base}?{query}"


async def _aresolve_local_charge(
    db: AsyncSession,
    shop_domain: str,
    charge_type: ChargeType | None,
    charge_id: str | None,
) -> Charge | None:
    if charge_id:
        charge = await crud.aget_charge_by_charge_id(db, charge_id)
        if charge is not None and charge.shop != shop_domain:
            logger.warning(
                "Billing callback charge belongs to another shop",
                extra={"props": {"shop": shop_domain, "charge_id": charge_id}},
            )
            return None
        return charge
    if charge_type is None:
        return None
    # Shopify does not always echo charge_id on the return URL
    return await crud.aget_latest_pending_charge(
        db, shop=shop_domain, charge_type=charge_type
    )


async def areconcile_charge(
    db: AsyncSession,
    shop_domain: str,
    charge_type_param: str | None,
    charge_id: str | None,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> str:
    """Brings the local charge in line with Shopify and returns the redirect URL.

    Never raises.
    """
    log_props = {
        "shop": shop_domain,
        "charge_type": charge_type_param,
        "charge_id": charge_id,
    }
    with tracer.start_as_current_span("billing_reconciliation") as span:
        span.set_attribute("trackpro.shop", shop_domain)
        try:
            charge_type = ChargeType.parse(charge_type_param)
            charge = await _aresolve_local_charge(db, shop_domain, charge_type, charge_id)
            if charge is None:
                logger.warning("No charge to reconcile", extra={"props": log_props})
                span.set_attribute("trackpro.billing", BILLING_ERROR)
                return build_admin_redirect(shop_domain, BILLING_ERROR, reason="charge_not_found")

            log_props["charge_id"] = charge.charge_id
            if charge.status.is_terminal:
                # Replayed callback: report what we already know
                logger.info(
                    "Charge already settled",
                    extra={"props": {**log_props, "status": charge.status.value}},
                )
                tag = billing_tag(charge.status)
                span.set_attribute("trackpro.billing", tag)
                return build_admin_redirect(shop_domain, tag, status=charge.status.value)

            access_token = await crud.aget_access_token(db, shop_domain)
            if not access_token:
                logger.warning("Billing callback for shop without credentials", extra={"props": log_props})
                span.set_attribute("trackpro.billing", BILLING_ERROR)
                return build_admin_redirect(shop_domain, BILLING_ERROR, reason="shop_not_found")

            async with client_factory(shop_domain, access_token) as client:
                if charge.type is ChargeType.RECURRING:
                    remote = await client.aget_recurring_charge(charge.charge_id)
                else:
                    remote = await client.aget_application_charge(charge.charge_id)
                upstream_status = remote.get("status")
                status = ChargeStatus.from_upstream(upstream_status)

                if charge.type is ChargeType.RECURRING and status is ChargeStatus.ACCEPTED:
                    await client.aactivate_recurring_charge(charge.charge_id)
                    status = ChargeStatus.ACTIVE

            if status is not None and status is not charge.status:
                await crud.aupdate_charge_status(db, db_obj=charge, status=status)

            final_status = charge.status
            tag = billing_tag(final_status)
            extra = {"status": final_status.value}
            if final_status is ChargeStatus.ACCEPTED:
                # Approved by the merchant but not yet active upstream
                extra["reason"] = "awaiting_activation"
            span.set_attribute("trackpro.billing", tag)
            logger.info(
                "Charge reconciled",
                extra={"props": {**log_props, "upstream_status": upstream_status, "status": final_status.value}},
            )
            return build_admin_redirect(shop_domain, tag, **extra)
        except Exception as e:
            logger.exception(
                f"Billing reconciliation failed: {e}",
                extra={"props": {**log_props, "correlation_id": correlation_id_cv.get()}},
            )
            span.record_exception(e)
            span.set_attribute("trackpro.billing", BILLING_ERROR)
            return build_admin_redirect(shop_domain, BILLING_ERROR)
