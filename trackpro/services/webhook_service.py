import logging
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud

logger = logging.getLogger(__name__)

TOPIC_APP_UNINSTALLED = "app/uninstalled"
TOPIC_CUSTOMERS_DATA_REQUEST = "customers/data_request"
TOPIC_CUSTOMERS_REDACT = "customers/redact"
TOPIC_SHOP_REDACT = "shop/redact"

GDPR_TOPICS = (TOPIC_CUSTOMERS_DATA_REQUEST, TOPIC_CUSTOMERS_REDACT, TOPIC_SHOP_REDACT)


async def ahandle_app_uninstalled(db: AsyncSession, shop_domain: str) -> dict[str, Any]:
    """Forgets the shop: its access token and every charge row.

    Shopify cancels the app's charges on uninstall, so a reinstall starts
    without billing. Safe to replay.
    """
    credentials_deleted = await crud.adelete_shop(db, shop_domain)
    charges_deleted = await crud.adelete_charges_for_shop(db, shop_domain)
    logger.info(
        "App uninstalled",
        extra={
            "props": {
                "shop": shop_domain,
                "credentials_deleted": credentials_deleted,
                "charges_deleted": charges_deleted,
            }
        },
    )
    return {"success": True}


async def ahandle_customers_data_request(
    shop_domain: str, payload: dict[str, Any]
) -> dict[str, Any]:
    # No customer data is stored; order lookups go straight to Shopify
    customer_id = (payload.get("customer") or {}).get("id")
    logger.info(
        "Customer data request acknowledged",
        extra={"props": {"shop": shop_domain, "customer_id": customer_id}},
    )
    return {"success": True}


async def ahandle_customers_redact(
    shop_domain: str, payload: dict[str, Any]
) -> dict[str, Any]:
    customer_id = (payload.get("customer") or {}).get("id")
    logger.info(
        "Customer redaction acknowledged",
        extra={"props": {"shop": shop_domain, "customer_id": customer_id}},
    )
    return {"success": True}


async def ahandle_shop_redact(db: AsyncSession, shop_domain: str) -> dict[str, Any]:
    """Removes everything held for the shop. Safe to replay."""
    credentials_deleted = await crud.adelete_shop(db, shop_domain)
    charges_deleted = await crud.adelete_charges_for_shop(db, shop_domain)
    logger.info(
        "Shop data redacted",
        extra={
            "props": {
                "shop": shop_domain,
                "credentials_deleted": credentials_deleted,
                "charges_deleted": charges_deleted,
            }
        },
    )
    return {"success": True}


async def ahandle_gdpr_topic(
    db: AsyncSession, topic: str | None, shop_domain: str, payload: dict[str, Any]
) -> dict[str, Any]:
    """Dispatches a compliance webhook sent to the shared endpoint."""
    if topic == TOPIC_CUSTOMERS_DATA_REQUEST:
        return await ahandle_customers_data_request(shop_domain, payload)
    if topic == TOPIC_CUSTOMERS_REDACT:
        return await ahandle_customers_redact(shop_domain, payload)
    if topic == TOPIC_SHOP_REDACT:
        return await ahandle_shop_redact(db, shop_domain)
    logger.warning(
        f"Unhandled compliance topic '{topic}'", extra={"props": {"shop": shop_domain}}
    )
    return {"success": True}
