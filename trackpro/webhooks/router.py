import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro.database import get_async_db
from trackpro.services import webhook_service
from trackpro.webhooks.dependencies import VerifiedWebhook, verified_webhook

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("/app/uninstalled")
async def app_uninstalled(
    webhook: VerifiedWebhook = Depends(verified_webhook),
    db: AsyncSession = Depends(get_async_db),
):
    return await webhook_service.ahandle_app_uninstalled(db, webhook.shop_domain)


@router.post("/gdpr")
async def gdpr(
    webhook: VerifiedWebhook = Depends(verified_webhook),
    db: AsyncSession = Depends(get_async_db),
):
    """Shared compliance endpoint; the topic header selects the handler."""
    return await webhook_service.ahandle_gdpr_topic(
        db, webhook.topic, webhook.shop_domain, webhook.payload
    )


@router.post("/customers/data_request")
async def customers_data_request(webhook: VerifiedWebhook = Depends(verified_webhook)):
    return await webhook_service.ahandle_customers_data_request(
        webhook.shop_domain, webhook.payload
    )


@router.post("/customers/redact")
async def customers_redact(webhook: VerifiedWebhook = Depends(verified_webhook)):
    return await webhook_service.ahandle_customers_redact(
        webhook.shop_domain, webhook.payload
    )


@router.post("/shop/redact")
async def shop_redact(
    webhook: VerifiedWebhook = Depends(verified_webhook),
    db: AsyncSession = Depends(get_async_db),
):
    return await webhook_service.ahandle_shop_redact(db, webhook.shop_domain)
