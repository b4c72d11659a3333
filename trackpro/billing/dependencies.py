import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro.auth.dependencies import get_shop_domain
from trackpro.core.config import settings
from trackpro.core.exceptions import PaymentRequiredError
from trackpro.database import get_async_db
from trackpro.services.billing_service import ahas_active_billing

logger = logging.getLogger(__name__)


async def require_active_billing(
    shop_domain: str = Depends(get_shop_domain),
    db: AsyncSession = Depends(get_async_db),
) -> str:
    """Gate for paid endpoints. Returns the shop domain when billing is active.

    Disabled entirely when BILLING_REQUIRED is false.
    """
    if not settings.BILLING_REQUIRED:
        return shop_domain
    if not await ahas_active_billing(db, shop_domain):
        logger.info("Blocked request without active billing", extra={"props": {"shop": shop_domain}})
        raise PaymentRequiredError("Active billing plan required")
    return shop_domain
