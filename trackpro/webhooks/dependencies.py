import json
import logging
from typing import Any

from fastapi import Request
from pydantic import BaseModel

from trackpro.core.config import settings
from trackpro.core.exceptions import ValidationError, WebhookVerificationError
from trackpro.core.security import verify_webhook_hmac
from trackpro.core.shop_domain import normalize_shop_domain

logger = logging.getLogger(__name__)

HMAC_HEADER = "X-Shopify-Hmac-Sha256"
TOPIC_HEADER = "X-Shopify-Topic"
SHOP_HEADER = "X-Shopify-Shop-Domain"


class VerifiedWebhook(BaseModel):
    topic: str | None = None
    shop_domain: str
    payload: dict[str, Any]


async def verified_webhook(request: Request) -> VerifiedWebhook:
    """Authenticates a Shopify webhook against its raw body, then parses it.

    Nothing in the body is looked at until the signature has been checked.
    """
    body = await request.body()
    if not verify_webhook_hmac(body, request.headers.get(HMAC_HEADER), settings.webhook_secret):
        logger.warning(
            "Webhook signature verification failed",
            extra={"props": {"path": request.url.path, "topic": request.headers.get(TOPIC_HEADER)}},
        )
        raise WebhookVerificationError()

    try:
        payload = json.loads(body) if body else {}
    except ValueError as e:
        raise ValidationError("Invalid webhook payload") from e
    if not isinstance(payload, dict):
        raise ValidationError("Invalid webhook payload")

    shop = (
        request.headers.get(SHOP_HEADER)
        or payload.get("shop_domain")
        or payload.get("myshopify_domain")
    )
    return VerifiedWebhook(
        topic=request.headers.get(TOPIC_HEADER),
        shop_domain=normalize_shop_domain(shop),
        payload=payload,
    )
