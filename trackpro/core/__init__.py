"""
Core application components including configuration, request signing
helpers, shop domain normalization, rate limiting and custom exceptions.
"""

from .config import settings
from .exceptions import (
    APIException,
    AuthenticationError,
    NotFoundError,
    PaymentRequiredError,
    PermissionDeniedError,
    UpstreamServiceError,
    ValidationError,
    WebhookVerificationError,
)
from .limiter import limiter
from .security import (
    create_signed_state,
    verify_shopify_hmac,
    verify_signed_state,
    verify_webhook_hmac,
)
from .shop_domain import normalize_shop_domain

__all__ = [
    # config
    "settings",
    # exceptions
    "APIException",
    "AuthenticationError",
    "NotFoundError",
    "PaymentRequiredError",
    "PermissionDeniedError",
    "UpstreamServiceError",
    "ValidationError",
    "WebhookVerificationError",
    # rate limiting
    "limiter",
    # security
    "create_signed_state",
    "verify_shopify_hmac",
    "verify_signed_state",
    "verify_webhook_hmac",
    # shop domain
    "normalize_shop_domain",
]
