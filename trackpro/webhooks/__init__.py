from .dependencies import VerifiedWebhook, verified_webhook
from .router import router

__all__ = [
    "VerifiedWebhook",
    "verified_webhook",
    "router",
]
