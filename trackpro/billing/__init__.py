from .dependencies import require_active_billing
from .router import router

__all__ = [
    "require_active_billing",
    "router",
]
