"""Export service components for use throughout the application."""

# Shopify related services
from trackpro.services.shopify_client import (
    ORDER_SEARCH_FIELDS,
    ShopifyAdminAPIClient,
    ShopifyAdminAPIClientError,
    ShopifyClientFactory,
)

# Order lookup and tracking
from trackpro.services.order_resolver import aresolve_order_id
from trackpro.services.tracking_service import (
    afetch_tracking,
    alist_recent_orders,
    asearch_tracking,
)

# Billing
from trackpro.services.billing_service import (
    acreate_charge,
    ahas_active_billing,
    render_top_level_redirect,
)
from trackpro.services.billing_reconciler import (
    areconcile_charge,
    build_admin_redirect,
)

# Webhooks
from trackpro.services.webhook_service import (
    ahandle_app_uninstalled,
    ahandle_gdpr_topic,
    ahandle_shop_redact,
)

__all__ = [
    # Shopify related services
    "ORDER_SEARCH_FIELDS",
    "ShopifyAdminAPIClient",
    "ShopifyAdminAPIClientError",
    "ShopifyClientFactory",
    # Order lookup and tracking
    "aresolve_order_id",
    "afetch_tracking",
    "alist_recent_orders",
    "asearch_tracking",
    # Billing
    "acreate_charge",
    "ahas_active_billing",
    "render_top_level_redirect",
    "areconcile_charge",
    "build_admin_redirect",
    # Webhooks
    "ahandle_app_uninstalled",
    "ahandle_gdpr_topic",
    "ahandle_shop_redact",
]
