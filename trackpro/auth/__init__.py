# Import from dependencies
from .dependencies import (
    decode_session_token,
    get_shop_domain,
    get_shopify_client_factory,
    verify_session_token,
)

# Import from service
from .service import (
    aexchange_shopify_code_for_token,
    ashop_needs_auth,
    astore_shopify_credentials,
    build_post_install_url,
    generate_shopify_auth_url,
)

# Import the router instance
from .router import router

__all__ = [
    # Dependencies
    "decode_session_token",
    "get_shop_domain",
    "get_shopify_client_factory",
    "verify_session_token",
    # Service
    "aexchange_shopify_code_for_token",
    "ashop_needs_auth",
    "astore_shopify_credentials",
    "build_post_install_url",
    "generate_shopify_auth_url",
    # Router
    "router",
]
