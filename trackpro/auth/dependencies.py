import logging

import jwt  # PyJWT
from fastapi import Query, Request

from trackpro.core.config import settings
from trackpro.core.exceptions import AuthenticationError, ValidationError
from trackpro.core.shop_domain import normalize_shop_domain
from trackpro.services.shopify_client import ShopifyAdminAPIClient, ShopifyClientFactory

logger = logging.getLogger(__name__)

SESSION_TOKEN_ALGORITHM = "HS256"


def get_shop_domain(
    shop: str | None = Query(None, description="Shop handle or myshopify.com domain"),
) -> str:
    """Normalized shop domain from the ``shop`` query parameter (400 if missing)."""
    return normalize_shop_domain(shop)


def get_shopify_client_factory() -> ShopifyClientFactory:
    """Builds Admin API clients. Overridden in tests with a mock transport."""
    return ShopifyAdminAPIClient


def decode_session_token(token: str) -> dict:
    """Verifies a Shopify App Bridge session token and returns its claims.

    Tokens are HS256 JWTs signed with the app secret whose audience is the
    app's API key.
    """
    if not settings.SHOPIFY_API_SECRET:
        raise AuthenticationError("Invalid session token")
    try:
        return jwt.decode(
            token,
            settings.SHOPIFY_API_SECRET,
            algorithms=[SESSION_TOKEN_ALGORITHM],
            audience=settings.SHOPIFY_API_KEY,
            options={"require": ["exp", "dest"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Session token expired") from e
    except jwt.InvalidTokenError as e:
        raise AuthenticationError("Invalid session token") from e


def verify_session_token(
    request: Request,
    public: str | None = Query(None, description="'true' for storefront lookups"),
) -> str | None:
    """Requires a session token for admin (embedded) requests.

    Storefront lookups pass ``public=true`` and are let through. For admin
    requests the token's ``dest`` must name the shop in the query string.
    Returns the shop domain from the token, or None for public requests.
    """
    if public == "true":
        return None

    session_token = request.headers.get("Authorization", "").replace("Bearer ", "").strip()
    if not session_token:
        raise AuthenticationError("Session token required")

    claims = decode_session_token(session_token)
    try:
        token_shop = normalize_shop_domain(str(claims["dest"]))
    except ValidationError as e:
        raise AuthenticationError("Invalid session token") from e
    requested_shop = request.query_params.get("shop")
    if requested_shop and normalize_shop_domain(requested_shop) != token_shop:
        logger.warning(
            "Session token shop does not match requested shop",
            extra={"props": {"shop": requested_shop, "token_shop": token_shop}},
        )
        raise AuthenticationError("Invalid session token")
    return token_shop
