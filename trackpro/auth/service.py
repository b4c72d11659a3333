import logging
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from trackpro import crud
from trackpro.core.config import settings
from trackpro.core.exceptions import AuthenticationError, UpstreamServiceError
from trackpro.core.security import create_signed_state
from trackpro.services.shopify_client import (
    ShopifyAdminAPIClient,
    ShopifyAdminAPIClientError,
    ShopifyClientFactory,
)

logger = logging.getLogger(__name__)


# --- Shopify OAuth Logic ---


def oauth_redirect_uri() -> str:
    return f"{settings.BACKEND_URL.rstrip('/')}/callback"


def generate_shopify_auth_url(
    shop_domain: str, host: str | None = None, return_url: str | None = None
) -> str:
    """Generates the Shopify authorization URL.

    The embedded-admin ``host`` and the page to return to travel inside the
    signed ``state`` so nothing has to be kept server-side between the two
    legs of the flow.

    Args:
    ----
        shop_domain: The normalized myshopify.com domain of the shop.
        host: Base64 host parameter Shopify passes to embedded apps.
        return_url: Frontend page to land on after install.

    """
    if not settings.SHOPIFY_API_KEY or not settings.SHOPIFY_API_SECRET:
        raise ValueError("Shopify API Key and Secret must be configured.")

    state = create_signed_state(settings.SHOPIFY_API_SECRET, host=host, return_url=return_url)
    query_params = {
        "client_id": settings.SHOPIFY_API_KEY,
        "scope": ",".join(settings.scopes),
        "redirect_uri": oauth_redirect_uri(),
        "state": state,
    }
    return f"https://{shop_domain}/admin/oauth/authorize?{urlencode(query_params)}"


async def aexchange_shopify_code_for_token(
    shop_domain: str, code: str, transport: httpx.AsyncBaseTransport | None = None
) -> str:
    """Exchanges the authorization code for an offline access token."""
    if not settings.SHOPIFY_API_KEY or not settings.SHOPIFY_API_SECRET:
        raise ValueError("Shopify API Key and Secret must be configured.")

    token_url = f"https://{shop_domain}/admin/oauth/access_token"
    payload = {
        "client_id": settings.SHOPIFY_API_KEY,
        "client_secret": settings.SHOPIFY_API_SECRET,
        "code": code,
    }

    try:
        async with httpx.AsyncClient(
            timeout=settings.SHOPIFY_HTTP_TIMEOUT_SECONDS, transport=transport
        ) as client:
            response = await client.post(token_url, json=payload)
            response.raise_for_status()
            token_data = response.json()
    except httpx.HTTPStatusError as e:
        logger.error(
            f"Shopify rejected the code exchange: {e.response.status_code}",
            extra={"props": {"shop": shop_domain}},
        )
        raise UpstreamServiceError(
            "Failed to complete OAuth flow", upstream_status=e.response.status_code
        ) from e
    except (httpx.RequestError, ValueError) as e:
        logger.error(f"Error exchanging Shopify code: {e}", extra={"props": {"shop": shop_domain}})
        raise UpstreamServiceError("Failed to complete OAuth flow") from e

    access_token = token_data.get("access_token")
    if not access_token:
        logger.error(
            f"No access_token in Shopify response: {token_data.get('error', 'Unknown error')}",
            extra={"props": {"shop": shop_domain}},
        )
        raise UpstreamServiceError("Failed to complete OAuth flow")
    return access_token


async def astore_shopify_credentials(
    db: AsyncSession,
    shop_domain: str,
    access_token: str,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> None:
    """Checks the fresh token against Shopify, then replaces any stored one."""
    try:
        async with client_factory(shop_domain, access_token) as client:
            await client.aget_shop()
    except ShopifyAdminAPIClientError as e:
        if e.is_unauthorized:
            raise AuthenticationError("Access token validation failed") from e
        raise UpstreamServiceError(
            "Failed to complete OAuth flow", upstream_status=e.status_code
        ) from e

    await crud.aupsert_shop(db, shop_domain=shop_domain, access_token=access_token)
    logger.info("Stored Shopify credentials", extra={"props": {"shop": shop_domain}})


async def ashop_needs_auth(
    db: AsyncSession,
    shop_domain: str,
    client_factory: ShopifyClientFactory = ShopifyAdminAPIClient,
) -> bool:
    """True when there is no stored token or Shopify no longer accepts it."""
    access_token = await crud.aget_access_token(db, shop_domain)
    if not access_token:
        return True
    try:
        async with client_factory(shop_domain, access_token) as client:
            await client.aget_shop()
    except ShopifyAdminAPIClientError as e:
        logger.info(
            "Stored token failed validation",
            extra={"props": {"shop": shop_domain, "status_code": e.status_code}},
        )
        return True
    return False


def build_post_install_url(
    shop_domain: str, host: str | None = None, return_url: str | None = None
) -> str:
    """Where the merchant lands after install.

    A preserved return URL is honoured only when it points at the app's own
    frontend origin; shop, host and ``installed`` are filled in if missing.
    """
    app_url = settings.FRONTEND_URL
    app_parts = urlsplit(app_url)
    target = app_parts
    if return_url:
        candidate = urlsplit(return_url)
        if (candidate.scheme, candidate.netloc) == (app_parts.scheme, app_parts.netloc):
            target = candidate

    query = dict(parse_qsl(target.query))
    query.setdefault("shop", shop_domain)
    if host:
        query.setdefault("host", host)
    query.setdefault("installed", "true")
    return urlunsplit(target._replace(query=urlencode(query)))
