import re

from .exceptions import ValidationError

MYSHOPIFY_SUFFIX = ".myshopify.com"
SHOP_DOMAIN_REGEX = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")


def normalize_shop_domain(shop: str | None) -> str:
    """Canonicalizes a shop reference to ``<handle>.myshopify.com``.

    Accepts bare handles (``acme``), full domains and admin URLs
    (``https://acme.myshopify.com/``). Anything else is rejected so the
    value can be safely interpolated into upstream URLs.
    """
    if not shop or not shop.strip():
        raise ValidationError("Shop parameter is required")

    domain = shop.strip().lower()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
    domain = domain.split("/", 1)[0]
    if not domain.endswith(MYSHOPIFY_SUFFIX):
        domain = f"{domain}{MYSHOPIFY_SUFFIX}"

    if not SHOP_DOMAIN_REGEX.match(domain):
        raise ValidationError(f"Invalid shop domain: {shop}")
    return domain
