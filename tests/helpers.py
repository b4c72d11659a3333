import base64
import hashlib
import hmac
import time
from typing import Any

import httpx
import jwt

TEST_SHOP = "test-shop.myshopify.com"
TEST_TOKEN = "shpat_test_token"
API_KEY = "test-api-key"
API_SECRET = "test-api-secret"
WEBHOOK_SECRET = "test-webhook-secret"
API_PREFIX = "/admin/api/"


class ShopifyStub:
    """Answers Admin API requests from a routing table and records every call.

    Routes are keyed by (method, path) where path is relative to
    ``/admin/api/<version>/``, e.g. ``("GET", "shop.json")``. A route value is
    a JSON dict (200), an ``httpx.Response``, a list consumed one item per
    call (the last item repeats), or a callable taking the request.
    """

    def __init__(self):
        self.routes: dict[tuple[str, str], Any] = {}
        self.calls: list[httpx.Request] = []
        self.transport = httpx.MockTransport(self._handle)

    def on(self, method: str, path: str, response: Any) -> "ShopifyStub":
        self.routes[(method.upper(), path)] = response
        return self

    def calls_to(self, method: str, path: str) -> list[httpx.Request]:
        return [
            r for r in self.calls
            if r.method == method.upper() and self.relative_path(r) == path
        ]

    @staticmethod
    def relative_path(request: httpx.Request) -> str:
        path = request.url.path
        if path.startswith(API_PREFIX):
            # drop the version segment
            return path[len(API_PREFIX):].split("/", 1)[1]
        return path.lstrip("/")

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        key = (request.method, self.relative_path(request))
        if key not in self.routes:
            return httpx.Response(404, json={"errors": "Not Found"})
        response = self.routes[key]
        if isinstance(response, list):
            response = response.pop(0) if len(response) > 1 else response[0]
        if callable(response):
            response = response(request)
        if isinstance(response, httpx.Response):
            return response
        return httpx.Response(200, json=response)


def sign_webhook(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def sign_oauth_query(params: dict[str, str], secret: str = API_SECRET) -> dict[str, str]:
    message = "&".join(f"{k}={v}" for k, v in sorted(params.items()))
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return {**params, "hmac": digest}


def make_session_token(
    shop_domain: str = TEST_SHOP,
    secret: str = API_SECRET,
    audience: str = API_KEY,
    expires_in: int = 60,
) -> str:
    now = int(time.time())
    claims = {
        "iss": f"https://{shop_domain}/admin",
        "dest": f"https://{shop_domain}",
        "aud": audience,
        "sub": "42",
        "iat": now,
        "nbf": now - 5,
        "exp": now + expires_in,
    }
    return jwt.encode(claims, secret, algorithm="HS256")
