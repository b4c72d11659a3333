import base64
import hashlib
import hmac
import json
import time

# --- Shopify request signatures ---


def verify_webhook_hmac(body: bytes, signature: str | None, secret: str | None) -> bool:
    """Checks the base64 HMAC-SHA256 Shopify sends in X-Shopify-Hmac-Sha256."""
    if not signature or not secret:
        return False
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    expected = base64.b64encode(digest).decode("utf-8")
    return hmac.compare_digest(expected, signature)


def verify_shopify_hmac(query_params: dict, secret: str) -> bool:
    """Verifies the HMAC signature of a Shopify OAuth redirect."""
    hmac_signature = query_params.get("hmac")
    if not hmac_signature:
        return False

    # Message is every parameter except 'hmac' and 'signature', sorted by key
    params = []
    for key, value in sorted(query_params.items()):
        if key not in ["hmac", "signature"]:
            key_edited = key.replace("%", "%25").replace("&", "%26").replace("=", "%3D")
            value_edited = str(value).replace("%", "%25").replace("&", "%26")
            params.append(f"{key_edited}={value_edited}")

    message = "&".join(params)
    digest = hmac.new(
        secret.encode("utf-8"), msg=message.encode("utf-8"), digestmod=hashlib.sha256
    ).hexdigest()

    return hmac.compare_digest(digest, hmac_signature)


# --- Signed OAuth state ---
# Format: v1.<hex hmac of payload>.<base64url(json payload)>
# The payload carries the embedded-admin host and return URL across the
# OAuth round trip, plus an issue time in milliseconds.

STATE_VERSION = "v1"


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64url_decode(value: str) -> bytes:
    padding = "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(value + padding)


def _sign(payload_b64: str, secret: str) -> str:
    return hmac.new(
        secret.encode("utf-8"), payload_b64.encode("utf-8"), hashlib.sha256
    ).hexdigest()


def create_signed_state(
    secret: str,
    host: str | None = None,
    return_url: str | None = None,
    now: float | None = None,
) -> str:
    issued_at = int((now if now is not None else time.time()) * 1000)
    payload = {"h": host or None, "r": return_url or None, "t": issued_at}
    payload_b64 = _b64url_encode(json.dumps(payload, separators=(",", ":")).encode("utf-8"))
    return f"{STATE_VERSION}.{_sign(payload_b64, secret)}.{payload_b64}"


def verify_signed_state(
    state: str | None,
    secret: str,
    max_age_seconds: int,
    now: float | None = None,
) -> dict:
    """Returns {"host", "return_url"} from a valid state, or {} when it is
    missing, forged, malformed or expired."""
    if not state or not isinstance(state, str) or not state.startswith(f"{STATE_VERSION}."):
        return {}
    parts = state.split(".")
    if len(parts) != 3:
        return {}
    _, signature, payload_b64 = parts
    if not hmac.compare_digest(signature, _sign(payload_b64, secret)):
        return {}
    try:
        payload = json.loads(_b64url_decode(payload_b64))
    except (ValueError, TypeError):
        return {}
    if not isinstance(payload, dict):
        return {}

    issued_at = payload.get("t")
    current_ms = (now if now is not None else time.time()) * 1000
    if not isinstance(issued_at, (int, float)) or current_ms - issued_at > max_age_seconds * 1000:
        return {}
    return {"host": payload.get("h"), "return_url": payload.get("r")}
