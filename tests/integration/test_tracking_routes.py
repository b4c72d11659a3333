import httpx
import pytest

from tests.helpers import TEST_SHOP, TEST_TOKEN, make_session_token
from trackpro import crud
from trackpro.core.config import settings
from trackpro.models.charge import ChargeStatus, ChargeType


@pytest.fixture
async def paid_shop(session_factory):
    """Installed shop whose latest charge is active."""
    async with session_factory() as session:
        await crud.aupsert_shop(session, shop_domain=TEST_SHOP, access_token=TEST_TOKEN)
        charge = await crud.acreate_charge(
            session, shop=TEST_SHOP, charge_id="800", charge_type=ChargeType.RECURRING,
            amount="9.99", currency="USD", trial_days=3,
        )
        await crud.aupdate_charge_status(session, db_obj=charge, status=ChargeStatus.ACTIVE)
        await session.commit()
    return TEST_SHOP


def admin_headers(shop_domain: str = TEST_SHOP) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_session_token(shop_domain)}"}


async def test_public_lookup_found(app_client, paid_shop, shopify):
    shopify.on(
        "GET",
        "orders/123/fulfillments.json",
        {"fulfillments": [{"tracking_number": "1Z9", "tracking_company": "UPS", "tracking_url": "https://ups.test/1Z9"}]},
    )

    response = await app_client.get(
        "/tracking", params={"shop": "test-shop", "order_id": "123", "public": "true"}
    )

    assert response.status_code == 200
    assert response.json() == {
        "tracking_number": "1Z9",
        "tracking_company": "UPS",
        "tracking_url": "https://ups.test/1Z9",
    }


async def test_admin_lookup_with_session_token(app_client, paid_shop, shopify):
    shopify.on("GET", "orders.json", {"orders": [{"id": 321, "name": "#1002", "order_number": 1002}]})
    shopify.on("GET", "orders/321/fulfillments.json", {"fulfillments": []})

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "#1002"}, headers=admin_headers()
    )

    assert response.status_code == 200
    assert response.json() == {
        "message": "No tracking info found. This order has not been dispatched yet."
    }


async def test_admin_lookup_without_session_token(app_client, paid_shop):
    response = await app_client.get("/tracking", params={"shop": TEST_SHOP, "order_id": "1"})

    assert response.status_code == 401
    assert response.json() == {"error": "Session token required"}


async def test_session_token_for_another_shop_is_rejected(app_client, paid_shop):
    response = await app_client.get(
        "/tracking",
        params={"shop": TEST_SHOP, "order_id": "1"},
        headers=admin_headers("someone-else.myshopify.com"),
    )
    assert response.status_code == 401


async def test_expired_session_token(app_client, paid_shop):
    token = make_session_token(expires_in=-120)
    response = await app_client.get(
        "/tracking",
        params={"shop": TEST_SHOP, "order_id": "1"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 401


async def test_unknown_order_is_soft_200(app_client, paid_shop, shopify):
    shopify.on("GET", "orders.json", {"orders": []})

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "#5555", "public": "true"}
    )

    assert response.status_code == 200
    assert response.json() == {"message": "Order not found"}
    assert len(shopify.calls_to("GET", "orders.json")) == 2


async def test_missing_shop_is_400(app_client):
    response = await app_client.get("/tracking", params={"order_id": "1", "public": "true"})

    assert response.status_code == 400
    assert response.json() == {"error": "Shop parameter is required"}


async def test_missing_order_id_is_400(app_client, paid_shop):
    response = await app_client.get("/tracking", params={"shop": TEST_SHOP, "public": "true"})

    assert response.status_code == 400
    assert response.json() == {"error": "Order ID, tracking number, or email is required"}


async def test_shop_without_billing_is_402(app_client, session_factory):
    async with session_factory() as session:
        await crud.aupsert_shop(session, shop_domain=TEST_SHOP, access_token=TEST_TOKEN)
        await session.commit()

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "1", "public": "true"}
    )

    assert response.status_code == 402
    assert response.json() == {"error": "Active billing plan required"}


async def test_billing_gate_can_be_disabled(app_client, session_factory, shopify, mocker):
    mocker.patch.object(settings, "BILLING_REQUIRED", False)
    async with session_factory() as session:
        await crud.aupsert_shop(session, shop_domain=TEST_SHOP, access_token=TEST_TOKEN)
        await session.commit()
    shopify.on("GET", "orders/1/fulfillments.json", {"fulfillments": [{"id": 1}]})

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "1", "public": "true"}
    )

    assert response.status_code == 200
    assert response.json() == {"message": "No tracking info found for this order yet."}


async def test_unknown_shop_is_404(app_client, mocker):
    mocker.patch.object(settings, "BILLING_REQUIRED", False)

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "1", "public": "true"}
    )

    assert response.status_code == 404
    assert response.json() == {"error": "Shop not found"}


async def test_rejected_token_is_401(app_client, paid_shop, shopify):
    shopify.on("GET", "shop.json", httpx.Response(401, json={"errors": "Invalid API key"}))

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "1", "public": "true"}
    )

    assert response.status_code == 401
    assert response.json() == {"error": "Authentication failed. Please reinstall the app."}


async def test_upstream_failure_is_500(app_client, paid_shop, shopify):
    shopify.on("GET", "orders/1/fulfillments.json", httpx.Response(502))

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "order_id": "1", "public": "true"}
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Failed to lookup tracking information"}


async def test_orders_listing(app_client, paid_shop, shopify):
    shopify.on("GET", "orders.json", {"orders": [{"id": 1, "name": "#1001", "fulfillments": []}]})

    response = await app_client.get("/orders", params={"shop": TEST_SHOP})

    assert response.status_code == 200
    assert response.json()["orders"][0]["name"] == "#1001"


async def test_orders_listing_requires_billing(app_client):
    response = await app_client.get("/orders", params={"shop": TEST_SHOP})
    assert response.status_code == 402


async def test_response_echoes_request_id(app_client):
    response = await app_client.get("/", headers={"X-Request-ID": "req-123"})
    assert response.headers["X-Request-ID"] == "req-123"


async def test_lookup_by_tracking_number(app_client, paid_shop, shopify):
    shopify.on(
        "GET",
        "orders.json",
        {
            "orders": [
                {"id": 1, "name": "#1001", "fulfillments": [{"id": 7, "tracking_number": "1ZX"}]},
                {"id": 2, "name": "#1002", "fulfillments": [{"id": 8, "tracking_number": "1ZY"}]},
            ]
        },
    )

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "tracking_number": "1ZY", "public": "true"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["found"] is True
    assert [entry["order_name"] for entry in body["tracking_data"]] == ["#1002"]
    assert body["tracking_data"][0]["fulfillments"][0]["tracking_number"] == "1ZY"


async def test_lookup_by_email(app_client, paid_shop, shopify):
    shopify.on(
        "GET",
        "orders.json",
        {"orders": [{"id": 3, "name": "#1003", "email": "ana@example.com", "fulfillments": []}]},
    )

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "email": "ana@example.com", "public": "true"}
    )

    assert response.status_code == 200
    assert response.json()["tracking_data"][0]["order_id"] == 3
    assert shopify.calls_to("GET", "orders.json")[0].url.params["email"] == "ana@example.com"


async def test_search_without_matches_is_404(app_client, paid_shop, shopify):
    shopify.on("GET", "orders.json", {"orders": []})

    response = await app_client.get(
        "/tracking", params={"shop": TEST_SHOP, "tracking_number": "NOPE", "public": "true"}
    )

    assert response.status_code == 404
    assert response.json() == {"error": "No orders found with the provided criteria"}


async def test_order_id_takes_precedence_over_search(app_client, paid_shop, shopify):
    shopify.on("GET", "orders/55/fulfillments.json", {"fulfillments": [{"tracking_number": "Q1"}]})

    response = await app_client.get(
        "/tracking",
        params={"shop": TEST_SHOP, "order_id": "55", "email": "ana@example.com", "public": "true"},
    )

    assert response.json()["tracking_number"] == "Q1"
    assert shopify.calls_to("GET", "orders.json") == []
