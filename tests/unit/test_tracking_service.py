import httpx
import pytest

from tests.helpers import TEST_SHOP, TEST_TOKEN
from trackpro import crud
from trackpro.core.exceptions import (
    AuthenticationError,
    NotFoundError,
    UpstreamServiceError,
)
from trackpro.schemas.tracking import TrackingOutcomeKind
from trackpro.services.tracking_service import (
    afetch_tracking,
    alist_recent_orders,
    asearch_tracking,
    select_fulfillment,
    tracking_record_from_fulfillment,
)


@pytest.fixture
async def installed_shop(db_session):
    await crud.aupsert_shop(db_session, shop_domain=TEST_SHOP, access_token=TEST_TOKEN)
    await db_session.commit()
    return TEST_SHOP


# --- Fulfillment selection ---


def test_select_prefers_first_fulfillment_with_tracking_number():
    fulfillments = [
        {"id": 1, "tracking_number": None, "tracking_company": "UPS"},
        {"id": 2, "tracking_number": "1Z999", "tracking_company": "UPS"},
        {"id": 3, "tracking_number": "1Z000", "tracking_company": "UPS"},
    ]
    assert select_fulfillment(fulfillments)["id"] == 2


def test_select_falls_back_to_first_fulfillment():
    fulfillments = [{"id": 1, "tracking_company": "DHL"}, {"id": 2}]
    assert select_fulfillment(fulfillments)["id"] == 1


def test_select_with_no_fulfillments():
    assert select_fulfillment([]) is None


def test_record_reads_plural_fields_from_same_fulfillment():
    record = tracking_record_from_fulfillment(
        {
            "tracking_numbers": ["AB123"],
            "tracking_urls": ["https://track.example/AB123"],
            "tracking_company": "Royal Mail",
        }
    )
    assert record.tracking_number == "AB123"
    assert record.tracking_url == "https://track.example/AB123"
    assert record.tracking_company == "Royal Mail"


def test_record_never_merges_across_fulfillments():
    fulfillments = [
        {"id": 1, "tracking_company": "DHL"},
        {"id": 2, "tracking_url": "https://track.example/x"},
    ]
    record = tracking_record_from_fulfillment(select_fulfillment(fulfillments))
    assert record.tracking_company == "DHL"
    assert record.tracking_url is None


# --- afetch_tracking ---


async def test_unknown_shop_raises_not_found(db_session, client_factory, shopify):
    with pytest.raises(NotFoundError):
        await afetch_tracking(db_session, TEST_SHOP, "#1001", client_factory=client_factory)
    assert shopify.calls == []


async def test_rejected_token_is_authentication_error(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "shop.json", httpx.Response(401, json={"errors": "Invalid API key"}))

    with pytest.raises(AuthenticationError):
        await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)

    # The probe stops the lookup before any order request
    assert len(shopify.calls) == 1


async def test_probe_server_error_is_upstream_error(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "shop.json", httpx.Response(503))

    with pytest.raises(UpstreamServiceError):
        await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)


async def test_found_tracking(db_session, installed_shop, client_factory, shopify):
    shopify.on(
        "GET",
        "orders/123/fulfillments.json",
        {
            "fulfillments": [
                {
                    "id": 9,
                    "tracking_number": "1Z999",
                    "tracking_company": "UPS",
                    "tracking_url": "https://ups.example/1Z999",
                }
            ]
        },
    )

    outcome = await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)

    assert outcome.kind is TrackingOutcomeKind.FOUND
    assert outcome.to_response() == {
        "tracking_number": "1Z999",
        "tracking_company": "UPS",
        "tracking_url": "https://ups.example/1Z999",
    }


async def test_zero_fulfillments_is_not_dispatched(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders/123/fulfillments.json", {"fulfillments": []})

    outcome = await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)

    assert outcome.kind is TrackingOutcomeKind.NOT_DISPATCHED
    assert outcome.to_response() == {
        "message": "No tracking info found. This order has not been dispatched yet."
    }


async def test_fulfillment_without_tracking_fields(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders/123/fulfillments.json", {"fulfillments": [{"id": 1, "status": "success"}]})

    outcome = await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)

    assert outcome.kind is TrackingOutcomeKind.NO_TRACKING
    assert outcome.to_response() == {"message": "No tracking info found for this order yet."}


async def test_unresolvable_reference_is_soft_not_found(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders.json", {"orders": []})

    outcome = await afetch_tracking(db_session, installed_shop, "#4242", client_factory=client_factory)

    assert outcome.kind is TrackingOutcomeKind.ORDER_NOT_FOUND
    assert outcome.to_response() == {"message": "Order not found"}
    assert shopify.calls_to("GET", "orders/4242/fulfillments.json") == []


async def test_upstream_404_on_fulfillments_is_soft_not_found(
    db_session, installed_shop, client_factory, shopify
):
    # No route registered: the stub answers 404
    outcome = await afetch_tracking(db_session, installed_shop, "777", client_factory=client_factory)
    assert outcome.kind is TrackingOutcomeKind.ORDER_NOT_FOUND


async def test_symbolic_reference_resolves_then_fetches(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders.json", {"orders": [{"id": 321, "name": "#1002", "order_number": 1002}]})
    shopify.on("GET", "orders/321/fulfillments.json", {"fulfillments": [{"tracking_number": "X1"}]})

    outcome = await afetch_tracking(db_session, installed_shop, "#1002", client_factory=client_factory)

    assert outcome.kind is TrackingOutcomeKind.FOUND
    assert outcome.order_id == "321"
    assert outcome.record.tracking_number == "X1"


async def test_other_fulfillment_failure_is_upstream_error(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders/123/fulfillments.json", httpx.Response(502))

    with pytest.raises(UpstreamServiceError):
        await afetch_tracking(db_session, installed_shop, "123", client_factory=client_factory)


# --- alist_recent_orders ---


async def test_list_recent_orders_summarizes(db_session, installed_shop, client_factory, shopify):
    shopify.on(
        "GET",
        "orders.json",
        {
            "orders": [
                {
                    "id": 1,
                    "name": "#1001",
                    "email": "a@example.com",
                    "fulfillments": [{"id": 7, "tracking_number": "T1", "status": "success"}],
                    "line_items": [{"id": 3, "name": "Mug", "quantity": 2, "price": "9.00"}],
                }
            ]
        },
    )

    orders = await alist_recent_orders(db_session, installed_shop, client_factory=client_factory)

    assert orders[0]["name"] == "#1001"
    assert orders[0]["fulfillments"][0]["tracking_number"] == "T1"
    assert orders[0]["line_items"][0]["quantity"] == 2
    assert shopify.calls_to("GET", "orders.json")[0].url.params["limit"] == "250"


async def test_list_recent_orders_unknown_shop(db_session, client_factory):
    with pytest.raises(AuthenticationError):
        await alist_recent_orders(db_session, TEST_SHOP, client_factory=client_factory)


# --- asearch_tracking ---

SHIPPED_ORDERS = [
    {
        "id": 11,
        "name": "#1011",
        "email": "ana@example.com",
        "created_at": "2024-05-01T10:00:00Z",
        "fulfillment_status": "fulfilled",
        "fulfillments": [
            {
                "id": 101,
                "status": "success",
                "tracking_number": "1ZAAA",
                "tracking_company": "UPS",
                "tracking_url": "https://ups.example/1ZAAA",
                "created_at": "2024-05-02T09:00:00Z",
                "line_items": [{"name": "Mug", "quantity": 2, "sku": "MUG-1", "price": "9.00"}],
            },
            {"id": 102, "status": "success", "tracking_number": "1ZBBB", "tracking_company": "UPS"},
        ],
    },
    {
        "id": 12,
        "name": "#1012",
        "fulfillments": [{"id": 103, "tracking_numbers": ["LX9"], "tracking_company": "DHL"}],
    },
]


async def test_search_by_tracking_number_keeps_only_matching_fulfillment(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders.json", {"orders": SHIPPED_ORDERS})

    results = await asearch_tracking(
        db_session, installed_shop, tracking_number="1ZBBB", client_factory=client_factory
    )

    params = shopify.calls_to("GET", "orders.json")[0].url.params
    assert params["fulfillment_status"] == "shipped"
    assert params["limit"] == "250"
    assert params["status"] == "any"
    assert len(results) == 1
    assert results[0]["order_id"] == 11
    assert results[0]["order_name"] == "#1011"
    assert [f["id"] for f in results[0]["fulfillments"]] == [102]


async def test_search_by_tracking_number_reads_plural_field(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders.json", {"orders": SHIPPED_ORDERS})

    results = await asearch_tracking(
        db_session, installed_shop, tracking_number="LX9", client_factory=client_factory
    )

    assert [r["order_id"] for r in results] == [12]
    assert results[0]["fulfillments"][0]["tracking_number"] == "LX9"


async def test_search_by_tracking_number_without_match(
    db_session, installed_shop, client_factory, shopify
):
    shopify.on("GET", "orders.json", {"orders": SHIPPED_ORDERS})

    results = await asearch_tracking(
        db_session, installed_shop, tracking_number="NOPE", client_factory=client_factory
    )

    assert results == []
    assert len(shopify.calls_to("GET", "orders.json")) == 1


async def test_search_by_email_filters_upstream(db_session, installed_shop, client_factory, shopify):
    shopify.on("GET", "orders.json", {"orders": SHIPPED_ORDERS[:1]})

    results = await asearch_tracking(
        db_session, installed_shop, email="ana@example.com", client_factory=client_factory
    )

    params = shopify.calls_to("GET", "orders.json")[0].url.params
    assert params["email"] == "ana@example.com"
    assert params["limit"] == "50"
    assert "fulfillment_status" not in params
    entry = results[0]
    assert entry["customer_email"] == "ana@example.com"
    assert entry["order_date"] == "2024-05-01T10:00:00Z"
    assert [f["id"] for f in entry["fulfillments"]] == [101, 102]
    assert entry["fulfillments"][0]["shipped_date"] == "2024-05-02T09:00:00Z"
    assert entry["fulfillments"][0]["line_items"] == [{"name": "Mug", "quantity": 2, "sku": "MUG-1"}]


async def test_search_unknown_shop(db_session, client_factory, shopify):
    with pytest.raises(NotFoundError):
        await asearch_tracking(db_session, TEST_SHOP, email="a@b.co", client_factory=client_factory)
    assert shopify.calls == []


async def test_search_rejected_token(db_session, installed_shop, client_factory, shopify):
    shopify.on("GET", "shop.json", httpx.Response(401))

    with pytest.raises(AuthenticationError):
        await asearch_tracking(
            db_session, installed_shop, tracking_number="1ZAAA", client_factory=client_factory
        )


async def test_search_upstream_failure(db_session, installed_shop, client_factory, shopify):
    shopify.on("GET", "orders.json", httpx.Response(502))

    with pytest.raises(UpstreamServiceError):
        await asearch_tracking(
            db_session, installed_shop, email="ana@example.com", client_factory=client_factory
        )


async def test_search_needs_a_criterion(db_session, installed_shop, client_factory):
    with pytest.raises(ValueError):
        await asearch_tracking(db_session, installed_shop, client_factory=client_factory)
