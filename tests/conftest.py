import os
from collections.abc import Callable

# Settings are read at import time; configure before trackpro is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["SHOPIFY_API_KEY"] = "test-api-key"
os.environ["SHOPIFY_API_SECRET"] = "test-api-secret"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["BACKEND_URL"] = "https://backend.test"
os.environ["FRONTEND_URL"] = "https://app.test"
os.environ["BILLING_REQUIRED"] = "true"
os.environ["OPENTELEMETRY_ENABLED"] = "false"

import httpx  # noqa: E402
import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from tests.helpers import TEST_SHOP, ShopifyStub  # noqa: E402
from trackpro.database import Base  # noqa: E402
from trackpro.services.shopify_client import ShopifyAdminAPIClient  # noqa: E402


# --- Shopify ---


@pytest.fixture
def shopify() -> ShopifyStub:
    """Stub Admin API that accepts the stored token by default."""
    return ShopifyStub().on("GET", "shop.json", {"shop": {"id": 1, "myshopify_domain": TEST_SHOP}})


@pytest.fixture
def client_factory(shopify: ShopifyStub) -> Callable[[str, str], ShopifyAdminAPIClient]:
    def factory(shop_domain: str, access_token: str) -> ShopifyAdminAPIClient:
        return ShopifyAdminAPIClient(shop_domain, access_token, transport=shopify.transport)

    return factory


# --- Database ---


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# --- App ---


@pytest.fixture
async def app_client(session_factory, client_factory):
    """HTTP client against the app with the DB and Shopify swapped out."""
    from trackpro.auth.dependencies import get_shopify_client_factory
    from trackpro.core.limiter import limiter
    from trackpro.database import get_async_db
    from trackpro.main import app

    async def override_get_async_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_async_db] = override_get_async_db
    app.dependency_overrides[get_shopify_client_factory] = lambda: client_factory
    limiter.enabled = False

    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    limiter.enabled = True
    app.dependency_overrides.clear()
