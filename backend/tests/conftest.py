"""Pytest fixtures for testing."""
import asyncio
import copy
import os
import time
import uuid
from collections.abc import AsyncGenerator, Callable
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from core.config import Settings
from models.base import Base
from services.exceptions import CacheStoreUnavailableError
from services.subscription_sync_service import SubscriptionSyncService

WEBHOOK_SECRET = "whsec_test_secret"


class FakeCacheStore:
    """
    In-memory CacheStore with expiring locks.

    Single event loop only; stands in for Redis in engine and API tests.
    """

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.locks: dict[str, tuple[str, float]] = {}
        self.fail_writes = False

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise CacheStoreUnavailableError("set")
        self.values[key] = value

    async def acquire_lock(self, key: str, ttl_seconds: float) -> str | None:
        now = time.monotonic()
        held = self.locks.get(key)
        if held is not None and held[1] > now:
            return None
        token = uuid.uuid4().hex
        self.locks[key] = (token, now + ttl_seconds)
        return token

    async def release_lock(self, key: str, token: str) -> bool:
        held = self.locks.get(key)
        if held is None or held[0] != token:
            return False
        del self.locks[key]
        return True


class FakeStripe:
    """
    Stand-in for StripeClient that records calls.

    list_latest_subscription reads the customer's current state when the call
    starts and returns it after `delay` seconds, like a slow upstream read.
    """

    def __init__(self) -> None:
        self.subscriptions: dict[str, dict[str, Any]] = {}
        self.list_calls: list[str] = []
        self.create_calls: list[tuple[str | None, str]] = []
        self.error: Exception | None = None
        self.delay = 0.0
        self.in_flight: dict[str, int] = {}
        self.max_in_flight: dict[str, int] = {}

    async def list_latest_subscription(
        self,
        customer_id: str,
        include_payment_method: bool = True,  # noqa: ARG002
    ) -> dict[str, Any] | None:
        self.list_calls.append(customer_id)
        self.in_flight[customer_id] = self.in_flight.get(customer_id, 0) + 1
        self.max_in_flight[customer_id] = max(
            self.max_in_flight.get(customer_id, 0), self.in_flight[customer_id],
        )
        try:
            response = copy.deepcopy(self.subscriptions.get(customer_id, {"data": []}))
            await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return response
        finally:
            self.in_flight[customer_id] -= 1

    async def create_customer(self, email: str | None, user_id: str) -> str:
        self.create_calls.append((email, user_id))
        if self.error is not None:
            raise self.error
        return f"cus_{len(self.create_calls):04d}"


def build_subscription(
    subscription_id: str = "sub_123",
    status: str = "active",
    price_id: str | None = "price_basic",
    period: tuple[int, int] | None = (1_700_000_000, 1_702_592_000),
    cancel_at_period_end: bool = False,
    payment_method: object = None,
) -> dict[str, Any]:
    """Build a Stripe subscription object as returned by the list endpoint."""
    items: list[dict[str, Any]] = []
    if price_id is not None:
        items.append({"id": "si_123", "price": {"id": price_id}})
    subscription: dict[str, Any] = {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "items": {"object": "list", "data": items},
        "cancel_at_period_end": cancel_at_period_end,
        "default_payment_method": payment_method,
    }
    if period is not None:
        subscription["current_period_start"] = period[0]
        subscription["current_period_end"] = period[1]
    return subscription


def build_card(brand: str = "visa", last4: str = "4242") -> dict[str, Any]:
    """Build an expanded Stripe card payment method."""
    return {"id": "pm_123", "object": "payment_method", "card": {"brand": brand, "last4": last4}}


@pytest.fixture
def make_subscription() -> Callable[..., dict[str, Any]]:
    """Factory for Stripe subscription objects."""
    return build_subscription


@pytest.fixture
def make_card() -> Callable[..., dict[str, Any]]:
    """Factory for expanded Stripe card payment methods."""
    return build_card


@pytest.fixture
def cache_store() -> FakeCacheStore:
    """In-memory cache store."""
    return FakeCacheStore()


@pytest.fixture
def fake_stripe() -> FakeStripe:
    """Recording Stripe stand-in."""
    return FakeStripe()


@pytest.fixture
def sync_service(cache_store: FakeCacheStore, fake_stripe: FakeStripe) -> SubscriptionSyncService:
    """Sync service over the in-memory store and fake Stripe, with short lock timings."""
    return SubscriptionSyncService(
        cache_store=cache_store,
        stripe_client=fake_stripe,
        lock_ttl_seconds=5.0,
        lock_wait_seconds=2.0,
        lock_poll_interval=0.001,
    )


@pytest.fixture
def test_settings() -> Settings:
    """Settings for API tests, independent of any local .env."""
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        STRIPE_SECRET_KEY="sk_test_123",
        STRIPE_WEBHOOK_SECRET=WEBHOOK_SECRET,
    )


@pytest.fixture
async def async_engine() -> AsyncGenerator[AsyncEngine]:
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory for tests that need independent sessions."""
    return async_sessionmaker(
        bind=async_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    """Create an async session on the test database."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(
    db_session: AsyncSession,
    sync_service: SubscriptionSyncService,
    fake_stripe: FakeStripe,
    test_settings: Settings,
) -> AsyncGenerator[AsyncClient]:
    """Create a test client with database, settings, and service overrides."""
    # api.main builds settings at import; every request uses the overrides below
    os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
    from api.dependencies import get_stripe_client, get_sync_service
    from api.main import app
    from core.config import get_settings
    from db.session import get_async_session

    async def override_get_async_session() -> AsyncGenerator[AsyncSession]:
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_async_session
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_sync_service] = lambda: sync_service
    app.dependency_overrides[get_stripe_client] = lambda: fake_stripe

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as test_client:
        yield test_client

    app.dependency_overrides.clear()
