"""Tests for the billing endpoints."""
from collections.abc import Callable
from typing import Any

from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from tests.conftest import FakeCacheStore, FakeStripe

from core.cache_store import record_key
from models.stripe_customer import StripeCustomer
from services.exceptions import UpstreamRequestError, UpstreamUnavailableError

SubscriptionFactory = Callable[..., dict[str, Any]]


async def _map_user(db: AsyncSession, user_id: str = "user-1", customer_id: str = "cus_123") -> None:
    db.add(StripeCustomer(user_id=user_id, customer_id=customer_id))
    await db.flush()


class TestEnsureCustomer:
    """POST /billing/users/{user_id}/customer"""

    async def test__creates_customer_once(
        self, client: AsyncClient, fake_stripe: FakeStripe,
    ) -> None:
        first = await client.post(
            "/billing/users/user-1/customer", json={"email": "a@example.com"},
        )
        second = await client.post("/billing/users/user-1/customer", json={})

        assert first.status_code == 200
        assert first.json() == {"customer_id": "cus_0001"}
        assert second.json() == first.json()
        assert fake_stripe.create_calls == [("a@example.com", "user-1")]

    async def test__stripe_unavailable__503(
        self, client: AsyncClient, fake_stripe: FakeStripe,
    ) -> None:
        fake_stripe.error = UpstreamUnavailableError("create_customer", "timed out")

        response = await client.post("/billing/users/user-1/customer", json={})

        assert response.status_code == 503

    async def test__stripe_rejected__502(
        self, client: AsyncClient, fake_stripe: FakeStripe,
    ) -> None:
        fake_stripe.error = UpstreamRequestError("create_customer", "Invalid email")

        response = await client.post(
            "/billing/users/user-1/customer", json={"email": "not-an-email"},
        )

        assert response.status_code == 502

    async def test__email_too_long__422(self, client: AsyncClient) -> None:
        response = await client.post(
            "/billing/users/user-1/customer", json={"email": "a" * 256},
        )

        assert response.status_code == 422


class TestCheckoutSuccess:
    """GET /billing/users/{user_id}/success"""

    async def test__no_mapping__no_op(
        self,
        client: AsyncClient,
        cache_store: FakeCacheStore,
        fake_stripe: FakeStripe,
    ) -> None:
        """A user who never started checkout triggers no Stripe call and no write."""
        response = await client.get("/billing/users/user-unknown/success")

        assert response.status_code == 200
        assert response.json() == {"customer_id": None, "record": None, "stale": False}
        assert fake_stripe.list_calls == []
        assert cache_store.values == {}

    async def test__mapped_user__resyncs_and_returns_record(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        cache_store: FakeCacheStore,
        fake_stripe: FakeStripe,
        make_subscription: SubscriptionFactory,
        make_card: Callable[..., dict[str, Any]],
    ) -> None:
        await _map_user(db_session)
        fake_stripe.subscriptions["cus_123"] = {
            "data": [make_subscription(payment_method=make_card())],
        }

        response = await client.get("/billing/users/user-1/success")

        assert response.status_code == 200
        data = response.json()
        assert data["customer_id"] == "cus_123"
        assert data["stale"] is False
        assert data["record"] == {
            "status": "active",
            "subscription_id": "sub_123",
            "price_id": "price_basic",
            "current_period_start": 1_700_000_000,
            "current_period_end": 1_702_592_000,
            "cancel_at_period_end": False,
            "payment_method": {"brand": "visa", "last4": "4242"},
        }
        assert fake_stripe.list_calls == ["cus_123"]
        assert record_key("cus_123") in cache_store.values

    async def test__mapped_user_without_subscription__status_none(
        self, client: AsyncClient, db_session: AsyncSession,
    ) -> None:
        await _map_user(db_session)

        response = await client.get("/billing/users/user-1/success")

        assert response.json()["record"]["status"] == "none"
        assert response.json()["record"]["subscription_id"] is None

    async def test__sync_fails__stale_cached_record(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        fake_stripe: FakeStripe,
        make_subscription: SubscriptionFactory,
    ) -> None:
        """The redirect is never blocked; the last known record is returned as stale."""
        await _map_user(db_session)
        fake_stripe.subscriptions["cus_123"] = {"data": [make_subscription(status="trialing")]}
        await client.get("/billing/users/user-1/success")

        fake_stripe.error = UpstreamUnavailableError("list_subscriptions", "timed out")
        response = await client.get("/billing/users/user-1/success")

        assert response.status_code == 200
        data = response.json()
        assert data["stale"] is True
        assert data["record"]["status"] == "trialing"

    async def test__sync_fails_without_cache__stale_empty(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        fake_stripe: FakeStripe,
    ) -> None:
        await _map_user(db_session)
        fake_stripe.error = UpstreamRequestError("list_subscriptions", "No such customer")

        response = await client.get("/billing/users/user-1/success")

        assert response.status_code == 200
        assert response.json() == {"customer_id": "cus_123", "record": None, "stale": True}


class TestGetSubscription:
    """GET /billing/users/{user_id}/subscription"""

    async def test__reads_cache_without_calling_stripe(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        cache_store: FakeCacheStore,
        fake_stripe: FakeStripe,
    ) -> None:
        await _map_user(db_session)
        cache_store.values[record_key("cus_123")] = '{"status":"none"}'

        response = await client.get("/billing/users/user-1/subscription")

        assert response.status_code == 200
        assert response.json()["record"]["status"] == "none"
        assert fake_stripe.list_calls == []

    async def test__cache_miss__null_record(
        self, client: AsyncClient, db_session: AsyncSession,
    ) -> None:
        await _map_user(db_session)

        response = await client.get("/billing/users/user-1/subscription")

        assert response.json() == {"customer_id": "cus_123", "record": None, "stale": False}

    async def test__no_mapping__null_customer(self, client: AsyncClient) -> None:
        response = await client.get("/billing/users/user-1/subscription")

        assert response.json() == {"customer_id": None, "record": None, "stale": False}
