"""
Reconciliation of cached subscription state with Stripe.

resync() is the only code path that writes a customer's cache record. Each resync
re-reads the customer's current state from Stripe and overwrites the record with
that single read, so however stale, duplicated, or reordered its trigger was, the
record never mixes data from two reads.

Resyncs for the same customer are serialized by an expiring lock in the shared
cache store, which works across every process and instance. Resyncs for different
customers do not coordinate.
"""
import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any, Protocol

from core.cache_store import CacheStore, lock_key, record_key
from schemas.cache_record import CacheRecord, deserialize_record, serialize_record
from services.exceptions import LockContentionError
from services.snapshot_normalizer import normalize

logger = logging.getLogger(__name__)


class SubscriptionSource(Protocol):
    """The upstream read resync() depends on."""

    async def list_latest_subscription(
        self,
        customer_id: str,
        include_payment_method: bool = True,
    ) -> dict[str, Any] | None:
        """Return the customer's most recent subscription list response."""
        ...


class SubscriptionSyncService:
    """Idempotent, lock-guarded resync of one customer's cached subscription."""

    def __init__(
        self,
        cache_store: CacheStore,
        stripe_client: SubscriptionSource,
        lock_ttl_seconds: float = 60.0,
        lock_wait_seconds: float = 30.0,
        lock_poll_interval: float = 0.25,
    ) -> None:
        self._store = cache_store
        self._stripe = stripe_client
        self._lock_ttl_seconds = lock_ttl_seconds
        self._lock_wait_seconds = lock_wait_seconds
        self._lock_poll_interval = lock_poll_interval

    async def resync(self, customer_id: str) -> CacheRecord:
        """
        Re-derive and overwrite the cached record for a customer.

        Safe to call redundantly, concurrently, and out of order. The customer does
        not need an identity mapping; Stripe is queried directly by id.

        Returns:
            The record that was written.

        Raises:
            LockContentionError: Another resync held the lock past the wait budget.
            UpstreamUnavailableError: Stripe failed transiently; nothing was written.
            UpstreamRequestError: Stripe rejected the request; nothing was written.
            CacheStoreUnavailableError: The cache store could not lock or write.
        """
        async with self._customer_lock(customer_id):
            raw = await self._stripe.list_latest_subscription(
                customer_id, include_payment_method=True,
            )
            record = normalize(raw)
            await self._store.set(record_key(customer_id), serialize_record(record))

        logger.info(
            "subscription_resync_complete customer_id=%s status=%s",
            customer_id,
            record.status,
        )
        return record

    async def get_cached(self, customer_id: str) -> CacheRecord | None:
        """
        Read the cached record without locking or calling Stripe.

        The record may be superseded by an in-flight resync at any moment.

        Returns:
            The cached record, or None on a cache miss, an unreadable entry, or
            when the cache store is unavailable.
        """
        data = await self._store.get(record_key(customer_id))
        if not data:
            logger.debug("subscription_cache_miss customer_id=%s", customer_id)
            return None
        try:
            return deserialize_record(data)
        except ValueError as e:
            logger.warning(
                "subscription_cache_unreadable customer_id=%s error=%s", customer_id, e,
            )
            return None

    @asynccontextmanager
    async def _customer_lock(self, customer_id: str) -> AsyncIterator[None]:
        """Hold the customer's resync lock, releasing it even when the body fails."""
        key = lock_key(customer_id)
        token = await self._acquire(key, customer_id)
        try:
            yield
        finally:
            await self._store.release_lock(key, token)

    async def _acquire(self, key: str, customer_id: str) -> str:
        """Poll for the lock until acquired or the wait budget runs out."""
        started = time.monotonic()
        while True:
            token = await self._store.acquire_lock(key, self._lock_ttl_seconds)
            if token is not None:
                return token
            waited = time.monotonic() - started
            if waited >= self._lock_wait_seconds:
                logger.warning(
                    "subscription_resync_lock_contention customer_id=%s waited=%.2f",
                    customer_id,
                    waited,
                )
                raise LockContentionError(customer_id, waited)
            await asyncio.sleep(self._lock_poll_interval)


# Global sync service state using a container to avoid global statement
class _SyncServiceState:
    """Container for global sync service state."""

    service: SubscriptionSyncService | None = None


_state = _SyncServiceState()


def get_sync_service() -> SubscriptionSyncService | None:
    """Get the global sync service instance."""
    return _state.service


def set_sync_service(service: SubscriptionSyncService | None) -> None:
    """Set the global sync service instance."""
    _state.service = service
