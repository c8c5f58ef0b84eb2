"""Key-value cache store with expiring locks, backed by shared Redis."""
import logging
import math
import uuid
from typing import TYPE_CHECKING, Protocol

from services.exceptions import CacheStoreUnavailableError

if TYPE_CHECKING:
    from core.redis import RedisClient

logger = logging.getLogger(__name__)

# Cache schema version - included in all cache keys (e.g., "billing:v1:customer:...")
#
# Bump this version when SubscriptionSnapshot fields are added, removed, or renamed.
# New code then looks for "billing:v2:..." keys and never decodes old entries; the
# next resync for each customer repopulates the cache.
CACHE_SCHEMA_VERSION = 1


def record_key(customer_id: str) -> str:
    """Generate cache key for a customer's subscription record."""
    return f"billing:v{CACHE_SCHEMA_VERSION}:customer:{customer_id}"


def lock_key(customer_id: str) -> str:
    """Generate key for a customer's resync lock."""
    return f"billing:lock:customer:{customer_id}"


class CacheStore(Protocol):
    """
    Minimal key-value store with a lock-with-expiry primitive.

    Locks must be effective across every process sharing the store, not just
    within one process.
    """

    async def get(self, key: str) -> bytes | str | None:
        """Return the stored value, or None if absent."""
        ...

    async def set(self, key: str, value: str) -> None:
        """Store a value, replacing any previous one."""
        ...

    async def acquire_lock(self, key: str, ttl_seconds: float) -> str | None:
        """Acquire an expiring lock; return its token, or None if already held."""
        ...

    async def release_lock(self, key: str, token: str) -> bool:
        """Release a lock held with token; False if it was no longer held."""
        ...


class RedisCacheStore:
    """
    CacheStore implementation over the shared Redis client.

    Reads fail open (a Redis outage looks like a cache miss). Writes and lock
    acquisition raise CacheStoreUnavailableError instead, so the resync lock can
    never silently degrade to "no lock".
    """

    def __init__(self, redis_client: "RedisClient") -> None:
        """Initialize cache store with Redis client."""
        self._redis = redis_client

    async def get(self, key: str) -> bytes | None:
        """Get value, None on miss or when Redis is unavailable."""
        return await self._redis.get(key)

    async def set(self, key: str, value: str) -> None:
        """
        Store value without expiry.

        Raises:
            CacheStoreUnavailableError: If Redis is unavailable.
        """
        if not await self._redis.set(key, value):
            raise CacheStoreUnavailableError("set")

    async def acquire_lock(self, key: str, ttl_seconds: float) -> str | None:
        """
        Acquire an expiring lock on key.

        Args:
            key: Lock key.
            ttl_seconds: Lease length; the lock frees itself after this if never released.

        Returns:
            A token to pass to release_lock, or None if the lock is held.

        Raises:
            CacheStoreUnavailableError: If Redis is unavailable.
        """
        token = uuid.uuid4().hex
        ttl_ms = max(1, math.ceil(ttl_seconds * 1000))
        acquired = await self._redis.set_if_absent(key, token, ttl_ms)
        if acquired is None:
            raise CacheStoreUnavailableError("acquire_lock")
        if not acquired:
            return None
        logger.debug("cache_lock_acquired key=%s", key)
        return token

    async def release_lock(self, key: str, token: str) -> bool:
        """
        Release a lock if token still holds it.

        Returns False when the lease already expired or Redis is unavailable;
        either way the lock frees itself at expiry.
        """
        released = await self._redis.release_lock(key, token)
        if not released:
            logger.warning("cache_lock_release_failed key=%s", key)
            return False
        logger.debug("cache_lock_released key=%s", key)
        return True
