"""Redis client with connection pooling and graceful fallback."""
import logging

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import NoScriptError, RedisError

logger = logging.getLogger(__name__)

# Lua script for releasing a lock only if the caller still holds it.
# Atomic compare-and-delete: a holder whose lease already expired (and was taken
# over by another holder) must not delete the new holder's lock.
RELEASE_LOCK_SCRIPT = """
local key = KEYS[1]
local token = ARGV[1]

if redis.call('GET', key) == token then
    return redis.call('DEL', key)
end
return 0
"""


class RedisClient:
    """Async Redis client with connection pooling and graceful fallback."""

    def __init__(self, url: str, enabled: bool = True, pool_size: int = 20) -> None:
        self._url = url
        self._enabled = enabled
        self._pool_size = pool_size
        self._pool: ConnectionPool | None = None
        self._client: Redis | None = None
        self._release_lock_sha: str | None = None

    async def connect(self) -> None:
        """Initialize connection pool and load Lua scripts."""
        if not self._enabled:
            logger.info("Redis disabled by configuration")
            return
        try:
            self._pool = ConnectionPool.from_url(self._url, max_connections=self._pool_size)
            self._client = Redis(connection_pool=self._pool)
            # Verify connection
            await self._client.ping()
            await self._load_scripts()
            logger.info("Redis connected successfully")
        except RedisError as e:
            logger.warning("Redis connection failed: %s", e)
            self._client = None
            self._pool = None

    async def _load_scripts(self) -> None:
        """Load Lua scripts and store their SHAs for evalsha calls."""
        if not self._client:
            return
        try:
            self._release_lock_sha = await self._client.script_load(RELEASE_LOCK_SCRIPT)
            logger.info("Redis Lua scripts loaded")
        except RedisError as e:
            logger.warning("Failed to load Lua scripts: %s", e)

    async def close(self) -> None:
        """Close connection pool."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._pool = None
            logger.info("Redis connection closed")

    @property
    def is_connected(self) -> bool:
        """Check if client is connected."""
        return self._client is not None

    @property
    def release_lock_sha(self) -> str | None:
        """Get SHA for the lock release script."""
        return self._release_lock_sha

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        if not self._client:
            return False
        try:
            return await self._client.ping()
        except RedisError:
            return False

    async def get(self, key: str) -> bytes | None:
        """Get value, returns None if Redis unavailable."""
        if not self._client:
            return None
        try:
            return await self._client.get(key)
        except RedisError as e:
            logger.warning("Redis GET failed: %s", e)
            return None

    async def set(self, key: str, value: str | bytes) -> bool:
        """Set value without expiry, returns False if Redis unavailable."""
        if not self._client:
            return False
        try:
            await self._client.set(key, value)
            return True
        except RedisError as e:
            logger.warning("Redis SET failed: %s", e)
            return False

    async def set_if_absent(self, key: str, value: str, ttl_ms: int) -> bool | None:
        """
        Set value with expiry only if the key does not exist (SET NX PX).

        Returns:
            True if the key was set, False if it already exists,
            None if Redis unavailable.
        """
        if not self._client:
            return None
        try:
            return bool(await self._client.set(key, value, nx=True, px=ttl_ms))
        except RedisError as e:
            logger.warning("Redis SET NX failed: %s", e)
            return None

    async def release_lock(self, key: str, token: str) -> bool | None:
        """
        Delete a lock key if it still holds the given token.

        Handles NOSCRIPT errors by reloading scripts and retrying once.

        Args:
            key: Redis key of the lock
            token: Token returned when the lock was acquired

        Returns:
            True if the lock was released, False if it is held by someone else
            (or already expired), None if Redis unavailable
        """
        # SHA is None when Redis was unavailable at startup or _load_scripts()
        # failed during a NOSCRIPT retry.
        if not self._client or self._release_lock_sha is None:
            return None

        try:
            return bool(await self._client.evalsha(self._release_lock_sha, 1, key, token))
        except NoScriptError:
            # Redis restarted, scripts need reloading
            logger.warning("redis_script_reload", extra={"script": "release_lock"})
            await self._load_scripts()
            if self._release_lock_sha is None:
                return None
            # Retry once with fresh SHA
            try:
                return bool(
                    await self._client.evalsha(self._release_lock_sha, 1, key, token),
                )
            except RedisError as e:
                logger.warning("Redis release lock retry failed: %s", e)
                return None
        except RedisError as e:
            logger.warning("Redis release lock failed: %s", e)
            return None


# Global Redis client state using a container to avoid global statement
class _RedisState:
    """Container for global Redis client state."""

    client: RedisClient | None = None


_state = _RedisState()


def get_redis_client() -> RedisClient | None:
    """Get the global Redis client instance."""
    return _state.client


def set_redis_client(client: RedisClient | None) -> None:
    """Set the global Redis client instance."""
    _state.client = client
