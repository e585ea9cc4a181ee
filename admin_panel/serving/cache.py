"""
Redis Cache Module

Short-lived cache for the dashboard summary. User metrics never go through
it; they are reconciled on every request.

Redis is optional: the API starts without it, and any cache failure falls
through to a live computation.
"""

import json
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Optional

import structlog
from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from admin_panel.config import Settings, get_settings

logger = structlog.get_logger(__name__)

# Global Redis connection
_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


class CacheUnavailableError(RuntimeError):
    """Redis was never initialized or a cache round trip failed."""


async def init_redis(settings: Optional[Settings] = None) -> Redis:
    """
    Initialize the Redis connection pool.

    Raises:
        CacheUnavailableError: If Redis does not answer a ping
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    settings = settings or get_settings()
    pool = ConnectionPool.from_url(
        settings.redis.get_url(),
        max_connections=settings.redis.max_connections,
        socket_timeout=settings.redis.socket_timeout,
        decode_responses=settings.redis.decode_responses,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except (RedisError, OSError) as e:
        await pool.disconnect()
        raise CacheUnavailableError(f"Redis ping failed: {e}") from e

    _redis_pool, _redis_client = pool, client
    logger.info("Redis connection established")
    return _redis_client


async def close_redis() -> None:
    """Close Redis connection pool"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
    if _redis_pool is not None:
        await _redis_pool.disconnect()
    _redis_pool, _redis_client = None, None


def get_redis() -> Redis:
    if _redis_client is None:
        raise CacheUnavailableError("Redis not initialized")
    return _redis_client


async def check_redis_health() -> dict:
    if _redis_client is None:
        return {"status": "unconfigured"}
    try:
        await _redis_client.ping()
    except (RedisError, OSError) as e:
        return {"status": "unhealthy", "error": str(e)}
    return {"status": "healthy"}


class CacheManager:
    """
    Namespaced JSON cache.

    Example:
        cache = CacheManager("dashboard", default_ttl=300)
        summary = await cache.get_or_set("summary", compute, cache_if=is_complete)
    """

    def __init__(self, namespace: str, default_ttl: int = 300):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    @asynccontextmanager
    async def _redis(self) -> AsyncIterator[Redis]:
        client = get_redis()
        try:
            yield client
        except (RedisError, OSError) as e:
            raise CacheUnavailableError(str(e)) from e

    async def get(self, key: str) -> Optional[Any]:
        """
        Cached value, or None on a miss or an undecodable entry.

        Raises:
            CacheUnavailableError: If Redis is down or not initialized
        """
        async with self._redis() as client:
            raw = await client.get(self._key(key))
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable cache entry", key=self._key(key))
            return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        Raises:
            CacheUnavailableError: If Redis is down or not initialized
        """
        payload = json.dumps(value, default=str)
        async with self._redis() as client:
            await client.setex(self._key(key), ttl or self.default_ttl, payload)

    async def _compute_and_store(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        cache_if: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """Compute a fresh value and store it when ``cache_if`` accepts it."""
        value = await factory()
        if cache_if is not None and not cache_if(value):
            logger.debug("Value not cached", key=self._key(key))
            return value
        try:
            await self.set(key, value, ttl)
        except CacheUnavailableError as e:
            logger.warning("Cache write failed", key=self._key(key), error=str(e))
        return value

    async def get_or_set(
        self,
        key: str,
        factory: Callable[[], Awaitable[Any]],
        ttl: Optional[int] = None,
        cache_if: Optional[Callable[[Any], bool]] = None,
    ) -> Any:
        """
        Cached value, or a computed one on a miss.

        Cache failures are logged and fall through to ``factory``; they never
        fail the caller.
        """
        try:
            cached = await self.get(key)
        except CacheUnavailableError as e:
            logger.warning("Cache read failed, computing live", key=self._key(key), error=str(e))
            return await factory()

        if cached is not None:
            return cached
        return await self._compute_and_store(key, factory, ttl, cache_if)
