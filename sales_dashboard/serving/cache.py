"""
Redis Connection and Key Helpers

Backs the shared result tier:
- One process-wide connection pool, opened in the app lifespan
- JSON values under namespaced keys
- No expiry unless a TTL is given; the current result lives until replaced
"""

import json
from datetime import timedelta
from typing import Any, Optional, Union

import structlog
from redis.asyncio import ConnectionPool, Redis

from sales_dashboard.config import get_settings

logger = structlog.get_logger(__name__)

_redis_pool: Optional[ConnectionPool] = None
_redis_client: Optional[Redis] = None


async def init_redis(url: Optional[str] = None) -> Redis:
    """
    Open the shared connection pool and check it with a PING.

    Raises:
        redis.exceptions.RedisError: If the server cannot be reached
    """
    global _redis_pool, _redis_client

    if _redis_client is not None:
        return _redis_client

    redis_settings = get_settings().redis
    target = url or redis_settings.get_url()
    pool = ConnectionPool.from_url(
        target,
        max_connections=redis_settings.max_connections,
        socket_timeout=redis_settings.socket_timeout,
        decode_responses=redis_settings.decode_responses,
    )
    client = Redis(connection_pool=pool)

    try:
        await client.ping()
    except Exception as e:
        logger.error("Redis unreachable", host=redis_settings.host, error=str(e))
        await pool.disconnect()
        raise

    logger.info("Redis connection established", max_connections=redis_settings.max_connections)
    _redis_pool, _redis_client = pool, client
    return client


async def close_redis() -> None:
    """Release the pool; safe to call when it was never opened"""
    global _redis_pool, _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
    if _redis_pool is not None:
        await _redis_pool.disconnect()

    _redis_pool, _redis_client = None, None
    logger.info("Redis connection closed")


def get_redis() -> Redis:
    if _redis_client is None:
        raise RuntimeError("Redis not initialized. Call init_redis() first.")
    return _redis_client


async def cache_get(key: str) -> Optional[Any]:
    """Decoded JSON value under ``key``; raw string if it is not JSON"""
    value = await get_redis().get(key)
    if value is None:
        return None

    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning("Non-JSON value in cache", key=key)
        return value


async def cache_set(key: str, value: Any, ttl: Optional[Union[int, timedelta]] = None) -> bool:
    """Store ``value`` as JSON; returns False when it cannot be serialized"""
    try:
        serialized = json.dumps(value, default=str)
    except (TypeError, ValueError) as e:
        logger.warning("Value not serializable, not cached", key=key, error=str(e))
        return False

    client = get_redis()
    if isinstance(ttl, timedelta):
        ttl = int(ttl.total_seconds())
    if ttl:
        await client.setex(key, ttl, serialized)
    else:
        await client.set(key, serialized)
    return True


class CacheManager:
    """
    Keys scoped under one namespace.

    Example:
        cache = CacheManager("performance")
        await cache.set("current", payload)  # key "performance:current"
    """

    def __init__(self, namespace: str, default_ttl: Optional[int] = None):
        self.namespace = namespace
        self.default_ttl = default_ttl

    def _key(self, key: str) -> str:
        return f"{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        return await cache_get(self._key(key))

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        return await cache_set(self._key(key), value, ttl or self.default_ttl)
