"""
Key/value cache with TTL.

`InMemoryCache` serves tests and single-process runs; `RedisCache` uses a
pooled redis.asyncio client. Both treat backend errors as cache misses so
a cache outage never fails a classification.
"""

import time
from collections.abc import Callable
from typing import Protocol

import redis.asyncio as redis
from redis.asyncio.connection import ConnectionPool

from inbox_triage.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> str | None: ...

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool: ...

    async def delete(self, key: str) -> bool: ...


class InMemoryCache:
    """Dict-backed cache; expiry is checked lazily on read."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._store: dict[str, tuple[str, float | None]] = {}

    async def get(self, key: str) -> str | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self._clock() >= expires_at:
            del self._store[key]
            return None
        return value

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        expires_at = self._clock() + ttl_s if ttl_s else None
        self._store[key] = (value, expires_at)
        return True

    async def delete(self, key: str) -> bool:
        return self._store.pop(key, None) is not None


class RedisCache:
    """Redis client with connection pooling"""

    def __init__(self, redis_url: str, max_connections: int = 20, key_prefix: str = "triage:"):
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.key_prefix = key_prefix
        self.pool: ConnectionPool | None = None
        self.client: redis.Redis | None = None
        self._initialized = False

    async def initialize(self) -> None:
        """Initialize connection pool on startup"""
        if self._initialized:
            return

        try:
            self.pool = ConnectionPool.from_url(
                self.redis_url,
                max_connections=self.max_connections,
                retry_on_timeout=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                health_check_interval=30,
                decode_responses=True,
            )
            self.client = redis.Redis(connection_pool=self.pool)

            await self.client.ping()
            self._initialized = True
            logger.info("Redis cache initialized", max_connections=self.max_connections)

        except Exception as e:
            logger.error("Failed to initialize Redis cache", error=str(e))
            self._initialized = False
            raise RuntimeError("Redis initialization failed") from e

    async def close(self) -> None:
        """Clean shutdown"""
        try:
            if self.client:
                await self.client.aclose()
            if self.pool:
                await self.pool.disconnect()
            self._initialized = False
            logger.info("Redis cache closed")
        except Exception as e:
            logger.error("Error closing Redis cache", error=str(e))

    async def _ensure_initialized(self) -> None:
        if not self._initialized:
            logger.warning("Redis not initialized, attempting to initialize")
            await self.initialize()

    def _key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str) -> str | None:
        try:
            await self._ensure_initialized()
            result = await self.client.get(self._key(key))
            return result if result else None
        except Exception as e:
            logger.error("Redis GET failed", key=key[:30], error=str(e))
            return None

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        try:
            await self._ensure_initialized()
            if ttl_s:
                result = await self.client.setex(self._key(key), ttl_s, value)
            else:
                result = await self.client.set(self._key(key), value)
            return bool(result)
        except Exception as e:
            logger.error("Redis SET failed", key=key[:30], error=str(e))
            return False

    async def delete(self, key: str) -> bool:
        try:
            await self._ensure_initialized()
            result = await self.client.delete(self._key(key))
            return bool(result)
        except Exception as e:
            logger.error("Redis DELETE failed", key=key[:30], error=str(e))
            return False
