"""
Redis cache layer for the subscription plan catalog.

Plan rows are read on every limit check and change rarely, so each plan
is cached by id and the active catalog under a single key. The cache is
strictly best-effort: any Redis failure degrades to a database read.
"""

import json
import logging
from typing import Any

import redis.asyncio as aioredis

from planguard.config import settings
from planguard.core.metrics import cache_operations_total

logger = logging.getLogger(__name__)


class CacheManager:
    """
    Redis-based cache manager.

    Handles:
    - Connection lifecycle
    - Serialization/deserialization
    - Key namespacing
    - TTL management
    """

    def __init__(self) -> None:
        self._client: aioredis.Redis | None = None

    async def init(self) -> None:
        """Initialize Redis connection pool."""
        logger.info("Initializing Redis connection...")

        client = aioredis.from_url(
            str(settings.redis_url),
            encoding="utf-8",
            decode_responses=True,
            max_connections=20,
        )

        try:
            await client.ping()
        except Exception as e:
            # Plan lookups fall back to the database
            logger.warning(f"Redis unavailable, plan cache disabled: {e}")
            await client.aclose()
            return

        self._client = client
        logger.info("Redis connection initialized")

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis connection closed")

    @property
    def client(self) -> aioredis.Redis:
        """Get Redis client."""
        if not self._client:
            raise RuntimeError("Cache not initialized. Call init() first.")
        return self._client

    @property
    def is_ready(self) -> bool:
        return self._client is not None

    def _build_key(self, namespace: str, key: str) -> str:
        """
        Build namespaced cache key.

        Format: planguard:{namespace}:{key}
        Example: planguard:plans:name:Pro
        """
        return f"planguard:{namespace}:{key}"

    async def get(self, namespace: str, key: str) -> Any | None:
        """
        Get value from cache.

        Returns:
            Deserialized value or None if not found or unavailable
        """
        if not self.is_ready:
            return None

        cache_key = self._build_key(namespace, key)

        try:
            value = await self.client.get(cache_key)
        except Exception as e:
            logger.warning(f"Cache get error: {cache_key} - {e}")
            return None

        cache_operations_total.labels(operation="get", hit=str(value is not None)).inc()
        if value is None:
            return None
        return json.loads(value)

    async def set(
        self,
        namespace: str,
        key: str,
        value: Any,
        ttl: int | None = None,
    ) -> bool:
        """
        Set value in cache.

        Args:
            namespace: Cache namespace
            key: Cache key
            value: Value to cache (must be JSON-serializable)
            ttl: Time-to-live in seconds (None = use default)

        Returns:
            True if set successfully
        """
        if not self.is_ready:
            return False

        cache_key = self._build_key(namespace, key)
        ttl = ttl or settings.redis_cache_ttl

        try:
            serialized = json.dumps(value, default=str)
            await self.client.set(cache_key, serialized, ex=ttl)
            return True
        except Exception as e:
            logger.warning(f"Cache set error: {cache_key} - {e}")
            return False

    async def invalidate_namespace(self, namespace: str) -> int:
        """
        Invalidate all keys in a namespace.

        Used when a plan row is edited and every cached lookup is stale.

        Returns:
            Number of keys deleted
        """
        if not self.is_ready:
            return 0

        pattern = self._build_key(namespace, "*")

        try:
            keys = await self.client.keys(pattern)
            if keys:
                deleted = await self.client.delete(*keys)
                logger.info(f"Invalidated {deleted} keys in namespace: {namespace}")
                return deleted
            return 0
        except Exception as e:
            logger.warning(f"Cache invalidate error: {namespace} - {e}")
            return 0


# Global instance
cache_manager = CacheManager()
