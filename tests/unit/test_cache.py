"""
Unit tests for the cache layer.
"""

import fnmatch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from planguard.core.cache import CacheManager


class InMemoryRedis:
    """The subset of redis.asyncio.Redis the cache manager uses."""

    def __init__(self, broken: bool = False):
        self.store: dict[str, str] = {}
        self.broken = broken

    async def get(self, key):
        if self.broken:
            raise RedisConnectionError("connection refused")
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        if self.broken:
            raise RedisConnectionError("connection refused")
        self.store[key] = value

    async def keys(self, pattern):
        return [key for key in self.store if fnmatch.fnmatch(key, pattern)]

    async def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)


@pytest.mark.unit
class TestCacheManager:
    """Test cache manager functionality."""

    def test_build_key(self):
        manager = CacheManager()

        assert manager._build_key("plans", "id:abc") == "planguard:plans:id:abc"

    async def test_uninitialized_cache_is_a_no_op(self):
        manager = CacheManager()

        assert manager.is_ready is False
        assert await manager.get("plans", "catalog") is None
        assert await manager.set("plans", "catalog", [1, 2]) is False
        assert await manager.invalidate_namespace("plans") == 0

    async def test_set_then_get(self):
        manager = CacheManager()
        manager._client = InMemoryRedis()

        await manager.set("plans", "id:abc", {"name": "Pro", "max_shops": 10})

        assert await manager.get("plans", "id:abc") == {"name": "Pro", "max_shops": 10}

    async def test_invalidate_namespace_only_touches_namespace(self):
        manager = CacheManager()
        manager._client = InMemoryRedis()
        await manager.set("plans", "id:a", 1)
        await manager.set("plans", "catalog", [1])
        await manager.set("other", "x", 2)

        deleted = await manager.invalidate_namespace("plans")

        assert deleted == 2
        assert await manager.get("other", "x") == 2

    async def test_redis_errors_degrade_to_miss(self):
        manager = CacheManager()
        manager._client = InMemoryRedis(broken=True)

        assert await manager.get("plans", "catalog") is None
        assert await manager.set("plans", "catalog", []) is False
