import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from core.cache import (
    CacheManager,
    MemoryCacheBackend,
    RedisCacheBackend,
    build_cache_backend,
    cache_key,
)


class TestMemoryCacheBackend:
    """Test MemoryCacheBackend functionality."""

    @pytest.fixture
    def cache_backend(self):
        return MemoryCacheBackend(max_size=100, default_ttl=60)

    async def test_set_and_get(self, cache_backend):
        await cache_backend.set("test_key", {"user_id": "u1"})
        assert await cache_backend.get("test_key") == {"user_id": "u1"}

    async def test_get_nonexistent_key(self, cache_backend):
        assert await cache_backend.get("nonexistent_key") is None

    async def test_delete(self, cache_backend):
        await cache_backend.set("test_key", "test_value")
        assert await cache_backend.delete("test_key") is True
        assert await cache_backend.delete("test_key") is False
        assert await cache_backend.get("test_key") is None

    async def test_exists(self, cache_backend):
        await cache_backend.set("test_key", "test_value")
        assert await cache_backend.exists("test_key") is True
        assert await cache_backend.exists("nonexistent_key") is False

    async def test_ttl_expiration(self, cache_backend):
        await cache_backend.set("test_key", "test_value", ttl=0.1)
        assert await cache_backend.get("test_key") == "test_value"

        await asyncio.sleep(0.2)
        assert await cache_backend.get("test_key") is None

    async def test_lru_eviction(self):
        cache_backend = MemoryCacheBackend(max_size=2)

        await cache_backend.set("key1", "value1")
        await cache_backend.set("key2", "value2")
        await cache_backend.get("key1")  # key2 becomes least recently used
        await cache_backend.set("key3", "value3")

        assert await cache_backend.get("key2") is None
        assert await cache_backend.get("key1") == "value1"
        assert await cache_backend.get("key3") == "value3"
        assert (await cache_backend.stats())["evictions"] == 1

    async def test_keys_pattern(self, cache_backend):
        await cache_backend.set("session:a", 1)
        await cache_backend.set("session:b", 2)
        await cache_backend.set("music:search:x:5", 3)

        assert sorted(await cache_backend.keys("session:*")) == ["session:a", "session:b"]
        assert len(await cache_backend.keys()) == 3

    async def test_stats(self, cache_backend):
        await cache_backend.set("key1", "value1")
        await cache_backend.get("key1")
        await cache_backend.get("missing")

        stats = await cache_backend.stats()

        assert stats["backend"] == "memory"
        assert stats["total_keys"] == 1
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5


class TestRedisCacheBackend:
    """Redis backend against a mocked client."""

    @pytest.fixture
    def redis_client(self):
        client = Mock()
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=1)
        client.exists = AsyncMock(return_value=1)
        client.aclose = AsyncMock()
        return client

    async def test_values_are_json_encoded(self, redis_client):
        backend = RedisCacheBackend(client=redis_client)

        await backend.set("session:abc", {"user_id": "u1"}, ttl=2.5)

        redis_client.set.assert_awaited_once_with("session:abc", '{"user_id": "u1"}', px=2500)

    async def test_get_decodes_json(self, redis_client):
        redis_client.get.return_value = '{"user_id": "u1"}'
        backend = RedisCacheBackend(client=redis_client)

        assert await backend.get("session:abc") == {"user_id": "u1"}

    async def test_delete_and_close(self, redis_client):
        backend = RedisCacheBackend(client=redis_client)

        assert await backend.delete("k") is True
        await backend.close()
        redis_client.aclose.assert_awaited_once()


class TestCacheManager:
    async def test_get_or_set(self, cache_manager):
        factory = AsyncMock(return_value=["album"])

        first = await cache_manager.get_or_set("music:album:1", factory, ttl=60)
        second = await cache_manager.get_or_set("music:album:1", factory, ttl=60)

        assert first == second == ["album"]
        factory.assert_awaited_once()

    async def test_backend_errors_are_contained(self):
        backend = Mock()
        backend.get = AsyncMock(side_effect=ConnectionError("redis down"))
        backend.set = AsyncMock(side_effect=ConnectionError("redis down"))
        manager = CacheManager(backend)

        assert await manager.get("key") is None
        assert await manager.set("key", "value") is False

    async def test_keys(self, cache_manager):
        await cache_manager.set("session:1", {})
        await cache_manager.set("session:2", {})
        await cache_manager.set("music:album:1", {})

        assert sorted(await cache_manager.keys("session:*")) == ["session:1", "session:2"]

    async def test_key_scan_errors_are_contained(self):
        backend = Mock()
        backend.keys = AsyncMock(side_effect=ConnectionError("redis down"))
        manager = CacheManager(backend)

        assert await manager.keys("session:*") == []

    async def test_health_check(self, cache_manager):
        health = await cache_manager.health_check()

        assert health["status"] == "healthy"
        assert health["backend_type"] == "memory"


def test_cache_key_skips_none():
    assert cache_key("music", "search", "abbey", 20) == "music:search:abbey:20"
    assert cache_key("session", None, "abc") == "session:abc"


def test_build_cache_backend_from_env(monkeypatch):
    monkeypatch.setenv("CACHE_BACKEND", "memory")
    assert isinstance(build_cache_backend(), MemoryCacheBackend)

    monkeypatch.setenv("CACHE_BACKEND", "redis")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/1")
    assert isinstance(build_cache_backend(), RedisCacheBackend)
