"""
Caching System for JukeBoxd.

A small TTL key-value layer used for two things: server-side login sessions
and the music catalog's advisory result/token cache. Nothing authoritative
about users, albums, ratings or follows is ever cached.

Key Components:
- CacheBackend (ABC): The interface every backend implements.
- MemoryCacheBackend: In-process dictionary store with TTLs and an LRU bound.
  Suitable for single-instance deployments, development and tests.
- RedisCacheBackend: Backend on `redis.asyncio` for multi-instance
  deployments. Values are stored JSON-encoded.
- CacheManager: Facade over a backend. Backend failures are logged and
  reported as misses, so callers can always treat the cache as optional.
- `get_cache` / `init_cache` / `build_cache_backend`: Global instance wiring,
  with the backend chosen from `CACHE_BACKEND` and `REDIS_URL`.
"""

import os
import sys
import json
import asyncio
import fnmatch
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass

import redis.asyncio as redis

from core.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cache entry with metadata"""

    value: Any
    created_at: datetime
    expires_at: Optional[datetime] = None
    access_count: int = 0
    size_bytes: int = 0

    def __post_init__(self):
        if self.size_bytes == 0:
            self.size_bytes = sys.getsizeof(self.value)

    @property
    def is_expired(self) -> bool:
        """Check if cache entry has expired"""
        if self.expires_at is None:
            return False
        return datetime.now(timezone.utc) > self.expires_at


class CacheBackend(ABC):
    """Abstract base class for cache backends"""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get cache entry value by key"""

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Set cache entry with optional TTL in seconds"""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete cache entry"""

    @abstractmethod
    async def clear(self) -> bool:
        """Clear all cache entries"""

    @abstractmethod
    async def keys(self, pattern: str = "*") -> List[str]:
        """Get cache keys matching a glob-style pattern"""

    @abstractmethod
    async def stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

    async def close(self) -> None:
        """Release backend resources"""


class MemoryCacheBackend(CacheBackend):
    """In-memory cache backend with LRU eviction"""

    def __init__(self, max_size: int = 1000, default_ttl: Optional[float] = None):
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.cache: Dict[str, CacheEntry] = {}
        self.access_order: List[str] = []  # least recently used first
        self.hits = 0
        self.misses = 0
        self.evictions = 0
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                self.misses += 1
                return None

            if entry.is_expired:
                self._remove_key(key)
                self.misses += 1
                logger.debug(f"Cache expired for key: {key}")
                return None

            entry.access_count += 1
            self.access_order.remove(key)
            self.access_order.append(key)

            self.hits += 1
            return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        async with self._lock:
            ttl = ttl if ttl is not None else self.default_ttl
            expires_at = None
            if ttl:
                expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)

            if key in self.cache:
                self._remove_key(key)
            self._ensure_capacity()

            self.cache[key] = CacheEntry(
                value=value, created_at=datetime.now(timezone.utc), expires_at=expires_at
            )
            self.access_order.append(key)

            logger.debug(f"Cache set for key: {key}, TTL: {ttl}")
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self.cache:
                self._remove_key(key)
                return True
            return False

    async def exists(self, key: str) -> bool:
        """Check if key exists in cache"""
        async with self._lock:
            entry = self.cache.get(key)
            if entry is None:
                return False
            if entry.is_expired:
                self._remove_key(key)
                return False
            return True

    async def clear(self) -> bool:
        async with self._lock:
            self.cache.clear()
            self.access_order.clear()
            logger.info("Cache cleared")
            return True

    async def keys(self, pattern: str = "*") -> List[str]:
        async with self._lock:
            live = [key for key, entry in self.cache.items() if not entry.is_expired]
            if pattern == "*":
                return live
            return [key for key in live if fnmatch.fnmatch(key, pattern)]

    async def stats(self) -> Dict[str, Any]:
        async with self._lock:
            total_requests = self.hits + self.misses
            hit_rate = (self.hits / total_requests) if total_requests > 0 else 0

            return {
                "backend": "memory",
                "total_keys": len(self.cache),
                "max_size": self.max_size,
                "memory_usage_bytes": sum(e.size_bytes for e in self.cache.values()),
                "hits": self.hits,
                "misses": self.misses,
                "hit_rate": hit_rate,
                "evictions": self.evictions,
            }

    def _remove_key(self, key: str) -> None:
        del self.cache[key]
        self.access_order.remove(key)

    def _ensure_capacity(self) -> None:
        while len(self.cache) >= self.max_size and self.access_order:
            lru_key = self.access_order[0]
            self._remove_key(lru_key)
            self.evictions += 1
            logger.debug(f"Evicted LRU key: {lru_key}")


class RedisCacheBackend(CacheBackend):
    """Redis cache backend; values are JSON-encoded"""

    def __init__(self, redis_url: str = "redis://localhost:6379/0", client=None):
        self.redis_url = redis_url
        self._redis = client or redis.from_url(redis_url, decode_responses=True)

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._redis.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        payload = json.dumps(value, default=str)
        if ttl:
            return bool(await self._redis.set(key, payload, px=int(ttl * 1000)))
        return bool(await self._redis.set(key, payload))

    async def delete(self, key: str) -> bool:
        return await self._redis.delete(key) > 0

    async def exists(self, key: str) -> bool:
        return await self._redis.exists(key) > 0

    async def clear(self) -> bool:
        await self._redis.flushdb()
        logger.info("Redis cache cleared")
        return True

    async def keys(self, pattern: str = "*") -> List[str]:
        return [key async for key in self._redis.scan_iter(match=pattern)]

    async def stats(self) -> Dict[str, Any]:
        info = await self._redis.info()
        return {
            "backend": "redis",
            "total_keys": await self._redis.dbsize(),
            "used_memory_bytes": info.get("used_memory"),
            "hits": info.get("keyspace_hits"),
            "misses": info.get("keyspace_misses"),
            "connected_clients": info.get("connected_clients"),
        }

    async def close(self) -> None:
        await self._redis.aclose()


class CacheManager:
    """High-level cache manager"""

    def __init__(self, backend: CacheBackend):
        self.backend = backend
        self.logger = get_logger(f"{__name__}.CacheManager")

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache"""
        try:
            return await self.backend.get(key)
        except Exception as e:
            self.logger.error(f"Cache get error for key {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> bool:
        """Set value in cache"""
        try:
            return await self.backend.set(key, value, ttl)
        except Exception as e:
            self.logger.error(f"Cache set error for key {key}: {e}")
            return False

    async def delete(self, key: str) -> bool:
        """Delete value from cache"""
        try:
            return await self.backend.delete(key)
        except Exception as e:
            self.logger.error(f"Cache delete error for key {key}: {e}")
            return False

    async def get_or_set(self, key: str, factory, ttl: Optional[float] = None) -> Any:
        """Get value from cache or set it using factory function"""
        value = await self.get(key)
        if value is not None:
            return value

        if asyncio.iscoroutinefunction(factory):
            value = await factory()
        else:
            value = factory()

        await self.set(key, value, ttl)
        return value

    async def keys(self, pattern: str = "*") -> List[str]:
        """Keys matching a glob-style pattern; empty when the backend is unreachable"""
        try:
            return await self.backend.keys(pattern)
        except Exception as e:
            self.logger.error(f"Cache key scan error for pattern {pattern}: {e}")
            return []

    async def health_check(self) -> Dict[str, Any]:
        """Perform cache health check"""
        try:
            test_key = "__health_check__"
            await self.backend.set(test_key, "ok", 1)
            retrieved = await self.backend.get(test_key)
            await self.backend.delete(test_key)
            stats = await self.backend.stats()

            return {
                "status": "healthy" if retrieved == "ok" else "unhealthy",
                "backend_type": stats.get("backend", "unknown"),
                "stats": stats,
            }
        except Exception as e:
            self.logger.error(f"Cache health check failed: {e}")
            return {"status": "unhealthy", "backend_type": "unknown", "error": str(e)}

    async def close(self) -> None:
        try:
            await self.backend.close()
        except Exception as e:
            self.logger.error(f"Cache close error: {e}")


def cache_key(*key_parts) -> str:
    """Generate a cache key from parts"""
    return ":".join(str(part) for part in key_parts if part is not None)


def build_cache_backend() -> CacheBackend:
    """Create the backend named by the CACHE_BACKEND environment variable"""
    backend = os.getenv("CACHE_BACKEND", "memory").lower()
    if backend == "redis":
        redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")
        logger.info(f"Using Redis cache backend at {redis_url.split('@')[-1]}")
        return RedisCacheBackend(redis_url)
    return MemoryCacheBackend(max_size=10000)


# Global cache manager instance
_cache_manager: Optional[CacheManager] = None


def get_cache() -> CacheManager:
    """Get the global cache manager instance."""
    global _cache_manager
    if _cache_manager is None:
        _cache_manager = CacheManager(MemoryCacheBackend())
    return _cache_manager


def init_cache(backend: CacheBackend = None) -> CacheManager:
    """Initialize the global cache manager with a specific backend."""
    global _cache_manager
    _cache_manager = CacheManager(backend or build_cache_backend())
    return _cache_manager
