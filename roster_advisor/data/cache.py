"""Read-through cache with Redis support and in-memory fallback.

The cache is a side channel: every failure is logged and reported as a miss,
and writes never block the authoritative store write.
"""

import asyncio
import fnmatch
import json
import logging
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import redis

logger = logging.getLogger(__name__)

# TTL constants (seconds)
TTL_PROJECTION = 24 * 3600
TTL_WEEKLY_STATS = 24 * 3600
TTL_PLAYERS = 6 * 3600
TTL_ROSTERS = 15 * 60
TTL_VALUATION = 3600


class CacheKeys:
    """Deterministic cache keys derived from entity identifiers."""

    @staticmethod
    def projection(player_id: str, week: int, season: int) -> str:
        return f"projection:{player_id}:{week}:{season}"

    @staticmethod
    def week_projections(week: int, season: int) -> str:
        return f"projections:week:{week}:{season}"

    @staticmethod
    def weekly_stats(player_id: str, week: int, season: int) -> str:
        return f"stats:{player_id}:{week}:{season}"

    @staticmethod
    def valuation(league_id: str, player_id: str, week: int, season: int) -> str:
        return f"valuation:{league_id}:{player_id}:{season}:{week}"

    @staticmethod
    def rosters(league_id: str) -> str:
        return f"rosters:{league_id}"


class CacheBackend(ABC):
    """Abstract base class for cache backends."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    def set(self, key: str, value: Any, ttl: int) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass

    @abstractmethod
    def keys(self, pattern: str = "*") -> List[str]:
        pass

    @abstractmethod
    def ping(self) -> bool:
        pass

    def close(self) -> None:
        pass


class InMemoryBackend(CacheBackend):
    """Thread-safe in-memory backend with max-size eviction."""

    def __init__(self, max_entries: int = 10_000):
        self.max_entries = max_entries
        self._cache: Dict[str, tuple] = {}
        self._lock = threading.RLock()

    def get(self, key):
        with self._lock:
            if key in self._cache:
                value, expiry = self._cache[key]
                if datetime.now(tz=timezone.utc) < expiry:
                    return value
                del self._cache[key]
        return None

    def set(self, key, value, ttl):
        expiry = datetime.now(tz=timezone.utc) + timedelta(seconds=ttl)
        with self._lock:
            if len(self._cache) >= self.max_entries and key not in self._cache:
                self._evict_expired_locked()
                if len(self._cache) >= self.max_entries:
                    oldest_key = next(iter(self._cache))
                    del self._cache[oldest_key]
            self._cache[key] = (value, expiry)

    def _evict_expired_locked(self) -> None:
        now = datetime.now(tz=timezone.utc)
        for k in [k for k, (_, exp) in self._cache.items() if now >= exp]:
            del self._cache[k]

    def delete(self, key):
        with self._lock:
            self._cache.pop(key, None)

    def keys(self, pattern="*"):
        with self._lock:
            now = datetime.now(tz=timezone.utc)
            return [k for k, (_, exp) in self._cache.items()
                    if now < exp and fnmatch.fnmatch(k, pattern)]

    def ping(self):
        return True

    def size(self) -> int:
        with self._lock:
            return len(self._cache)


class RedisBackend(CacheBackend):
    """Redis backend for shared caching across processes."""

    def __init__(self, url: str, prefix: str = "roster_advisor:"):
        self._redis = redis.from_url(url, decode_responses=True)
        self._prefix = prefix
        self._redis.ping()
        logger.info("Redis cache backend connected")

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def get(self, key):
        data = self._redis.get(self._key(key))
        return json.loads(data) if data else None

    def set(self, key, value, ttl):
        self._redis.setex(self._key(key), ttl, json.dumps(value, default=str))

    def delete(self, key):
        self._redis.delete(self._key(key))

    def keys(self, pattern="*"):
        prefix_len = len(self._prefix)
        return [k[prefix_len:] for k in self._redis.scan_iter(match=self._key(pattern))]

    def ping(self):
        return bool(self._redis.ping())

    def close(self):
        self._redis.close()


def create_backend(redis_url: Optional[str] = None, prefix: str = "roster_advisor:") -> CacheBackend:
    """Build the Redis backend when configured and reachable, else in-memory."""
    if redis_url:
        try:
            return RedisBackend(redis_url, prefix=prefix)
        except redis.RedisError as e:
            logger.warning(f"Redis connection failed, using in-memory cache: {e}")
    return InMemoryBackend()


class CacheService:
    """Async facade over a cache backend.

    Backend calls run in a worker thread. Any backend error is logged and
    treated as a miss (reads) or a skipped write (writes).
    """

    def __init__(self, backend: Optional[CacheBackend] = None):
        self.backend = backend or InMemoryBackend()

    async def get(self, key: str) -> Optional[Any]:
        try:
            return await asyncio.to_thread(self.backend.get, key)
        except Exception as e:
            logger.warning(f"Cache get error for {key}: {e}")
            return None

    async def set(self, key: str, value: Any, ttl: int) -> None:
        try:
            await asyncio.to_thread(self.backend.set, key, value, ttl)
        except Exception as e:
            logger.warning(f"Cache set error for {key}: {e}")

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.backend.delete, key)
        except Exception as e:
            logger.warning(f"Cache delete error for {key}: {e}")

    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern; returns the count."""
        try:
            keys = await asyncio.to_thread(self.backend.keys, pattern)
            for key in keys:
                await asyncio.to_thread(self.backend.delete, key)
            return len(keys)
        except Exception as e:
            logger.warning(f"Cache delete_pattern error for {pattern}: {e}")
            return 0

    async def health_check(self) -> bool:
        try:
            return await asyncio.to_thread(self.backend.ping)
        except Exception as e:
            logger.warning(f"Cache health check failed: {e}")
            return False

    def close(self) -> None:
        self.backend.close()
