"""Tests for the cache backends and the async cache facade."""

import asyncio
import json
from unittest.mock import MagicMock, patch

import redis

from roster_advisor.data.cache import (
    CacheKeys,
    CacheService,
    InMemoryBackend,
    RedisBackend,
    create_backend,
)


class TestInMemoryBackend:
    """Test the in-memory backend."""

    def test_set_and_get(self):
        backend = InMemoryBackend()
        backend.set('a', {'x': 1}, ttl=60)
        assert backend.get('a') == {'x': 1}
        assert backend.get('missing') is None

    def test_expired_entries_are_misses(self):
        """Test entries past their TTL are dropped on read."""
        backend = InMemoryBackend()
        backend.set('a', 1, ttl=0)
        assert backend.get('a') is None
        assert backend.size() == 0

    def test_max_entries(self):
        """Test the oldest entry is evicted at capacity."""
        backend = InMemoryBackend(max_entries=2)
        backend.set('a', 1, ttl=60)
        backend.set('b', 2, ttl=60)
        backend.set('c', 3, ttl=60)
        assert backend.get('a') is None
        assert backend.get('c') == 3
        assert backend.size() == 2

    def test_keys_pattern(self):
        backend = InMemoryBackend()
        backend.set(CacheKeys.projection('p1', 3, 2024), 1, ttl=60)
        backend.set(CacheKeys.projection('p2', 3, 2024), 1, ttl=60)
        backend.set(CacheKeys.projection('p1', 4, 2024), 1, ttl=60)
        assert sorted(backend.keys('projection:*:3:2024')) == ['projection:p1:3:2024', 'projection:p2:3:2024']


class TestRedisBackend:
    """Test the Redis backend against a mocked client."""

    def test_prefixed_json_round_trip(self):
        client = MagicMock()
        client.get.return_value = json.dumps({'points': 12.5})
        with patch('roster_advisor.data.cache.redis.from_url', return_value=client):
            backend = RedisBackend('redis://localhost:6379/0', prefix='test:')

        backend.set('projection:p1:3:2024', {'points': 12.5}, ttl=60)
        client.setex.assert_called_once_with('test:projection:p1:3:2024', 60, json.dumps({'points': 12.5}))
        assert backend.get('projection:p1:3:2024') == {'points': 12.5}
        client.get.assert_called_with('test:projection:p1:3:2024')

    def test_keys_strip_prefix(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(['test:a', 'test:b'])
        with patch('roster_advisor.data.cache.redis.from_url', return_value=client):
            backend = RedisBackend('redis://localhost:6379/0', prefix='test:')
        assert backend.keys('*') == ['a', 'b']

    def test_create_backend_falls_back(self, caplog):
        """Test an unreachable Redis falls back to the in-memory backend."""
        client = MagicMock()
        client.ping.side_effect = redis.ConnectionError('refused')
        with patch('roster_advisor.data.cache.redis.from_url', return_value=client):
            backend = create_backend('redis://localhost:6379/0')
        assert isinstance(backend, InMemoryBackend)
        assert 'using in-memory cache' in caplog.text

    def test_create_backend_without_url(self):
        assert isinstance(create_backend(None), InMemoryBackend)


class TestCacheService:
    """Test the async facade."""

    def test_round_trip(self):
        cache = CacheService()

        async def run():
            await cache.set('k', [1, 2], 60)
            value = await cache.get('k')
            await cache.delete('k')
            return value, await cache.get('k')

        assert asyncio.run(run()) == ([1, 2], None)

    def test_backend_errors_are_misses(self, caplog):
        """Test backend failures never escape the cache."""
        backend = MagicMock()
        backend.get.side_effect = redis.ConnectionError('down')
        backend.set.side_effect = redis.ConnectionError('down')
        backend.keys.side_effect = redis.ConnectionError('down')
        backend.ping.side_effect = redis.ConnectionError('down')
        cache = CacheService(backend)

        async def run():
            await cache.set('k', 1, 60)
            return await cache.get('k'), await cache.delete_pattern('*'), await cache.health_check()

        assert asyncio.run(run()) == (None, 0, False)
        assert 'Cache get error for k' in caplog.text

    def test_delete_pattern(self):
        cache = CacheService(InMemoryBackend())

        async def run():
            await cache.set('projection:p1:3:2024', 1, 60)
            await cache.set('projection:p2:3:2024', 1, 60)
            await cache.set('stats:p1:3:2024', 1, 60)
            removed = await cache.delete_pattern('projection:*')
            return removed, await cache.get('stats:p1:3:2024')

        assert asyncio.run(run()) == (2, 1)
