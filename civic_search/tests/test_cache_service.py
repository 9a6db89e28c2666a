# civic_search/tests/test_cache_service.py
import pytest

from civic_search.services.cache_service import CacheService


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestCacheService:
    """Test the per-adapter TTL cache"""

    async def test_set_and_get(self):
        """Test a stored value is returned before expiry"""
        cache = CacheService(ttl=60, namespace="test", redis_url="")
        await cache.set("key", {"a": 1})
        assert await cache.get("key") == {"a": 1}

    async def test_expiry(self):
        """Test entries vanish after their TTL"""
        clock = FakeClock()
        cache = CacheService(ttl=10, namespace="test", redis_url="", clock=clock)
        await cache.set("key", "value")

        clock.now += 9
        assert await cache.get("key") == "value"

        clock.now += 2
        assert await cache.get("key") is None
        assert len(cache) == 0

    async def test_per_entry_ttl(self):
        """Test an explicit TTL overrides the default"""
        clock = FakeClock()
        cache = CacheService(ttl=100, redis_url="", clock=clock)
        await cache.set("short", 1, ttl=5)

        clock.now += 6
        assert await cache.get("short") is None

    async def test_lru_eviction(self):
        """Test the least recently used entry is evicted first"""
        cache = CacheService(ttl=60, max_size=2, redis_url="")
        await cache.set("a", 1)
        await cache.set("b", 2)
        await cache.get("a")
        await cache.set("c", 3)

        assert await cache.get("a") == 1
        assert await cache.get("b") is None
        assert await cache.get("c") == 3

    async def test_namespaces_are_isolated(self):
        """Test two caches never see each other's keys"""
        first = CacheService(ttl=60, namespace="one", redis_url="")
        second = CacheService(ttl=60, namespace="two", redis_url="")
        await first.set("key", "first")
        assert await second.get("key") is None

    async def test_delete_and_clear(self):
        """Test removal of entries"""
        cache = CacheService(ttl=60, redis_url="")
        await cache.set("a", 1)
        await cache.set("b", 2)

        await cache.delete("a")
        assert await cache.get("a") is None

        await cache.clear()
        assert len(cache) == 0

    async def test_invalid_redis_url_degrades_to_memory(self):
        """Test a bad Redis URL falls back to memory only"""
        cache = CacheService(ttl=60, redis_url="not-a-redis-url")
        await cache.set("key", "value")
        assert await cache.get("key") == "value"
        assert cache.redis_enabled is False

    async def test_health_check(self):
        """Test health check on the memory cache"""
        cache = CacheService(ttl=60, redis_url="")
        assert await cache.health_check() == "healthy"

    def test_rejects_non_positive_ttl(self):
        """Test TTL must be positive"""
        with pytest.raises(ValueError):
            CacheService(ttl=0)
