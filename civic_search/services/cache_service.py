# civic_search/services/cache_service.py
import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional, Tuple

import redis.asyncio as redis

from civic_search.config.settings import settings

logger = logging.getLogger(__name__)


class CacheService:
    """Small TTL cache owned by one adapter instance.

    Entries live in an in-process map; when a Redis URL is configured the
    entries are mirrored there so that several workers share warm results.
    Redis problems never fail a lookup, the cache just degrades to memory.
    """

    def __init__(
        self,
        ttl: int,
        namespace: str = "",
        max_size: Optional[int] = None,
        redis_url: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError("Cache TTL must be positive")
        self.ttl = ttl
        self.namespace = namespace
        self.max_size = max_size or settings.MEMORY_CACHE_SIZE
        self.redis_url = settings.REDIS_URL if redis_url is None else redis_url
        self.redis_enabled = bool(self.redis_url)
        self.redis_client: Optional[redis.Redis] = None
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, Any]]" = OrderedDict()

    async def _get_redis_client(self) -> Optional[redis.Redis]:
        if not self.redis_enabled:
            return None

        if self.redis_client is None:
            try:
                if self.redis_url.startswith(("redis://", "rediss://")):
                    self.redis_client = redis.from_url(
                        self.redis_url,
                        encoding="utf-8",
                        decode_responses=True,
                        socket_timeout=5,
                        socket_connect_timeout=5
                    )
                    await self.redis_client.ping()
                    logger.info(f"Redis connection established for cache '{self.namespace}'")
                else:
                    logger.warning("Invalid Redis URL, using memory cache only")
                    self.redis_enabled = False
                    return None
            except Exception as e:
                logger.warning(f"Redis connection failed: {e}. Using memory cache only.")
                self.redis_enabled = False
                self.redis_client = None
                return None

        return self.redis_client

    def _build_key(self, key: str) -> str:
        return f"{self.namespace}:{key}" if self.namespace else key

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> Optional[Any]:
        full_key = self._build_key(key)

        entry = self._entries.get(full_key)
        if entry is not None:
            expires, value = entry
            if self._clock() < expires:
                self._entries.move_to_end(full_key)
                return value
            del self._entries[full_key]

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                raw = await redis_client.get(full_key)
                if raw:
                    value = json.loads(raw)
                    self._store(full_key, value, self.ttl)
                    return value
            except Exception as e:
                logger.warning(f"Redis get error: {e}")

        return None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        full_key = self._build_key(key)
        ttl = ttl or self.ttl

        self._store(full_key, value, ttl)

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                await redis_client.setex(full_key, ttl, json.dumps(value, default=str))
            except Exception as e:
                logger.warning(f"Redis set error: {e}")

        return True

    def _store(self, full_key: str, value: Any, ttl: int):
        if full_key in self._entries:
            self._entries.move_to_end(full_key)
        self._entries[full_key] = (self._clock() + ttl, value)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    async def delete(self, key: str) -> bool:
        full_key = self._build_key(key)
        self._entries.pop(full_key, None)

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                await redis_client.delete(full_key)
            except Exception as e:
                logger.warning(f"Redis delete error: {e}")

        return True

    async def clear(self):
        self._entries.clear()

        redis_client = await self._get_redis_client()
        if redis_client and self.namespace:
            try:
                keys = await redis_client.keys(f"{self.namespace}:*")
                if keys:
                    await redis_client.delete(*keys)
            except Exception as e:
                logger.warning(f"Redis clear error: {e}")

    async def health_check(self) -> str:
        try:
            test_key = "health_check"
            await self.set(test_key, "test", 5)
            value = await self.get(test_key)
            await self.delete(test_key)
            if value == "test":
                return "healthy"
            return "unhealthy"
        except Exception as e:
            logger.error(f"Cache health check failed: {e}")
            return "unhealthy"

    async def close(self):
        if self.redis_client:
            try:
                await self.redis_client.aclose()
            except Exception as e:
                logger.warning(f"Error closing Redis client: {e}")
            self.redis_client = None
        self._entries.clear()
