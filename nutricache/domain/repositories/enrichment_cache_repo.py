# nutricache/domain/repositories/enrichment_cache_repo.py
from __future__ import annotations
from typing import Callable, Dict, Optional, NamedTuple, Tuple, Union
from redis.asyncio import Redis
import time

from nutricache.domain.models.catalog import ProductContent
from nutricache.utils.cache import cache_delete, cache_get, cache_set

"""
Note:
    - Remembers the outcome of a product page scrape so a refresh does not hit every page again.
    - Two lifetimes: a normal TTL for real results and a short one for rate-limited attempts,
      so a throttled page is retried soon but not on every refresh pass.
    - Redis expiry does the eviction; without Redis the in-process map below keeps the same two lifetimes.
"""


class CachedEnrichment(NamedTuple):
    content: ProductContent
    rate_limited: bool


class EnrichmentCacheRepo:
    """
    Adapter for product page extraction results in Redis.
    No business logic here, just cache access (get/set/invalidate).
    """
    def __init__(self, redis: Redis, prefix: str = "pdp", namespace: str = ""):
        self.redis = redis
        self.prefix = prefix
        self.namespace = namespace   # store domain, so two shops never share entries

    def key(self, handle: str) -> str:
        return f"{self.prefix}:{self.namespace}:{handle}" if self.namespace else f"{self.prefix}:{handle}"

    async def get(self, handle: str) -> Optional[CachedEnrichment]:
        data = await cache_get(self.redis, self.key(handle))
        if not isinstance(data, dict):
            return None
        return CachedEnrichment(
            content=ProductContent.model_validate(data.get("content") or {}),
            rate_limited=bool(data.get("rate_limited")),
        )

    async def set_content(self, handle: str, content: ProductContent, ttl: int) -> None:
        await cache_set(self.redis, self.key(handle), {"content": content, "rate_limited": False}, ex=ttl)

    async def set_rate_limited(self, handle: str, ttl: int) -> None:
        await cache_set(self.redis, self.key(handle), {"content": ProductContent(), "rate_limited": True}, ex=ttl)

    async def invalidate(self, handle: str) -> int:
        return await cache_delete(self.redis, self.key(handle))


class MemoryEnrichmentCache:
    """
    In-process stand-in for EnrichmentCacheRepo when Redis is not configured.
    Same interface; entries expire on read, with a light sweep once the map grows.
    """
    MAX_ENTRIES = 1000

    def __init__(self, timer: Callable[[], float] = time.time):
        self._timer = timer
        self._store: Dict[str, Tuple[float, CachedEnrichment]] = {}

    async def get(self, handle: str) -> Optional[CachedEnrichment]:
        if handle not in self._store:
            return None
        expires_at, value = self._store[handle]
        if self._timer() < expires_at:
            return value
        del self._store[handle]
        return None

    def _put(self, handle: str, value: CachedEnrichment, ttl: int) -> None:
        now = self._timer()
        self._store[handle] = (now + ttl, value)
        if len(self._store) > self.MAX_ENTRIES:
            self._store = {k: v for k, v in self._store.items() if v[0] > now}

    async def set_content(self, handle: str, content: ProductContent, ttl: int) -> None:
        self._put(handle, CachedEnrichment(content=content, rate_limited=False), ttl)

    async def set_rate_limited(self, handle: str, ttl: int) -> None:
        self._put(handle, CachedEnrichment(content=ProductContent(), rate_limited=True), ttl)

    async def invalidate(self, handle: str) -> int:
        return 1 if self._store.pop(handle, None) is not None else 0


EnrichmentCache = Union[EnrichmentCacheRepo, MemoryEnrichmentCache]
