import pytest

from nutricache.domain.models.catalog import ProductContent
from nutricache.domain.repositories.enrichment_cache_repo import EnrichmentCacheRepo, MemoryEnrichmentCache


@pytest.mark.asyncio
async def test_content_and_rate_limited_entries(dummy_redis):
    repo = EnrichmentCacheRepo(dummy_redis, namespace="shop.example.com")
    assert repo.key("zinc") == "pdp:shop.example.com:zinc"

    await repo.set_content("zinc", ProductContent(benefits=["Peau"]), ttl=14400)
    cached = await repo.get("zinc")
    assert cached.content.benefits == ["Peau"] and not cached.rate_limited

    await repo.set_rate_limited("fer", ttl=300)
    assert (await repo.get("fer")).rate_limited
    assert dummy_redis.ttls["pdp:shop.example.com:fer"] == 300

    assert await repo.invalidate("zinc") == 1
    assert await repo.get("zinc") is None


@pytest.mark.asyncio
async def test_unreadable_payload_is_a_miss(dummy_redis):
    repo = EnrichmentCacheRepo(dummy_redis)
    dummy_redis.store["pdp:zinc"] = "not json"
    assert await repo.get("zinc") is None


@pytest.mark.asyncio
async def test_memory_cache_expires_entries():
    now = [1000.0]
    cache = MemoryEnrichmentCache(timer=lambda: now[0])

    await cache.set_content("zinc", ProductContent(benefits=["Peau"]), ttl=14400)
    await cache.set_rate_limited("fer", ttl=300)
    assert (await cache.get("fer")).rate_limited

    now[0] += 299
    assert (await cache.get("fer")) is not None
    now[0] += 1
    assert await cache.get("fer") is None
    assert (await cache.get("zinc")).content.benefits == ["Peau"]

    assert await cache.invalidate("zinc") == 1
    assert await cache.invalidate("zinc") == 0
    assert await cache.get("zinc") is None
