# nutricache/api/v1/routers/cache.py
from fastapi import APIRouter, Depends
import time
import logging

from nutricache.api.deps import response_cache_dep
from nutricache.api.v1.schemas.cache import CacheLookupIn, CacheLookupOut, CacheRecordIn, CacheRecordOut
from nutricache.domain.services.response_cache_svc import ResponseCacheService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["cache"])


@router.post("/cache/lookup", response_model=CacheLookupOut)
async def cache_lookup(body: CacheLookupIn, svc: ResponseCacheService = Depends(response_cache_dep)):
    """
    Cached answer for a question, if any.
    Cascade: comparison tier → profile cluster tier → FAQ tier. A miss is a normal answer, not an error.
    """
    start_time = time.perf_counter()
    entry = await svc.lookup(body.question, body.profile)
    elapsed_time = time.perf_counter() - start_time
    logger.info("Response: cache_lookup hit=%s elapsed_time=%.4fs", entry is not None, elapsed_time)

    if entry is None:
        return CacheLookupOut(hit=False)
    return CacheLookupOut(
        hit=True,
        tier=entry.tier,
        entry_id=entry.id,
        response=entry.response,
        recommended_products=entry.recommended_products,
        hit_count=entry.hit_count,
        expires_at=entry.expires_at,
    )


@router.post("/cache/record", response_model=CacheRecordOut)
async def cache_record(body: CacheRecordIn, svc: ResponseCacheService = Depends(response_cache_dep)):
    """Report an answered question; promotes it to a cache tier once it repeats."""
    entry = await svc.record_occurrence(body.question, body.response, body.profile, body.products)
    if entry is None:
        return CacheRecordOut()
    return CacheRecordOut(promoted=True, tier=entry.tier, entry_id=entry.id)


@router.get("/cache/stats")
async def cache_stats(svc: ResponseCacheService = Depends(response_cache_dep)):
    return await svc.get_stats()
