# nutricache/api/v1/routers/catalog.py
from datetime import datetime, timezone
from typing import Annotated
import logging
import time

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query

from nutricache.api.deps import product_context_dep, synchronizer_dep
from nutricache.api.v1.schemas.catalog import CatalogSummaryOut
from nutricache.domain.errors import CatalogUnavailableError
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer
from nutricache.domain.services.product_context_svc import ProductContextOptions, ProductContextService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["catalog"])

SyncDep = Annotated[CatalogSynchronizer, Depends(synchronizer_dep)]


def _summary(sync: CatalogSynchronizer) -> CatalogSummaryOut:
    snap = sync.snapshot
    if snap is None:
        return CatalogSummaryOut(available=False, refreshing=sync.refreshing, last_refresh=sync.last_refresh)
    return CatalogSummaryOut(
        available=True,
        items=len(snap.items),
        enriched=snap.enriched_count,
        fetched_at=snap.fetched_at,
        age_seconds=round(snap.age_seconds(datetime.now(timezone.utc)), 1),
        fresh=sync.is_fresh(),
        refreshing=sync.refreshing,
        last_refresh=sync.last_refresh,
    )


@router.get("/catalog", response_model=CatalogSummaryOut)
async def catalog_summary(sync: SyncDep):
    """Current snapshot state, no I/O."""
    return _summary(sync)


@router.post("/catalog/refresh", response_model=CatalogSummaryOut)
async def catalog_refresh(sync: SyncDep):
    """Forced refresh; joins the one already running if any."""
    t0 = time.perf_counter()
    try:
        await sync.get_snapshot(force_refresh=True)
    except CatalogUnavailableError as e:
        logger.error("Response: catalog_refresh unavailable err=%r", e)
        raise HTTPException(status_code=503, detail="catalog unavailable")
    logger.info("Response: catalog_refresh elapsed_time=%.4fs", time.perf_counter() - t0)
    return _summary(sync)


async def _warm(sync: CatalogSynchronizer) -> None:
    try:
        await sync.get_snapshot()
    except CatalogUnavailableError as e:
        logger.warning("catalog prefetch failed err=%r", e)


@router.get("/catalog/prefetch")
async def catalog_prefetch(sync: SyncDep, background: BackgroundTasks):
    """Warm the catalog at page load, before the first chat message arrives."""
    if sync.is_fresh():
        return {"status": "fresh"}
    if sync.refreshing:
        return {"status": "refreshing"}
    background.add_task(_warm, sync)
    return {"status": "started"}


@router.get("/catalog/context")
async def catalog_context(
    max_products: int | None = Query(None, ge=1, le=500),
    include_benefits: bool = Query(False),
    include_target_audience: bool = Query(False),
    include_usage: bool = Query(False),
    include_contraindications: bool = Query(False),
    svc: ProductContextService = Depends(product_context_dep),
):
    opts = ProductContextOptions(
        include_benefits=include_benefits,
        include_target_audience=include_target_audience,
        include_usage=include_usage,
        include_contraindications=include_contraindications,
    )
    text = await svc.get_context(max_products=max_products, options=opts)
    return {"context": text, "chars": len(text)}
