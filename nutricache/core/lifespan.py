# nutricache/core/lifespan.py
from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI

from nutricache.core.config import get_settings
from nutricache.db import mongo, redis as r
from nutricache.domain.repositories.enrichment_cache_repo import EnrichmentCacheRepo
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer
from nutricache.domain.services.product_context_svc import ProductContextService
from nutricache.domain.services.response_cache_svc import ResponseCacheService
from nutricache.integrations.shopify_client import ShopifyStorefrontClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()

    # --- Startup ---
    await mongo.connect()
    await r.connect()   # optional, enrichment cache only

    source = ShopifyStorefrontClient.from_settings(settings)
    redis_client = r.get_redis()
    enrichment_cache = (
        EnrichmentCacheRepo(redis_client, prefix=settings.enrichment_cache_prefix, namespace=settings.SHOPIFY_STORE_DOMAIN)
        if redis_client is not None else None
    )
    synchronizer = CatalogSynchronizer(source, settings=settings, enrichment_cache=enrichment_cache)
    product_context = ProductContextService(synchronizer, default_max_products=settings.product_context_max_products)
    response_cache = ResponseCacheService(mongo.get_db(), synchronizer, settings=settings)

    try:
        await response_cache.ensure_indexes()
    except Exception as e:
        logger.warning("cache index bootstrap failed (ignored) err=%r", e)

    app.state.catalog_source = source
    app.state.synchronizer = synchronizer
    app.state.product_context = product_context
    app.state.response_cache = response_cache
    logger.info("startup done app=%s env=%s shop=%s", settings.APP_NAME, settings.APP_ENV, settings.SHOPIFY_STORE_DOMAIN or "-")

    # Application runs
    yield

    # --- Shutdown ---
    await response_cache.flush_pending()
    await source.aclose()
    await r.disconnect()
    await mongo.disconnect()
