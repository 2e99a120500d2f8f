# nutricache/api/deps.py
from fastapi import Request

from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer
from nutricache.domain.services.product_context_svc import ProductContextService
from nutricache.domain.services.response_cache_svc import ResponseCacheService

# Services live on app.state (built once in the lifespan); routes only reach them through these


def synchronizer_dep(request: Request) -> CatalogSynchronizer:
    return request.app.state.synchronizer


def product_context_dep(request: Request) -> ProductContextService:
    return request.app.state.product_context


def response_cache_dep(request: Request) -> ResponseCacheService:
    return request.app.state.response_cache
