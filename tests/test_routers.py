import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from nutricache.api.v1.routers.cache import router as cache_router
from nutricache.api.v1.routers.catalog import router as catalog_router
from nutricache.api.v1.routers.health import router as health_router
from nutricache.core.config import get_settings
from nutricache.domain.errors import CatalogApiError
from nutricache.domain.models.catalog import CatalogPage
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer
from nutricache.domain.services.product_context_svc import ProductContextService
from nutricache.domain.services.response_cache_svc import ResponseCacheService

from conftest import ScriptedSource, no_sleep


def build_app(source, fake_db, settings, clock) -> FastAPI:
    app = FastAPI()
    sync = CatalogSynchronizer(source, settings=settings, clock=clock, sleep=no_sleep)
    app.state.synchronizer = sync
    app.state.product_context = ProductContextService(sync)
    app.state.response_cache = ResponseCacheService(fake_db, sync, settings=settings, clock=clock)
    app.include_router(health_router)
    app.include_router(catalog_router, prefix="/api")
    app.include_router(cache_router, prefix="/api")
    return app


@pytest.fixture
def source(catalog_items):
    return ScriptedSource({None: CatalogPage(items=catalog_items)})


@pytest.fixture
def client(source, fake_db, settings, clock):
    with TestClient(build_app(source, fake_db, settings, clock)) as c:
        yield c


def test_catalog_refresh_and_summary(client):
    assert client.get("/api/catalog").json()["available"] is False

    res = client.post("/api/catalog/refresh")
    assert res.status_code == 200
    body = res.json()
    assert body["available"] and body["items"] == 3 and body["fresh"]

    assert client.get("/api/catalog/prefetch").json() == {"status": "fresh"}


def test_catalog_refresh_unavailable(client, source):
    source.page_errors[None] = [CatalogApiError("down")]
    res = client.post("/api/catalog/refresh")
    assert res.status_code == 503


def test_catalog_context(client):
    res = client.get("/api/catalog/context", params={"max_products": 1})
    assert res.status_code == 200
    assert "Showing 1 products for context:" in res.json()["context"]


def test_cache_record_then_lookup(client):
    payload = {"question": "Quelle est la dose de magnésium ?", "response": "2 gélules", "products": []}
    assert client.post("/api/cache/lookup", json={"question": payload["question"]}).json()["hit"] is False

    first = client.post("/api/cache/record", json=payload).json()
    assert first == {"recorded": True, "promoted": False, "tier": None, "entry_id": None}
    second = client.post("/api/cache/record", json=payload).json()
    assert second["promoted"] and second["tier"] == "faq"

    hit = client.post("/api/cache/lookup", json={"question": "magnésium dose"}).json()
    assert hit["hit"] and hit["tier"] == "faq" and hit["response"] == "2 gélules"
    assert hit["entry_id"] == second["entry_id"]

    stats = client.get("/api/cache/stats").json()
    assert stats["faq"] == 1 and stats["total"] == 1


def test_cache_lookup_validates_profile(client):
    res = client.post("/api/cache/lookup", json={"question": "dose", "profile": {"age": 400}})
    assert res.status_code == 422


def test_health_reports_catalog(client, monkeypatch):
    monkeypatch.setenv("MONGO_URI", "mongodb://localhost:27017")
    monkeypatch.setenv("MONGO_DB", "nutricache_test")
    get_settings.cache_clear()
    try:
        body = client.get("/health").json()
    finally:
        get_settings.cache_clear()
    assert body["checks"]["catalog"] == "empty"
    assert body["checks"]["redis"] == "skipped"
    assert body["checks"]["mongodb"].startswith("error")
