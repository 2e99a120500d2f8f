# nutricache/api/v1/routers/health.py
import subprocess
import time
from typing import Optional

from fastapi import APIRouter, Request

from nutricache.core.config import get_settings
from nutricache.db import mongo
from nutricache.db.redis import get_redis
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer

router = APIRouter(tags=["health"])
START_TIME = time.time()

# "skipped" (Redis not configured) is healthy; the catalog is informative only
HEALTHY = ("ok", "skipped")


def _git_sha() -> str:
    try:
        out = subprocess.check_output(["git", "rev-parse", "--short", "HEAD"], stderr=subprocess.DEVNULL)
        return out.decode().strip()
    except Exception:
        return "unknown"


async def _mongo_status() -> str:
    try:
        await mongo.get_db().command("ping")
        return "ok"
    except Exception as e:
        return f"error: {e}"


async def _redis_status() -> str:
    client = get_redis()
    if client is None:
        return "skipped"
    try:
        await client.ping()
        return "ok"
    except Exception as e:
        return f"error: {e}"


def _catalog_status(sync: Optional[CatalogSynchronizer]) -> dict:
    snap = sync.snapshot if sync is not None else None
    if snap is None:
        return {"catalog": "empty", "catalog_items": 0, "catalog_fresh": False}
    return {"catalog": "ok", "catalog_items": len(snap.items), "catalog_fresh": sync.is_fresh()}


@router.get("/health")
async def health(request: Request):
    """Mongo ping, Redis ping (or skipped), catalog snapshot state."""
    settings = get_settings()
    checks: dict[str, object] = {
        "app_name": settings.APP_NAME,
        "env": settings.APP_ENV,
        "version": settings.GIT_SHA if settings.GIT_SHA != "unknown" else _git_sha(),
        "uptime_seconds": int(time.time() - START_TIME),
        "mongodb": await _mongo_status(),
        "redis": await _redis_status(),
        "shopify_configured": bool(settings.SHOPIFY_STORE_DOMAIN and settings.SHOPIFY_STOREFRONT_TOKEN),
    }
    checks.update(_catalog_status(getattr(request.app.state, "synchronizer", None)))

    status = "ok" if checks["mongodb"] in HEALTHY and checks["redis"] in HEALTHY else "error"
    return {"status": status, "checks": checks, "timestamp": int(time.time())}
