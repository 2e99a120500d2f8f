from fastapi import FastAPI
from nutricache.core.config import get_settings
from nutricache.core.lifespan import lifespan
from nutricache.api.v1.routers.health import router as health_router
from nutricache.api.v1.routers.catalog import router as catalog_router
from nutricache.api.v1.routers.cache import router as cache_router
from nutricache.core.logging import configure_logging

from fastapi.middleware.cors import CORSMiddleware
import logging, os

settings = get_settings()
configure_logging(level=logging.DEBUG if settings.DEBUG else logging.INFO)

app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

# ------- CORS -------
# ALLOWED_ORIGINS is a CSV, e.g. "https://shop.example.com,https://www.shop.example.com".
# Without it only the storefront domain itself may call the widget API.
allowed_origins_env = os.getenv("ALLOWED_ORIGINS", "")
allowed_origins = [o.strip() for o in allowed_origins_env.split(",") if o.strip()]
if not allowed_origins and settings.SHOPIFY_STORE_DOMAIN:
    allowed_origins = [f"https://{settings.SHOPIFY_STORE_DOMAIN}"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=False,                        # keeps the preflight simple
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=86400,
)

# ------- Routes -------
app.include_router(health_router)
app.include_router(catalog_router, prefix=settings.api_prefix)
app.include_router(cache_router, prefix=settings.api_prefix)
