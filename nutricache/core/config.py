from functools import lru_cache
from typing import Literal
import os
from pydantic_settings import BaseSettings, SettingsConfigDict

EnvName = Literal["development", "production"]

def _env_file_for(app_env: EnvName) -> str:
    return ".env.development" if app_env == "development" else ".env.production"

class Settings(BaseSettings):

    # Core
    APP_ENV: EnvName = "development"
    APP_NAME: str = "NutriCache"
    DEBUG: bool = False
    GIT_SHA: str = "unknown"

    # Mongo
    MONGO_URI: str # ✅ declared
    MONGO_DB: str # ✅ declared

    # Redis (optional, backs the enrichment cache)
    REDIS_URL: str = ""

    # Shopify Storefront
    SHOPIFY_STORE_DOMAIN: str = ""
    SHOPIFY_STOREFRONT_TOKEN: str = ""
    SHOPIFY_API_VERSION: str = "2023-10"

    # Catalog refresh
    catalog_ttl_s: int = 4 * 3600               # 4 hours
    catalog_page_size: int = 250                # Storefront max per query
    catalog_page_timeout_s: float = 30.0
    catalog_page_max_retries: int = 3           # retries after the first attempt, timeouts only
    catalog_backoff_base_s: float = 1.0
    catalog_backoff_max_s: float = 10.0

    # Detail page enrichment
    enrichment_batch_size: int = 10
    enrichment_batch_pause_s: float = 0.5
    enrichment_timeout_s: float = 20.0
    enrichment_cache_ttl: int = 4 * 3600        # 4 hours
    enrichment_rate_limited_ttl: int = 5 * 60   # 5 minutes
    enrichment_cache_prefix: str = "pdp"        # redis key namespace
    enrichment_rate_limit_retries: int = 3
    enrichment_backoff_base_s: float = 1.0

    # Response cache
    response_cache_ttl_days: int = 90
    promotion_threshold: int = 2
    COMPARISON_KEY_INCLUDES_QUESTION: bool = True

    # Product context
    product_context_max_products: int = 50

    # API
    api_prefix: str = "/api"

    # pydantic-settings config will be set dynamically in the factory below
    model_config = SettingsConfigDict(env_file=None, case_sensitive=True)

@lru_cache
def get_settings() -> Settings:
    """
    Factory that chooses the right .env file based on APP_ENV.
    Cache makes it cheap to inject via FastAPI dependencies.
    """
    app_env: EnvName = os.getenv("APP_ENV", "development")  # earliest switch
    env_file = _env_file_for(app_env)
    return Settings(
                _env_file=env_file,  # load .env.development or .env.production
                _env_file_encoding="utf-8"
    )
