# nutricache/db/redis.py
import logging

import redis.asyncio as redis
from nutricache.core.config import get_settings

logger = logging.getLogger(__name__)

redis_client: redis.Redis | None = None


async def connect():
    """
    Connect Redis when REDIS_URL is set.
    Redis only backs the enrichment cache: when missing or unreachable that cache stays in process.
    """
    global redis_client
    settings = get_settings()
    if not settings.REDIS_URL:
        logger.warning("no REDIS_URL configured, enrichment cache kept in process")
        redis_client = None
        return

    try:
        redis_client = redis.from_url(settings.REDIS_URL, decode_responses=True)
        await redis_client.ping()
        logger.info("redis connected")
    except Exception as e:
        logger.warning("redis connection failed, enrichment cache kept in process err=%r", e)
        redis_client = None


async def disconnect():
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("redis disconnected")


def get_redis() -> redis.Redis | None:
    """None when Redis is not configured or unavailable; callers handle it."""
    return redis_client
