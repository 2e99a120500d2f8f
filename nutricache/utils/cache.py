# nutricache/utils/cache.py
import json
import logging
from typing import Any, Optional

from pydantic_core import to_jsonable_python
from redis.asyncio import Redis

logger = logging.getLogger(__name__)


def dumps(value: Any) -> str:
    """Compact JSON; pydantic models and datetimes are accepted as-is."""
    return json.dumps(to_jsonable_python(value), separators=(",", ":"), ensure_ascii=False)


async def cache_get(redis: Redis, key: str) -> Optional[Any]:
    if not (val := await redis.get(key)):
        return None
    try:
        return json.loads(val)
    except ValueError:
        # unreadable payload (older format, manual edit): behave as a miss
        logger.warning("cache payload not JSON key=%s", key)
        return None


async def cache_set(redis: Redis, key: str, value: Any, ex: int) -> None:
    await redis.set(key, dumps(value), ex=ex)


async def cache_delete(redis: Redis, key: str) -> int:
    return await redis.delete(key)
