# nutricache/db/mongo.py
import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from nutricache.core.config import get_settings
import certifi

logger = logging.getLogger(__name__)

_client: AsyncIOMotorClient | None = None
_db: AsyncIOMotorDatabase | None = None


def get_client() -> AsyncIOMotorClient:
    assert _client is not None, "Mongo client not initialized"
    return _client


def get_db() -> AsyncIOMotorDatabase:
    assert _db is not None, "Mongo DB not initialized"
    return _db


def _new_client(uri: str) -> AsyncIOMotorClient:
    kwargs = dict(
        tz_aware=True,                      # expires_at comparisons need aware datetimes
        uuidRepresentation="standard",
        serverSelectionTimeoutMS=6000,
        connectTimeoutMS=6000,
    )
    if uri.startswith("mongodb+srv://"):
        kwargs.update(tls=True, tlsCAFile=certifi.where())
    return AsyncIOMotorClient(uri, **kwargs)


async def connect():
    """
    Create the Motor client (certifi CA bundle for Atlas).
    A failed ping does not abort startup: the client stays lazy and the
    first real query retries the connection.
    """
    global _client, _db
    settings = get_settings()

    _client = _new_client(settings.MONGO_URI)
    _db = _client[settings.MONGO_DB]
    try:
        await _client.admin.command("ping")
        logger.info("mongo connected db=%s", settings.MONGO_DB)
    except Exception as e:
        logger.warning("mongo ping at startup failed, lazy connection on first query err=%r", e)


async def disconnect():
    global _client, _db
    if _client:
        _client.close()
        logger.info("mongo disconnected")
    _client = None
    _db = None
