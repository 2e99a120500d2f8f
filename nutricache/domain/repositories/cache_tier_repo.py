# nutricache/domain/repositories/cache_tier_repo.py

from __future__ import annotations
from typing import Any, Dict, Optional
from datetime import datetime
import uuid

from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import TypeAdapter
from pymongo import ASCENDING

from nutricache.domain.models.cache import CacheEntry, CacheEntryBase, TierName

TIER_COLLECTIONS: Dict[str, str] = {
    "comparison": "response_cache_comparison",
    "cluster": "response_cache_cluster",
    "faq": "response_cache_faq",
}

_ENTRY_ADAPTER = TypeAdapter(CacheEntry)

# Equality part of each tier's lookup key (expires_at range is always added)
TIER_KEY_FIELDS: Dict[str, tuple] = {
    "comparison": ("product_handles", "question_normalized"),
    "cluster": ("cluster_hash", "question_normalized"),
    "faq": ("question_normalized",),
}


class CacheTierRepo:
    """
    One cache tier backed by its own collection.
    Documents are CacheEntry dumps with a string `_id`; expired documents are never returned
    (reads filter on `expires_at > now`, a TTL index only reclaims space later).
    """

    def __init__(self, db: AsyncIOMotorDatabase, tier: TierName):
        self.tier = tier
        self.col = db[TIER_COLLECTIONS[tier]]

    def _to_entry(self, doc: Dict[str, Any]) -> CacheEntry:
        data = dict(doc)
        data["id"] = str(data.pop("_id"))
        data.setdefault("tier", self.tier)
        return _ENTRY_ADAPTER.validate_python(data)

    async def find_live(self, key: Dict[str, Any], now: datetime) -> Optional[CacheEntry]:
        """First non-expired entry matching the key; racing duplicates are all equally valid."""
        doc = await self.col.find_one({**key, "expires_at": {"$gt": now}})
        if not doc:
            return None
        entry = self._to_entry(doc)
        # never hand out an entry past its own expires_at
        return entry if entry.is_live(now) else None

    async def insert(self, entry: CacheEntryBase) -> str:
        doc = entry.model_dump(exclude={"id"})
        doc["_id"] = entry.id or uuid.uuid4().hex
        await self.col.insert_one(doc)
        return doc["_id"]

    async def increment_hits(self, entry_id: str, now: datetime) -> None:
        await self.col.update_one(
            {"_id": entry_id},
            {"$inc": {"hit_count": 1}, "$set": {"updated_at": now}},
        )

    async def count_live(self, now: datetime) -> int:
        return await self.col.count_documents({"expires_at": {"$gt": now}})

    async def ensure_indexes(self) -> None:
        fields = TIER_KEY_FIELDS[self.tier]
        await self.col.create_index(
            [(f, ASCENDING) for f in fields] + [("expires_at", ASCENDING)],
            name=f"{self.tier}_key_expiry",
        )
        await self.col.create_index("expires_at", expireAfterSeconds=0, name=f"{self.tier}_ttl")
