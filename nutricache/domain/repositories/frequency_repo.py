# nutricache/domain/repositories/frequency_repo.py

from __future__ import annotations
from typing import Any, Dict, List, Optional
from datetime import datetime

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ReturnDocument

from nutricache.domain.models.cache import FrequencyRecord


class FrequencyRepo:
    """
    Occurrence counters backed by the 'cache_frequency' collection, one document per
    frequency key (the key is the `_id`).
    """

    def __init__(self, db: AsyncIOMotorDatabase, collection_name: str = "cache_frequency"):
        self.col = db[collection_name]

    @staticmethod
    def _to_record(doc: Dict[str, Any]) -> FrequencyRecord:
        data = dict(doc)
        data["key"] = data.pop("_id")
        return FrequencyRecord.model_validate(data)

    async def get(self, key: str) -> Optional[FrequencyRecord]:
        doc = await self.col.find_one({"_id": key})
        return self._to_record(doc) if doc else None

    async def bump(
        self,
        key: str,
        *,
        question_normalized: str,
        cluster_hash: Optional[str],
        product_handles: Optional[List[str]],
        response: str,
        products: List[Dict[str, Any]],
        now: datetime,
    ) -> FrequencyRecord:
        """
        Atomic create-or-increment. A new key comes back with occurrence_count == 1.
        The "last seen" response/products are overwritten on every call.
        """
        doc = await self.col.find_one_and_update(
            {"_id": key},
            {
                "$inc": {"occurrence_count": 1},
                "$set": {"last_response": response, "last_products": products, "updated_at": now},
                "$setOnInsert": {
                    "question_normalized": question_normalized,
                    "cluster_hash": cluster_hash,
                    "product_handles": product_handles,
                    "created_at": now,
                },
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        return self._to_record(doc)

    async def restart(self, key: str, *, response: str, products: List[Dict[str, Any]], now: datetime) -> None:
        """Back to a single tracked occurrence once the promoted entry has expired."""
        await self.col.update_one(
            {"_id": key},
            {
                "$set": {
                    "occurrence_count": 1,
                    "last_response": response,
                    "last_products": products,
                    "updated_at": now,
                },
                "$unset": {"promoted_until": ""},
            },
        )

    async def mark_promoted(self, key: str, until: datetime, now: datetime) -> None:
        await self.col.update_one({"_id": key}, {"$set": {"promoted_until": until, "updated_at": now}})

    async def count(self) -> int:
        return await self.col.count_documents({})

    async def ensure_indexes(self) -> None:
        await self.col.create_index("updated_at", name="frequency_updated_at")
