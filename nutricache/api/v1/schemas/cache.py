# api/v1/schemas/cache.py
from datetime import datetime
from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from nutricache.domain.models.profile import UserProfile


class CacheLookupIn(BaseModel):
    question: str = Field(min_length=1)
    profile: Optional[UserProfile] = None


class CacheLookupOut(BaseModel):
    hit: bool
    tier: Optional[str] = None
    entry_id: Optional[str] = None
    response: Optional[str] = None
    recommended_products: List[Dict[str, Any]] = []
    hit_count: int = 0
    expires_at: Optional[datetime] = None


class CacheRecordIn(BaseModel):
    question: str = Field(min_length=1)
    response: str
    profile: Optional[UserProfile] = None
    products: List[Dict[str, Any]] = []


class CacheRecordOut(BaseModel):
    recorded: bool = True
    promoted: bool = False
    tier: Optional[str] = None
    entry_id: Optional[str] = None
