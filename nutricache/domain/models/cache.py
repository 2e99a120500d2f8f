from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Literal, Union, Annotated, Any, Dict
from datetime import datetime

from nutricache.domain.models.profile import ProfileCluster

TierName = Literal["comparison", "cluster", "faq"]
FaqCategory = Literal["supplements", "health", "general"]
QuestionType = Literal["comparison", "info", "usage"]


class CacheEntryBase(BaseModel):
    id: Optional[str] = None
    question_normalized: str
    response: str
    recommended_products: List[Dict[str, Any]] = []   # stored verbatim, never re-resolved
    hit_count: int = Field(default=0, ge=0)
    created_at: datetime
    updated_at: datetime
    expires_at: datetime

    @model_validator(mode="after")
    def _expiry_after_creation(self):
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be later than created_at")
        return self

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at


class ComparisonEntry(CacheEntryBase):
    tier: Literal["comparison"] = "comparison"
    product_handles: List[str]
    question_type: QuestionType = "comparison"

    @field_validator("product_handles")
    @classmethod
    def _sorted_unique_pair(cls, v: List[str]) -> List[str]:
        handles = sorted(set(v))
        if len(handles) < 2:
            raise ValueError("a comparison entry needs at least two distinct product handles")
        return handles


class ClusterEntry(CacheEntryBase):
    tier: Literal["cluster"] = "cluster"
    cluster_hash: str
    cluster: ProfileCluster


class FaqEntry(CacheEntryBase):
    tier: Literal["faq"] = "faq"
    category: FaqCategory = "general"


# Tagged variant: Mongo documents carry `tier`, pydantic picks the right class
CacheEntry = Annotated[Union[ComparisonEntry, ClusterEntry, FaqEntry], Field(discriminator="tier")]


class FrequencyRecord(BaseModel):
    key: str
    occurrence_count: int = Field(default=1, ge=0)
    question_normalized: str
    cluster_hash: Optional[str] = None
    product_handles: Optional[List[str]] = None
    last_response: str = ""
    last_products: List[Dict[str, Any]] = []
    created_at: datetime
    updated_at: datetime
    promoted_until: Optional[datetime] = None   # expiry of the tier entry this key produced
