# nutricache/domain/services/response_cache_svc.py

from __future__ import annotations
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Sequence, Set, Tuple
from datetime import datetime, timedelta, timezone
import asyncio
import logging
import re

from motor.motor_asyncio import AsyncIOMotorDatabase

from nutricache.core.config import Settings
from nutricache.domain.models.cache import (
    CacheEntry, ClusterEntry, ComparisonEntry, FaqCategory, FaqEntry, FrequencyRecord, TierName,
)
from nutricache.domain.models.profile import ProfileCluster, UserProfile
from nutricache.domain.repositories.cache_tier_repo import CacheTierRepo
from nutricache.domain.repositories.frequency_repo import FrequencyRepo
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer
from nutricache.domain.services.clustering import cluster_hash, derive_cluster
from nutricache.domain.services.mentions import extract_mentions, is_comparison_question
from nutricache.domain.services.normalizer import fold, normalize_question

logger = logging.getLogger(__name__)

TIERS: Tuple[TierName, ...] = ("comparison", "cluster", "faq")

# Keyword fragments (accent-stripped) used to file FAQ entries
FAQ_CATEGORIES: Tuple[Tuple[FaqCategory, Tuple[str, ...]], ...] = (
    ("supplements", ("vitamine", "vitamin", "magnesium", "omega", "probio", "collagen", "zinc", "fer", "iron", "calcium")),
    ("health", ("sante", "health", "maladie", "symptome", "douleur", "fatigue", "sommeil", "sleep", "stress")),
)

WHOLE_WORD_KEYWORDS = frozenset({"fer", "iron"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def categorize_question(question: str) -> FaqCategory:
    text = fold(question)
    words = set(re.findall(r"\w+", text))
    for category, keywords in FAQ_CATEGORIES:
        # short stems only as whole words ("offert", "environ")
        if any(k in words if k in WHOLE_WORD_KEYWORDS else k in text for k in keywords):
            return category
    return "general"


class QuestionContext(NamedTuple):
    question_normalized: str
    mentions: List[str]
    is_comparison: bool
    cluster: Optional[ProfileCluster]
    cluster_hash: Optional[str]

    @property
    def tier(self) -> TierName:
        if self.is_comparison:
            return "comparison"
        if self.cluster_hash:
            return "cluster"
        return "faq"


class ResponseCacheService:
    """
    Three-tier response cache in front of the AI call.

    lookup(): comparison tier (>= 2 mentioned products + comparison wording), then the
    profile-cluster tier (if a profile is given), then the FAQ tier. First live hit wins.

    record_occurrence(): counts (question, context) occurrences; at the promotion threshold the
    latest response is written to the tier the frequency key belongs to.

    Neither call raises: store failures are logged and read as "no cached answer".
    """

    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        synchronizer: Optional[CatalogSynchronizer],
        *,
        settings: Settings,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.synchronizer = synchronizer
        self.settings = settings
        self._clock = clock
        self.tiers: Dict[str, CacheTierRepo] = {t: CacheTierRepo(db, t) for t in TIERS}
        self.frequency = FrequencyRepo(db)
        self._pending: Set[asyncio.Task] = set()

    async def ensure_indexes(self) -> None:
        for repo in self.tiers.values():
            await repo.ensure_indexes()
        await self.frequency.ensure_indexes()

    # ----- Question analysis ------------------------------------------------

    async def _mentions(self, question: str) -> List[str]:
        if self.synchronizer is None:
            return []
        try:
            snapshot = await self.synchronizer.get_snapshot()
        except Exception as e:
            logger.warning("catalog unavailable, no product mentions err=%r", e)
            return []
        return extract_mentions(question, snapshot)

    async def analyze(self, question: str, profile: Optional[UserProfile] = None) -> QuestionContext:
        normalized = normalize_question(question)
        mentions = await self._mentions(question)
        comparison = len(mentions) >= 2 and is_comparison_question(question)
        cluster = derive_cluster(profile) if profile is not None else None
        return QuestionContext(
            question_normalized=normalized,
            mentions=mentions,
            is_comparison=comparison,
            cluster=cluster,
            cluster_hash=cluster_hash(cluster) if cluster is not None else None,
        )

    def comparison_key(self, ctx: QuestionContext) -> Dict[str, Any]:
        key: Dict[str, Any] = {"product_handles": ctx.mentions}
        if self.settings.COMPARISON_KEY_INCLUDES_QUESTION:
            key["question_normalized"] = ctx.question_normalized
        return key

    def frequency_key(self, ctx: QuestionContext) -> str:
        if ctx.is_comparison:
            key = "comparison:" + ",".join(ctx.mentions)
            if self.settings.COMPARISON_KEY_INCLUDES_QUESTION:
                key += ":" + ctx.question_normalized
            return key
        if ctx.cluster_hash:
            return f"cluster:{ctx.cluster_hash}:{ctx.question_normalized}"
        return f"faq:{ctx.question_normalized}"

    @staticmethod
    def _cacheable(ctx: QuestionContext) -> bool:
        # greetings and punctuation-only messages normalize to nothing
        return bool(ctx.question_normalized) or ctx.is_comparison

    # ----- Lookup -----------------------------------------------------------

    async def lookup(self, question: str, profile: Optional[UserProfile] = None) -> Optional[CacheEntry]:
        ctx = await self.analyze(question, profile)
        if not self._cacheable(ctx):
            logger.debug("cache skip, empty normalized question")
            return None

        candidates: List[Tuple[TierName, Dict[str, Any]]] = []
        if ctx.is_comparison:
            candidates.append(("comparison", self.comparison_key(ctx)))
        if ctx.cluster_hash:
            candidates.append(("cluster", {"cluster_hash": ctx.cluster_hash, "question_normalized": ctx.question_normalized}))
        candidates.append(("faq", {"question_normalized": ctx.question_normalized}))

        now = self._clock()
        for tier, key in candidates:
            entry = await self._find_in_tier(tier, key, now)
            if entry is not None:
                logger.info("cache hit tier=%s id=%s hits=%s q=%r", tier, entry.id, entry.hit_count, ctx.question_normalized)
                self._schedule_hit(tier, entry.id, now)
                return entry

        logger.info("cache miss tiers=%s q=%r", ",".join(t for t, _ in candidates), ctx.question_normalized)
        return None

    async def _find_in_tier(self, tier: TierName, key: Dict[str, Any], now: datetime) -> Optional[CacheEntry]:
        try:
            return await self.tiers[tier].find_live(key, now)
        except Exception as e:
            logger.error("cache read error tier=%s err=%r, treated as miss", tier, e)
            return None

    def _schedule_hit(self, tier: TierName, entry_id: Optional[str], now: datetime) -> None:
        if not entry_id:
            return
        task = asyncio.create_task(self._increment_hits(tier, entry_id, now))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _increment_hits(self, tier: TierName, entry_id: str, now: datetime) -> None:
        try:
            await self.tiers[tier].increment_hits(entry_id, now)
        except Exception as e:
            logger.warning("hit count update failed tier=%s id=%s err=%r", tier, entry_id, e)

    async def flush_pending(self) -> None:
        """Wait for the background hit-count updates (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ----- Frequency tracking / promotion -----------------------------------

    async def record_occurrence(
        self,
        question: str,
        response: str,
        profile: Optional[UserProfile] = None,
        products: Optional[Sequence[Mapping[str, Any]]] = None,
    ) -> Optional[CacheEntry]:
        """
        Count one answered question. Returns the entry written when this occurrence
        triggered a promotion, None otherwise. Never raises.
        """
        try:
            return await self._record(question, response, profile, [dict(p) for p in products or []])
        except Exception as e:
            logger.error("record occurrence failed err=%r", e)
            return None

    async def _record(
        self,
        question: str,
        response: str,
        profile: Optional[UserProfile],
        products: List[Dict[str, Any]],
    ) -> Optional[CacheEntry]:
        ctx = await self.analyze(question, profile)
        if not self._cacheable(ctx):
            return None

        key = self.frequency_key(ctx)
        now = self._clock()

        existing = await self.frequency.get(key)
        if existing is not None and existing.promoted_until is not None and existing.promoted_until <= now:
            # promoted entry has expired: this occurrence starts a new cycle
            await self.frequency.restart(key, response=response, products=products, now=now)
            logger.info("frequency restarted key=%s", key)
            return None

        record = await self.frequency.bump(
            key,
            question_normalized=ctx.question_normalized,
            cluster_hash=ctx.cluster_hash,
            product_handles=ctx.mentions if ctx.is_comparison else None,
            response=response,
            products=products,
            now=now,
        )
        logger.debug("frequency key=%s count=%s", key, record.occurrence_count)

        if record.promoted_until is not None and record.promoted_until > now:
            return None
        if record.occurrence_count < self.settings.promotion_threshold:
            return None

        entry = self._build_entry(ctx, record, now)
        entry_id = await self.tiers[ctx.tier].insert(entry)
        await self.frequency.mark_promoted(key, entry.expires_at, now)
        logger.info("cache promoted tier=%s id=%s key=%s count=%s", ctx.tier, entry_id, key, record.occurrence_count)
        return entry.model_copy(update={"id": entry_id})

    def _build_entry(self, ctx: QuestionContext, record: FrequencyRecord, now: datetime) -> CacheEntry:
        common = dict(
            question_normalized=ctx.question_normalized,
            response=record.last_response,
            recommended_products=record.last_products,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(days=self.settings.response_cache_ttl_days),
        )
        if ctx.tier == "comparison":
            return ComparisonEntry(product_handles=ctx.mentions, **common)
        if ctx.tier == "cluster":
            return ClusterEntry(cluster_hash=ctx.cluster_hash, cluster=ctx.cluster, **common)
        return FaqEntry(category=categorize_question(ctx.question_normalized), **common)

    # ----- Stats ------------------------------------------------------------

    async def get_stats(self) -> Dict[str, Any]:
        now = self._clock()
        stats: Dict[str, Any] = {}
        try:
            for tier, repo in self.tiers.items():
                stats[tier] = await repo.count_live(now)
            stats["frequency_records"] = await self.frequency.count()
        except Exception as e:
            logger.error("cache stats unavailable err=%r", e)
            return {**{t: 0 for t in TIERS}, "frequency_records": 0, "error": repr(e)}
        stats["total"] = sum(stats[t] for t in TIERS)
        return stats
