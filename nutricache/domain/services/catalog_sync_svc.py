# nutricache/domain/services/catalog_sync_svc.py

from __future__ import annotations
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Union
from datetime import datetime, timezone
import asyncio
import inspect
import logging
import time

import httpx
from tenacity import AsyncRetrying, before_sleep_log, retry_if_exception_type, stop_after_attempt, wait_exponential

from nutricache.core.config import Settings
from nutricache.domain.errors import CatalogUnavailableError, RateLimitedError
from nutricache.domain.models.catalog import CatalogItem, CatalogPage, CatalogSnapshot, ProductContent
from nutricache.domain.repositories.enrichment_cache_repo import EnrichmentCache, MemoryEnrichmentCache
from nutricache.domain.services.content_extractor import CollapsibleTabExtractor, ContentExtractor

logger = logging.getLogger(__name__)

# Only these are worth retrying on a catalog page; anything else aborts the refresh
PAGE_TIMEOUT_ERRORS = (asyncio.TimeoutError, httpx.TimeoutException)

RefreshListener = Callable[[CatalogSnapshot], Union[None, Awaitable[None]]]


class CatalogSource(Protocol):
    async def fetch_page(self, cursor: Optional[str]) -> CatalogPage:
        ...

    async def fetch_product_page(self, handle: str) -> Optional[str]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CatalogSynchronizer:
    """
    Owns the local mirror of the commerce catalog.

    - get_snapshot() serves the current snapshot while it is younger than the TTL.
    - A refresh is single-flight: one asyncio.Task per process, every concurrent caller awaits
      that same task and gets the same CatalogSnapshot object.
    - Refresh = paginated listing (timeouts retried with exponential backoff, other errors
      abort) followed by detail page enrichment in bounded batches with a pause in between.
    - The new snapshot replaces the previous one in a single assignment; on failure the
      previous snapshot keeps being served.
    - Detail page results are remembered (Redis when configured, in-process otherwise): normal
      TTL for content and failures, a short one for rate-limited pages.
    - Refresh listeners run after each successful swap (derived caches invalidate themselves).

    One instance per process, created in the app lifespan; never a module-level global.
    """

    def __init__(
        self,
        source: CatalogSource,
        *,
        settings: Settings,
        page_extractor: Optional[ContentExtractor] = None,
        enrichment_cache: Optional[EnrichmentCache] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.source = source
        self.settings = settings
        self.page_extractor = page_extractor if page_extractor is not None else CollapsibleTabExtractor()
        self.enrichment_cache = (
            enrichment_cache if enrichment_cache is not None
            else MemoryEnrichmentCache(timer=lambda: self._clock().timestamp())
        )
        self._clock = clock
        self._sleep = sleep

        self._snapshot: Optional[CatalogSnapshot] = None
        self._inflight: Optional[asyncio.Task] = None
        self._lock = asyncio.Lock()
        self._listeners: List[RefreshListener] = []
        self.last_refresh: Dict[str, Any] = {}

    # ----- Public API -------------------------------------------------------

    @property
    def snapshot(self) -> Optional[CatalogSnapshot]:
        """Current snapshot without triggering I/O (may be stale or None)."""
        return self._snapshot

    @property
    def refreshing(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def is_fresh(self) -> bool:
        snap = self._snapshot
        return snap is not None and snap.age_seconds(self._clock()) < self.settings.catalog_ttl_s

    def add_refresh_listener(self, listener: RefreshListener) -> None:
        self._listeners.append(listener)

    async def get_snapshot(self, force_refresh: bool = False) -> CatalogSnapshot:
        if not force_refresh and self.is_fresh():
            return self._snapshot

        async with self._lock:
            # another caller may have completed a refresh while we waited for the lock
            if not force_refresh and self.is_fresh():
                return self._snapshot
            if self._inflight is None:
                logger.info("catalog refresh scheduled force=%s has_snapshot=%s", force_refresh, self._snapshot is not None)
                self._inflight = asyncio.create_task(self._refresh(), name="catalog-refresh")
                self._inflight.add_done_callback(self._clear_inflight)
            else:
                logger.info("catalog refresh already in progress, joining it")
            task = self._inflight

        # shield: a cancelled caller must not cancel the refresh the others are waiting on
        return await asyncio.shield(task)

    # ----- Refresh pipeline -------------------------------------------------

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None
        if not task.cancelled() and task.exception() is not None:
            logger.debug("catalog refresh task ended with %r", task.exception())

    async def _refresh(self) -> CatalogSnapshot:
        t0 = time.perf_counter()
        fetched_at = self._clock()
        try:
            items = await self._fetch_all_pages()
            list_dt = time.perf_counter() - t0
            items = await self._enrich_all(items)
        except Exception as e:
            if self._snapshot is not None:
                logger.error(
                    "catalog refresh failed, serving previous snapshot items=%s fetched_at=%s err=%r",
                    len(self._snapshot.items), self._snapshot.fetched_at.isoformat(), e,
                )
                self.last_refresh = {"ok": False, "error": repr(e), "at": fetched_at}
                return self._snapshot
            logger.error("catalog refresh failed and no snapshot is cached err=%r", e)
            self.last_refresh = {"ok": False, "error": repr(e), "at": fetched_at}
            raise CatalogUnavailableError("catalog refresh failed and no snapshot is cached") from e

        snapshot = CatalogSnapshot(items=tuple(items), fetched_at=fetched_at)
        self._snapshot = snapshot   # single swap, readers see old or new, never a mix
        total_dt = time.perf_counter() - t0
        self.last_refresh = {
            "ok": True,
            "at": fetched_at,
            "items": len(snapshot.items),
            "enriched": snapshot.enriched_count,
            "list_time_s": round(list_dt, 3),
            "total_time_s": round(total_dt, 3),
        }
        logger.info(
            "catalog refresh done items=%s enriched=%s list_time=%.2fs total_time=%.2fs",
            len(snapshot.items), snapshot.enriched_count, list_dt, total_dt,
        )
        await self._notify(snapshot)
        return snapshot

    async def _fetch_all_pages(self) -> List[CatalogItem]:
        by_handle: Dict[str, CatalogItem] = {}
        cursor: Optional[str] = None
        page_no = 0
        while True:
            page_no += 1
            page = await self._fetch_page(cursor, page_no)
            for item in page.items:
                by_handle.setdefault(item.handle, item)
            logger.debug("catalog page=%s items=%s total=%s", page_no, len(page.items), len(by_handle))
            if not page.next_cursor:
                break
            cursor = page.next_cursor
        logger.info("catalog listing done pages=%s items=%s", page_no, len(by_handle))
        return list(by_handle.values())

    async def _fetch_page(self, cursor: Optional[str], page_no: int) -> CatalogPage:
        s = self.settings
        page: Optional[CatalogPage] = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(PAGE_TIMEOUT_ERRORS),
            stop=stop_after_attempt(s.catalog_page_max_retries + 1),
            wait=wait_exponential(multiplier=s.catalog_backoff_base_s, max=s.catalog_backoff_max_s),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info("catalog page=%s attempt=%s", page_no, attempt.retry_state.attempt_number)
                page = await asyncio.wait_for(self.source.fetch_page(cursor), timeout=s.catalog_page_timeout_s)
        return page

    async def _enrich_all(self, items: List[CatalogItem]) -> List[CatalogItem]:
        s = self.settings
        size = max(1, s.enrichment_batch_size)
        total_batches = (len(items) + size - 1) // size
        out: List[CatalogItem] = []

        for start in range(0, len(items), size):
            batch = items[start:start + size]
            b0 = time.perf_counter()
            out.extend(await asyncio.gather(*(self._enrich_one(item) for item in batch)))
            logger.debug(
                "enrichment batch=%s/%s items=%s time=%.2fs",
                start // size + 1, total_batches, len(batch), time.perf_counter() - b0,
            )
            if start + size < len(items):
                await self._sleep(s.enrichment_batch_pause_s)

        enriched = sum(1 for i in out if i.enriched)
        logger.info("enrichment done items=%s enriched=%s batches=%s", len(out), enriched, total_batches)
        return out

    async def _enrich_one(self, item: CatalogItem) -> CatalogItem:
        """Never raises: any failure keeps the item as listed."""
        try:
            content = await asyncio.wait_for(self._page_content(item.handle), timeout=self.settings.enrichment_timeout_s)
        except RateLimitedError:
            logger.warning("enrichment rate limited handle=%s, kept unenriched", item.handle)
            return item
        except Exception as e:
            logger.warning("enrichment failed handle=%s err=%r, kept unenriched", item.handle, e)
            return item

        if content is None or content.is_empty():
            return item
        return item.model_copy(update={"content": item.content.merged_with(content), "enriched": True})

    async def _page_content(self, handle: str) -> Optional[ProductContent]:
        cached = await self._cache_get(handle)
        if cached is not None:
            if cached.rate_limited:
                logger.debug("enrichment skipped, recently rate limited handle=%s", handle)
                return None
            return cached.content

        try:
            html = await self._fetch_product_page(handle)
        except RateLimitedError:
            await self._cache_put(handle, None)
            raise
        except Exception:
            # remembered as empty so a broken page is not fetched on every refresh
            await self._cache_put(handle, ProductContent())
            raise

        content = self.page_extractor.extract(html) if html else ProductContent()
        await self._cache_put(handle, content)
        return content

    async def _fetch_product_page(self, handle: str) -> Optional[str]:
        s = self.settings
        html: Optional[str] = None
        async for attempt in AsyncRetrying(
            retry=retry_if_exception_type(RateLimitedError),
            stop=stop_after_attempt(s.enrichment_rate_limit_retries + 1),
            wait=wait_exponential(multiplier=s.enrichment_backoff_base_s),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                html = await self.source.fetch_product_page(handle)
        return html

    # ----- Enrichment cache (best effort) -----------------------------------

    async def _cache_get(self, handle: str):
        try:
            return await self.enrichment_cache.get(handle)
        except Exception as e:
            logger.warning("enrichment cache get error handle=%s err=%r", handle, e)
            return None

    async def _cache_put(self, handle: str, content: Optional[ProductContent]) -> None:
        """content=None records a rate-limited attempt with the short TTL."""
        s = self.settings
        try:
            if content is None:
                await self.enrichment_cache.set_rate_limited(handle, ttl=s.enrichment_rate_limited_ttl)
            else:
                await self.enrichment_cache.set_content(handle, content, ttl=s.enrichment_cache_ttl)
        except Exception as e:
            logger.warning("enrichment cache set error handle=%s err=%r", handle, e)

    # ----- Listeners --------------------------------------------------------

    async def _notify(self, snapshot: CatalogSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(snapshot)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("catalog refresh listener failed listener=%r", listener)
