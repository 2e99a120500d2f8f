"""Pytest fixtures: in-memory stand-ins for Motor collections, Redis and the Shopify source."""

import asyncio
import copy
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import pytest

from nutricache.core.config import Settings
from nutricache.domain.models.catalog import CatalogItem, CatalogPage, CatalogSnapshot


# ----- Motor-like collection doubles ------------------------------------------

def _matches(doc: Dict[str, Any], flt: Dict[str, Any]) -> bool:
    for field, cond in flt.items():
        value = doc.get(field)
        if isinstance(cond, dict) and "$gt" in cond:
            if value is None or not value > cond["$gt"]:
                return False
        elif value != cond:
            return False
    return True


def _apply(doc: Dict[str, Any], update: Dict[str, Any], inserting: bool) -> None:
    for field, value in update.get("$set", {}).items():
        doc[field] = copy.deepcopy(value)
    for field, value in update.get("$inc", {}).items():
        doc[field] = doc.get(field, 0) + value
    for field in update.get("$unset", {}):
        doc.pop(field, None)
    if inserting:
        for field, value in update.get("$setOnInsert", {}).items():
            doc[field] = copy.deepcopy(value)


class FakeCollection:
    def __init__(self, name: str):
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.indexes: List[Any] = []

    async def find_one(self, flt: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        for doc in self.docs:
            if _matches(doc, flt):
                return copy.deepcopy(doc)
        return None

    async def insert_one(self, doc: Dict[str, Any]):
        if any(d["_id"] == doc["_id"] for d in self.docs):
            raise ValueError(f"duplicate _id {doc['_id']}")
        self.docs.append(copy.deepcopy(doc))

    def _find_ref(self, flt):
        return next((d for d in self.docs if _matches(d, flt)), None)

    async def update_one(self, flt, update, upsert: bool = False):
        doc = self._find_ref(flt)
        if doc is None:
            if not upsert:
                return
            doc = {k: v for k, v in flt.items() if not isinstance(v, dict)}
            self.docs.append(doc)
            _apply(doc, update, inserting=True)
            return
        _apply(doc, update, inserting=False)

    async def find_one_and_update(self, flt, update, upsert: bool = False, return_document=None):
        doc = self._find_ref(flt)
        before = copy.deepcopy(doc)
        if doc is None:
            if not upsert:
                return None
            doc = {k: v for k, v in flt.items() if not isinstance(v, dict)}
            self.docs.append(doc)
            _apply(doc, update, inserting=True)
        else:
            _apply(doc, update, inserting=False)
        # pymongo.ReturnDocument.AFTER is True
        return copy.deepcopy(doc) if return_document else before

    async def count_documents(self, flt: Dict[str, Any]) -> int:
        return sum(1 for d in self.docs if _matches(d, flt))

    async def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return kwargs.get("name", str(keys))


class FakeDB:
    def __init__(self):
        self.collections: Dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        return self.collections.setdefault(name, FakeCollection(name))


class FailingCollection:
    """Every call fails, like a Mongo cluster that is down."""

    def __getattr__(self, name):
        async def _fail(*args, **kwargs):
            raise RuntimeError("mongo unavailable")
        return _fail


class FailingDB:
    def __getitem__(self, name: str) -> FailingCollection:
        return FailingCollection()


# ----- Redis double -----------------------------------------------------------

class DummyRedis:
    def __init__(self):
        self.store: Dict[str, str] = {}
        self.ttls: Dict[str, int] = {}

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.ttls[key] = ex

    async def delete(self, key):
        return 1 if self.store.pop(key, None) is not None else 0

    async def ping(self):
        return True


# ----- Scripted catalog source ------------------------------------------------

class ScriptedSource:
    """
    CatalogSource double.
    `pages` maps a cursor (None for the first page) to a CatalogPage; `page_errors` maps a
    cursor to exceptions raised, in order, before the page is served. `product_pages` maps a
    handle to HTML or to an exception to raise.
    """

    def __init__(self, pages, page_errors=None, product_pages=None, gate: Optional[asyncio.Event] = None):
        self.pages: Dict[Optional[str], CatalogPage] = pages
        self.page_errors: Dict[Optional[str], List[BaseException]] = {k: list(v) for k, v in (page_errors or {}).items()}
        self.product_pages: Dict[str, Any] = product_pages or {}
        self.gate = gate
        self.page_calls: List[Optional[str]] = []
        self.product_calls: List[str] = []

    async def fetch_page(self, cursor):
        self.page_calls.append(cursor)
        if self.gate is not None:
            await self.gate.wait()
        errors = self.page_errors.get(cursor)
        if errors:
            raise errors.pop(0)
        return self.pages[cursor]

    async def fetch_product_page(self, handle):
        self.product_calls.append(handle)
        page = self.product_pages.get(handle)
        if isinstance(page, BaseException):
            raise page
        return page


def make_item(handle: str, title: str, **kw) -> CatalogItem:
    return CatalogItem(handle=handle, title=title, price=kw.pop("price", 19.9), available=kw.pop("available", True), **kw)


# ----- Fixtures ---------------------------------------------------------------

class FakeClock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta):
        self.now = self.now + timedelta(**delta)


async def no_sleep(seconds):
    return None


@pytest.fixture
def settings():
    return Settings(
        MONGO_URI="mongodb://localhost:27017",
        MONGO_DB="nutricache_test",
        catalog_backoff_base_s=0,
        catalog_backoff_max_s=0,
        enrichment_batch_pause_s=0,
        enrichment_backoff_base_s=0,
        enrichment_rate_limit_retries=0,
    )


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def fake_db():
    return FakeDB()


@pytest.fixture
def dummy_redis():
    return DummyRedis()


@pytest.fixture
def catalog_items():
    return [
        make_item("vitamine-d3", "Vitamine D3"),
        make_item("magnesium-bisglycinate", "Magnésium Bisglycinate"),
        make_item("omega-3-epa-dha", "Oméga 3 EPA DHA", price=24.9, compare_at_price=29.9),
    ]


@pytest.fixture
def snapshot(catalog_items, clock):
    return CatalogSnapshot(items=tuple(catalog_items), fetched_at=clock())


class StaticSynchronizer:
    """Synchronizer double serving a fixed snapshot (or failing)."""

    def __init__(self, snapshot: Optional[CatalogSnapshot] = None, error: Optional[Exception] = None):
        self._snapshot = snapshot
        self.error = error
        self.calls = 0
        self.listeners = []

    @property
    def snapshot(self):
        return self._snapshot

    @property
    def refreshing(self):
        return False

    def is_fresh(self):
        return self._snapshot is not None and self.error is None

    def add_refresh_listener(self, listener):
        self.listeners.append(listener)

    async def get_snapshot(self, force_refresh: bool = False):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self._snapshot
