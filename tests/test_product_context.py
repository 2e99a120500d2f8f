import pytest

from nutricache.domain.errors import CatalogUnavailableError
from nutricache.domain.models.catalog import ProductContent, UsageInstructions
from nutricache.domain.services.product_context_svc import (
    UNAVAILABLE_NOTE, ProductContextOptions, ProductContextService, render_product_context,
)

from conftest import StaticSynchronizer


def test_render_lists_prices_and_sales(snapshot):
    text = render_product_context(snapshot, 50, ProductContextOptions())
    assert "Total products available: 3" in text
    assert "PRODUCT: Vitamine D3" in text
    assert "Price: 19.90 EUR" in text
    assert "Price: 24.90 EUR (was 29.90, -17%)" in text
    assert "Benefits:" not in text


def test_render_optional_sections(snapshot):
    item = snapshot.items[0].model_copy(update={"content": ProductContent(
        benefits=["Immunité"],
        usage=UsageInstructions(dosage="1 gélule", timing="le matin"),
    )})
    snap = snapshot.model_copy(update={"items": (item,)})
    text = render_product_context(snap, 1, ProductContextOptions(include_benefits=True, include_usage=True))
    assert "Benefits: Immunité" in text
    assert "Usage: Dosage: 1 gélule; Timing: le matin" in text


@pytest.mark.asyncio
async def test_context_cached_until_refresh(snapshot):
    sync = StaticSynchronizer(snapshot)
    svc = ProductContextService(sync, default_max_products=2)

    first = await svc.get_context()
    assert "Showing 2 products for context:" in first
    assert await svc.get_context() == first
    assert sync.calls == 1

    # a new snapshot notifies the service through its refresh listener
    for listener in sync.listeners:
        listener(snapshot)
    await svc.get_context()
    assert sync.calls == 2


@pytest.mark.asyncio
async def test_context_degrades_without_catalog(snapshot):
    sync = StaticSynchronizer(error=CatalogUnavailableError("down"))
    svc = ProductContextService(sync)
    assert await svc.get_context() == UNAVAILABLE_NOTE

    sync._snapshot, sync.error = snapshot, None
    good = await svc.get_context()
    svc.invalidate()
    sync.error = CatalogUnavailableError("down again")
    assert await svc.get_context() == good
