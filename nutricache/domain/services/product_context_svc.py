# nutricache/domain/services/product_context_svc.py
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from nutricache.domain.models.catalog import CatalogItem, CatalogSnapshot
from nutricache.domain.services.catalog_sync_svc import CatalogSynchronizer

logger = logging.getLogger(__name__)

UNAVAILABLE_NOTE = (
    "\n\nNote: Product catalog information is temporarily unavailable. "
    "Please provide general advice based on your knowledge.\n"
)


class ProductContextOptions(BaseModel):
    """Heavy sections are off by default to keep prompts small."""
    include_benefits: bool = False
    include_target_audience: bool = False
    include_usage: bool = False
    include_contraindications: bool = False

    model_config = {"frozen": True}


def _item_block(item: CatalogItem, opts: ProductContextOptions) -> List[str]:
    lines = [f"PRODUCT: {item.title}"]
    if item.variant_id:
        lines.append(f"  VariantId: {item.variant_id}")
    if item.primary_collection:
        lines.append(f"  Collection: {item.primary_collection}")
    if item.collections:
        lines.append(f"  Collections: {', '.join(item.collections)}")
    price = f"  Price: {item.price:.2f} {item.currency}"
    if item.is_on_sale:
        price += f" (was {item.compare_at_price:.2f}, -{item.discount_percentage}%)"
    lines.append(price)
    if not item.available:
        lines.append("  Availability: out of stock")
    if item.description:
        short = item.description[:200]
        lines.append(f"  Description: {short}{'...' if len(item.description) > 200 else ''}")

    content = item.content
    if opts.include_benefits and content.benefits:
        lines.append(f"  Benefits: {'; '.join(content.benefits)}")
    if opts.include_target_audience and content.target_audience:
        lines.append(f"  Target Audience: {'; '.join(content.target_audience)}")
    if opts.include_usage and content.usage.dosage:
        usage = content.usage
        parts = [f"Dosage: {usage.dosage}"]
        if usage.timing:
            parts.append(f"Timing: {usage.timing}")
        if usage.duration:
            parts.append(f"Duration: {usage.duration}")
        if usage.tips:
            parts.append(f"Tips: {' / '.join(usage.tips)}")
        lines.append(f"  Usage: {'; '.join(parts)}")
    if opts.include_contraindications and content.contraindications:
        lines.append(f"  Contraindications: {'; '.join(content.contraindications)}")
    return lines


def render_product_context(snapshot: CatalogSnapshot, max_products: int, opts: ProductContextOptions) -> str:
    shown = snapshot.items[:max_products]
    out = [
        "",
        "",
        "AVAILABLE PRODUCTS IN STORE (use this information for accurate product recommendations and details):",
        f"Total products available: {len(snapshot.items)}",
        f"Showing {len(shown)} products for context:",
        "",
    ]
    for item in shown:
        out.extend(_item_block(item, opts))
        out.append("")
    return "\n".join(out)


class ProductContextService:
    """
    Pre-rendered catalog text for prompt construction.

    Rendered contexts are kept per (max_products, options) and dropped whenever the
    synchronizer publishes a new snapshot.
    """

    def __init__(self, synchronizer: CatalogSynchronizer, default_max_products: int = 50):
        self.synchronizer = synchronizer
        self.default_max_products = default_max_products
        self._rendered: Dict[Tuple[int, ProductContextOptions], str] = {}
        self._last_good: Optional[str] = None
        synchronizer.add_refresh_listener(self.invalidate)

    def invalidate(self, snapshot: Optional[CatalogSnapshot] = None) -> None:
        if self._rendered:
            logger.info("product context invalidated entries=%s", len(self._rendered))
        self._rendered.clear()

    async def get_context(self, max_products: Optional[int] = None, options: Optional[ProductContextOptions] = None) -> str:
        key = (max_products or self.default_max_products, options or ProductContextOptions())
        if (cached := self._rendered.get(key)) is not None and self.synchronizer.is_fresh():
            return cached

        try:
            snapshot = await self.synchronizer.get_snapshot()
        except Exception as e:
            logger.error("product context unavailable err=%r", e)
            return self._last_good or UNAVAILABLE_NOTE

        text = render_product_context(snapshot, key[0], key[1])
        self._rendered[key] = text
        self._last_good = text
        logger.info("product context rendered products=%s chars=%s", min(key[0], len(snapshot.items)), len(text))
        return text
