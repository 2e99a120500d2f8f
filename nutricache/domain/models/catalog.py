from pydantic import BaseModel, Field
from typing import Optional, List, Tuple, Dict
from datetime import datetime


class UsageInstructions(BaseModel):
    dosage: str = ""
    timing: str = ""
    duration: str = ""
    tips: List[str] = []

    model_config = {"frozen": True}


class ProductContent(BaseModel):
    """Structured sections scraped from a product description or detail page."""
    benefits: List[str] = []
    target_audience: List[str] = []
    usage: UsageInstructions = Field(default_factory=UsageInstructions)
    contraindications: List[str] = []

    model_config = {"frozen": True}

    def is_empty(self) -> bool:
        return not (
            self.benefits
            or self.target_audience
            or self.usage.dosage
            or self.usage.tips
            or self.contraindications
        )

    def merged_with(self, other: "ProductContent") -> "ProductContent":
        """
        Combine two extractions: list sections are concatenated (deduplicated, order kept),
        usage instructions from `self` win when they carry a dosage.
        """
        def _join(a: List[str], b: List[str]) -> List[str]:
            return list(dict.fromkeys([*a, *b]))

        return ProductContent(
            benefits=_join(self.benefits, other.benefits),
            target_audience=_join(self.target_audience, other.target_audience),
            usage=self.usage if self.usage.dosage else other.usage,
            contraindications=_join(self.contraindications, other.contraindications),
        )


class CatalogItem(BaseModel):
    handle: str
    title: str
    price: float = 0.0
    currency: str = "EUR"
    compare_at_price: Optional[float] = None
    available: bool = False
    variant_id: Optional[str] = None
    image_url: Optional[str] = None
    description: str = ""
    description_html: str = ""
    tags: List[str] = []
    collections: List[str] = []
    collection_handles: List[str] = []
    content: ProductContent = Field(default_factory=ProductContent)
    enriched: bool = False

    model_config = {"frozen": True}  # immuable = safe

    @property
    def is_on_sale(self) -> bool:
        return self.compare_at_price is not None and self.compare_at_price > self.price

    @property
    def discount_percentage(self) -> Optional[int]:
        if not self.is_on_sale:
            return None
        return round((self.compare_at_price - self.price) / self.compare_at_price * 100)

    @property
    def primary_collection(self) -> Optional[str]:
        return self.collection_handles[0] if self.collection_handles else None


class CatalogPage(BaseModel):
    items: List[CatalogItem]
    next_cursor: Optional[str] = None


class CatalogSnapshot(BaseModel):
    """
    Complete, immutable set of catalog items as of one successful refresh.
    Readers always hold a whole snapshot; a refresh builds a new one and swaps it in.
    """
    items: Tuple[CatalogItem, ...] = ()
    fetched_at: datetime

    model_config = {"frozen": True}

    def by_handle(self, handle: str) -> Optional[CatalogItem]:
        return self._index().get(handle)

    def _index(self) -> Dict[str, CatalogItem]:
        # frozen models cannot be assigned to, so the index is rebuilt on demand
        return {item.handle: item for item in self.items}

    def age_seconds(self, now: datetime) -> float:
        return (now - self.fetched_at).total_seconds()

    @property
    def enriched_count(self) -> int:
        return sum(1 for item in self.items if item.enriched)
