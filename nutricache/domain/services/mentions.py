# nutricache/domain/services/mentions.py
import re
from typing import Dict, Iterable, List, Set, Tuple

from nutricache.domain.models.catalog import CatalogItem, CatalogSnapshot
from nutricache.domain.services.normalizer import fold

MIN_TERM_LEN = 3

# Title keyword (accent-stripped) -> extra spellings customers type
PRODUCT_ABBREVIATIONS: Dict[str, Tuple[str, ...]] = {
    "vitamine": ("vit", "vitamin"),
    "magnesium": ("mag", "magnesium"),
    "omega": ("omega", "ω"),
    "probiotique": ("probio", "probiotic"),
    "collagene": ("collagen", "colla"),
    "proteine": ("protein", "prot"),
    "creatine": ("creatine", "creat"),
    "melatonine": ("melatonin", "melat"),
    "ashwagandha": ("ashwa", "withania"),
    "glucosamine": ("gluco",),
    "multivitamine": ("multivit", "multi"),
}

_TITLE_SPLIT = re.compile(r"[\s\-–—/,+&()]+")
_HANDLE_SPLIT = re.compile(r"[-_]+")

COMPARISON_PATTERNS = tuple(re.compile(p) for p in (
    # fr
    r"differences?\s+entre",
    r"\bcomparer?\b",
    r"\bcomparaison\b",
    r"\bvs\b\.?",
    r"\bversus\b",
    r"\bou\s+(?:le|la|les|l')\s*\w",
    r"\bet\b.*\bou\b",
    r"\blequel\b",
    r"\blaquelle\b",
    r"\blesquel(?:le)?s\b",
    r"\bmeilleur(?:e)?\s+entre\b",
    r"\bchoisir\s+entre\b",
    # en
    r"differences?\s+between",
    r"\bcompar(?:e|ed|ing|ison)\b",
    r"\bwhich\s+(?:one\s+)?is\s+better\b",
    r"\bbetter\s+than\b",
))


def search_terms(item: CatalogItem) -> Set[str]:
    """Lowercase, accent-free terms whose presence in a question points at this item."""
    title = fold(item.title)
    terms = {w for w in _TITLE_SPLIT.split(title) if len(w) >= MIN_TERM_LEN}
    for full, abbreviations in PRODUCT_ABBREVIATIONS.items():
        if full in title:
            terms.update(abbreviations)
    terms.update(p for p in _HANDLE_SPLIT.split(fold(item.handle)) if len(p) >= MIN_TERM_LEN)
    return {t for t in terms if len(t) >= MIN_TERM_LEN}


def extract_mentions(text: str, snapshot: CatalogSnapshot) -> List[str]:
    """
    Handles of the catalog items a question refers to, sorted and deduplicated so the
    result does not depend on catalog iteration order.
    """
    return _match(fold(text), snapshot.items)


def _match(folded_question: str, items: Iterable[CatalogItem]) -> List[str]:
    if not folded_question:
        return []
    found = {
        item.handle
        for item in items
        if item.handle and any(term in folded_question for term in search_terms(item))
    }
    return sorted(found)


def is_comparison_question(text: str) -> bool:
    folded = fold(text)
    return any(p.search(folded) for p in COMPARISON_PATTERNS)
