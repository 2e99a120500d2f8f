# nutricache/domain/services/content_extractor.py
"""
Structured product sections (benefits, audience, usage, contraindications) out of HTML.

Two page shapes are supported:
  - the Storefront `descriptionHtml`, where each section starts with an <h1>..<h6> heading;
  - the rendered product page, where sections live in collapsible tabs
    (`.wt-collapse__trigger__title` label followed by a `.wt-collapse__target__content` body).

Both extractors are best effort: unknown markup yields an empty ProductContent, never an error.
"""
from __future__ import annotations

import copy
import logging
import re
from typing import Dict, List, Optional, Protocol, Tuple

from bs4 import BeautifulSoup, Tag

from nutricache.domain.models.catalog import ProductContent, UsageInstructions
from nutricache.domain.services.normalizer import fold

logger = logging.getLogger(__name__)

BULLET_MARKERS = re.compile(r"[✦•▪●]")
_HEADING = re.compile(r"^h[1-6]$")
_SPACE_COLON = re.compile(r"\s*:\s*")
_SPACES = re.compile(r"\s+")

# Section key -> folded label prefixes (fr + en)
SECTION_LABELS: Dict[str, Tuple[str, ...]] = {
    "benefits": ("bienfait", "benefit"),
    "target_audience": ("pour qui", "who for", "who is it for"),
    "usage": ("mode d'emploi", "how to use", "usage", "utilisation"),
    "contraindications": ("contre-indication", "contre indication", "contraindication", "warning", "precaution"),
}

# Usage field -> folded label prefixes of the <strong> that introduces it
USAGE_LABELS: Dict[str, Tuple[str, ...]] = {
    "dosage": ("dose recommandee", "dosage", "posologie", "recommended dose"),
    "timing": ("meilleur moment", "moment de prise", "when to take", "best time"),
    "duration": ("duree de la cure", "duree", "duration"),
    "tips": ("conseil", "tip"),
}


class ContentExtractor(Protocol):
    def extract(self, html: str) -> ProductContent:
        ...


def section_key(label: str) -> Optional[str]:
    folded = fold(label).rstrip(" ?:")
    for key, prefixes in SECTION_LABELS.items():
        if folded.startswith(prefixes):
            return key
    return None


def _clean(text: str) -> str:
    text = BULLET_MARKERS.sub(" ", text)
    text = _SPACES.sub(" ", text).strip()
    text = _SPACE_COLON.sub(": ", text)
    return text.strip(" :-*")


def _format_block(block: Tag) -> str:
    """'Title: description' when the block opens with a <strong>, its plain text otherwise."""
    full = _clean(block.get_text(" ", strip=True))
    strong = block.find("strong")
    if strong is None:
        return full
    title = _clean(strong.get_text(" ", strip=True))
    if not title:
        return full
    rest = full[len(title):] if full.startswith(title) else full.replace(title, "", 1)
    rest = _clean(rest)
    return f"{title}: {rest}" if rest else title


def _split_markers(text: str) -> List[str]:
    if not BULLET_MARKERS.search(text):
        cleaned = _clean(text)
        return [cleaned] if cleaned else []
    # text before the first marker is an intro sentence, not a bullet
    parts = BULLET_MARKERS.split(text)[1:]
    return [c for c in (_clean(p) for p in parts) if c]


def bullet_lines(container: Tag) -> List[str]:
    items = container.find_all("li")
    if items:
        return [line for line in (_format_block(li) for li in items) if line]

    lines: List[str] = []
    paragraphs = container.find_all("p") or [container]
    for p in paragraphs:
        strong = p.find("strong")
        text = p.get_text(" ", strip=True)
        if strong is not None and len(BULLET_MARKERS.findall(text)) <= 1:
            line = _format_block(p)
            if line:
                lines.append(line)
            continue
        lines.extend(_split_markers(text))
    return lines


def usage_from(container: Tag) -> UsageInstructions:
    fields: Dict[str, str] = {"dosage": "", "timing": "", "duration": ""}
    tips: List[str] = []

    blocks = container.find_all("li") or container.find_all("p") or [container]
    for block in blocks:
        strong = block.find("strong")
        label = fold(strong.get_text(" ", strip=True)) if strong is not None else ""
        field = next((f for f, prefixes in USAGE_LABELS.items() if label.startswith(prefixes)), None)
        if field is None:
            line = _format_block(block)
            if line:
                tips.append(line)
            continue

        strong.extract()
        if field == "tips":
            tips.extend(_clean(t) for t in block.get_text("\n").split("\n") if _clean(t))
        elif not fields[field]:
            fields[field] = _clean(block.get_text(" ", strip=True))

    return UsageInstructions(tips=tips, **fields)


def content_from_sections(sections: Dict[str, Tag]) -> ProductContent:
    return ProductContent(
        benefits=bullet_lines(sections["benefits"]) if "benefits" in sections else [],
        target_audience=bullet_lines(sections["target_audience"]) if "target_audience" in sections else [],
        usage=usage_from(sections["usage"]) if "usage" in sections else UsageInstructions(),
        contraindications=bullet_lines(sections["contraindications"]) if "contraindications" in sections else [],
    )


class DescriptionExtractor:
    """Sections introduced by headings inside the product description HTML."""

    def extract(self, html: str) -> ProductContent:
        if not html or not html.strip():
            return ProductContent()
        soup = BeautifulSoup(html, "html.parser")
        sections: Dict[str, Tag] = {}

        for heading in soup.find_all(_HEADING):
            key = section_key(heading.get_text(" ", strip=True))
            if key is None or key in sections:
                continue
            body = soup.new_tag("div")
            for sibling in heading.find_next_siblings():
                if _HEADING.match(sibling.name or ""):
                    break
                body.append(copy.copy(sibling))
            sections[key] = body

        return content_from_sections(sections)


class CollapsibleTabExtractor:
    """Sections rendered as collapsible tabs on the public product page."""

    TRIGGER_CLASS = "wt-collapse__trigger__title"
    CONTENT_CLASS = "wt-collapse__target__content"
    TARGET_CLASS = "wt-collapse__target"

    def extract(self, html: str) -> ProductContent:
        if not html or not html.strip():
            return ProductContent()
        soup = BeautifulSoup(html, "html.parser")
        sections: Dict[str, Tag] = {}

        for trigger in soup.find_all(class_=self.TRIGGER_CLASS):
            key = section_key(trigger.get_text(" ", strip=True))
            if key is None or key in sections:
                continue
            body = trigger.find_next(class_=self.CONTENT_CLASS) or trigger.find_next(class_=self.TARGET_CLASS)
            if body is None:
                logger.debug("collapsible tab without body label=%r", trigger.get_text(strip=True))
                continue
            sections[key] = body

        return content_from_sections(sections)
