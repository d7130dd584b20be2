"""
Category derivation for normalized news items.

G1 feeds carry no usable category, so the label is read from the article URL
path; every other source uses its own feed category.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.models.news_sources import NewsSource, SourceType

DEFAULT_REGION_CATEGORY = "Baixada Santista"
GENERIC_CATEGORY = "Regional"

# Checked in order; first matching path segment wins.
CITY_PATH_CATEGORIES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("/praia-grande/",), "Praia Grande"),
    (("/santos/",), "Santos"),
    (("/guaruja/",), "Guaruja"),
    (("/cubatao/",), "Cubatao"),
    (("/sao-vicente/",), "Sao Vicente"),
    (("/bertioga/",), "Bertioga"),
    (("/mongagua/",), "Mongagua"),
    (("/itanhaem/",), "Itanhaem"),
    (("/peruibe/",), "Peruibe"),
)

TOPIC_PATH_CATEGORIES: Sequence[Tuple[Tuple[str, ...], str]] = (
    (("/policia/", "/crime/"), "Policia"),
    (("/transito/",), "Transito"),
    (("/economia/",), "Economia"),
    (("/saude/",), "Saude"),
    (("/educacao/",), "Educacao"),
    (("/esporte/",), "Esportes"),
    (("/politica/",), "Politica"),
)


def extract_category_from_url(link_url: Optional[str]) -> str:
    url_lower = str(link_url or "").lower()
    for segments, label in (*CITY_PATH_CATEGORIES, *TOPIC_PATH_CATEGORIES):
        if any(segment in url_lower for segment in segments):
            return label
    return DEFAULT_REGION_CATEGORY


def _feed_categories(entry: Dict[str, Any]) -> List[str]:
    # rss-style "categories" list, then feedparser "tags" [{term: ...}]
    values: List[str] = []
    categories = entry.get("categories")
    if isinstance(categories, (list, tuple)):
        for value in categories:
            if isinstance(value, str) and value.strip():
                values.append(value.strip())
            elif isinstance(value, (list, tuple)) and len(value) == 2 and isinstance(value[1], str):
                # feedparser exposes (domain, term) pairs here
                if value[1].strip():
                    values.append(value[1].strip())
    tags = entry.get("tags")
    if isinstance(tags, list):
        for tag in tags:
            term = tag.get("term") if isinstance(tag, dict) else None
            if isinstance(term, str) and term.strip():
                values.append(term.strip())
    return values


def derive_category(entry: Dict[str, Any], source: NewsSource, link: str) -> str:
    if source.type == SourceType.G1:
        return extract_category_from_url(link)

    categories = _feed_categories(entry)
    if categories:
        return categories[0]

    category = entry.get("category")
    if isinstance(category, str) and category.strip():
        return category.strip()

    return GENERIC_CATEGORY
