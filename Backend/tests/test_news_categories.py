from __future__ import annotations

import pytest

from app.models.news_sources import SourceType, make_news_source
from services.news_categories import (
    DEFAULT_REGION_CATEGORY,
    GENERIC_CATEGORY,
    derive_category,
    extract_category_from_url,
)


@pytest.mark.parametrize(
    "link, expected",
    [
        ("https://g1.globo.com/sp/santos-regiao/noticia/2024/01/01/x.ghtml", "Baixada Santista"),
        ("https://g1.globo.com/sp/santos-regiao/praia-grande/noticia/x.ghtml", "Praia Grande"),
        ("https://g1.globo.com/sp/santos/noticia/x.ghtml", "Santos"),
        ("https://g1.globo.com/sp/sao-vicente/noticia/x.ghtml", "Sao Vicente"),
        ("https://g1.globo.com/sp/santos-regiao/policia/x.ghtml", "Policia"),
        ("https://example.com/crime/x", "Policia"),
        ("https://example.com/Transito/x", "Transito"),
        ("https://example.com/esporte/x", "Esportes"),
        ("", DEFAULT_REGION_CATEGORY),
        (None, DEFAULT_REGION_CATEGORY),
    ],
)
def test_extract_category_from_url(link, expected):
    assert extract_category_from_url(link) == expected


def test_city_segments_win_over_topics():
    assert extract_category_from_url("https://example.com/guaruja/policia/x") == "Guaruja"


def _source(source_type: SourceType):
    return make_news_source(id=source_type.value, name="S", type=source_type, feed_url="https://example.com/rss")


def test_g1_ignores_feed_categories():
    entry = {"tags": [{"term": "Cidades"}]}
    link = "https://g1.globo.com/sp/santos-regiao/cubatao/noticia/x.ghtml"
    assert derive_category(entry, _source(SourceType.G1), link) == "Cubatao"


def test_feed_category_used_for_other_sources():
    entry = {"categories": [(None, "Cotidiano"), (None, "Santos")]}
    assert derive_category(entry, _source(SourceType.SANTA_PORTAL), "https://x/y") == "Cotidiano"

    entry = {"categories": ["Litoral"]}
    assert derive_category(entry, _source(SourceType.DIARIO_LITORAL), "https://x/y") == "Litoral"

    entry = {"tags": [{"term": " Praia "}]}
    assert derive_category(entry, _source(SourceType.DIARIO_LITORAL), "https://x/y") == "Praia"

    entry = {"category": "Geral"}
    assert derive_category(entry, _source(SourceType.SANTA_PORTAL), "https://x/y") == "Geral"


def test_missing_feed_category_is_generic():
    assert derive_category({}, _source(SourceType.SANTA_PORTAL), "https://x/santos/y") == GENERIC_CATEGORY
    assert derive_category({"categories": ["  "]}, _source(SourceType.SANTA_PORTAL), "https://x") == GENERIC_CATEGORY
