from __future__ import annotations

from types import SimpleNamespace
from typing import Callable, List

import httpx
import pytest

from app.models.news_sources import DEFAULT_NEWS_SOURCES, NewsSource, SourceType, make_news_source
from services import news_fetch_service
from services.news_fetch_service import NewsFeedFetcher, fetch_strategies

G1_SOURCE = DEFAULT_NEWS_SOURCES[0]
SANTA_SOURCE = DEFAULT_NEWS_SOURCES[1]


def _rss(*titles: str) -> bytes:
    items = "".join(
        f"<item><title>{title}</title><link>https://news.example.com/{index}</link>"
        f"<pubDate>Mon, 01 Jan 2024 10:00:00 GMT</pubDate></item>"
        for index, title in enumerate(titles)
    )
    return f'<?xml version="1.0"?><rss version="2.0"><channel><title>t</title>{items}</channel></rss>'.encode()


def _fetcher(handler: Callable[[httpx.Request], httpx.Response], max_items: int = 15) -> NewsFeedFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NewsFeedFetcher(timeout_s=5.0, max_items=max_items, client=client)


def test_fetch_strategies_order():
    assert fetch_strategies(G1_SOURCE) == [G1_SOURCE.feed_url, *G1_SOURCE.fallback_urls]
    assert fetch_strategies(SANTA_SOURCE) == [SANTA_SOURCE.feed_url]


@pytest.mark.asyncio
async def test_fetch_source_primary_success():
    requested: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        return httpx.Response(200, content=_rss("Um", "Dois"))

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(SANTA_SOURCE)
    finally:
        await fetcher.aclose()

    assert [item.title for item in items] == ["Um", "Dois"]
    assert {item.source for item in items} == {"Santa Portal"}
    assert requested == ["santaportal.com.br"]


@pytest.mark.asyncio
async def test_g1_falls_back_to_google_news_and_keeps_source_identity():
    requested: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        if request.url.host == "g1.globo.com":
            return httpx.Response(503, content=b"unavailable")
        return httpx.Response(200, content=_rss("Google A", "Google B"))

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(G1_SOURCE)
    finally:
        await fetcher.aclose()

    assert requested == ["g1.globo.com", "news.google.com"]
    assert len(items) == 2
    assert all(item.source == G1_SOURCE.name for item in items)
    assert all(item.thumbnail.startswith("https://placehold.co/") and "c4170c" in item.thumbnail for item in items)


@pytest.mark.asyncio
async def test_unparsable_primary_triggers_fallback():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "g1.globo.com":
            return httpx.Response(200, content=b"this is not a feed")
        return httpx.Response(200, content=_rss("From fallback"))

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(G1_SOURCE)
    finally:
        await fetcher.aclose()

    assert [item.title for item in items] == ["From fallback"]


@pytest.mark.asyncio
async def test_source_without_fallback_degrades_to_empty():
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(500)

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(SANTA_SOURCE)
    finally:
        await fetcher.aclose()

    assert items == []
    assert calls == 1


@pytest.mark.asyncio
async def test_network_errors_on_every_strategy_return_empty():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(G1_SOURCE)
    finally:
        await fetcher.aclose()

    assert items == []


@pytest.mark.asyncio
async def test_fetch_source_caps_items():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=_rss(*[f"Item {i}" for i in range(20)]))

    fetcher = _fetcher(handler, max_items=15)
    try:
        items = await fetcher.fetch_source(SANTA_SOURCE)
    finally:
        await fetcher.aclose()

    assert len(items) == 15
    assert items[0].title == "Item 0"


@pytest.mark.asyncio
async def test_custom_fallback_chain_is_followed_in_order():
    source = NewsSource(
        id="diario-litoral",
        name="Diario do Litoral",
        type=SourceType.DIARIO_LITORAL,
        feed_url="https://primary.example/rss",
        fallback_urls=("https://second.example/rss", "https://third.example/rss"),
    )
    requested: List[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(request.url.host)
        if request.url.host == "third.example":
            return httpx.Response(200, content=_rss("Third"))
        return httpx.Response(404)

    fetcher = _fetcher(handler)
    try:
        items = await fetcher.fetch_source(source)
    finally:
        await fetcher.aclose()

    assert requested == ["primary.example", "second.example", "third.example"]
    assert items[0].source == "Diario do Litoral"


@pytest.mark.asyncio
async def test_fetch_feed_uses_short_lived_fetcher(monkeypatch):
    closed: List[bool] = []
    source = make_news_source(
        id="santa-portal",
        name="Santa Portal",
        type=SourceType.SANTA_PORTAL,
        feed_url="https://santaportal.com.br/feed/",
    )

    async def fake_fetch_source(self, src):
        return [SimpleNamespace(title="x", source=src.name)]

    async def fake_aclose(self):
        closed.append(True)

    monkeypatch.setattr(NewsFeedFetcher, "fetch_source", fake_fetch_source)
    monkeypatch.setattr(NewsFeedFetcher, "aclose", fake_aclose)

    items = await news_fetch_service.fetch_feed(source)

    assert items[0].source == "Santa Portal"
    assert closed == [True]
