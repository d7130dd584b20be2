from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from app.models.news_normalized import NormalizedNewsItem
from app.models.news_sources import DEFAULT_NEWS_SOURCES, NewsSource
from services.news_cache_service import NewsCache, NewsRefreshScheduler

SOURCES = list(DEFAULT_NEWS_SOURCES)
START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


def _item(source: NewsSource, index: int) -> NormalizedNewsItem:
    return NormalizedNewsItem(
        id=f"{source.id}-{index}",
        title=f"{source.name} {index}",
        description="",
        link=f"https://example.com/{source.id}/{index}",
        thumbnail="https://placehold.co/800x450",
        pub_date="Mon, 01 Jan 2024 10:00:00 GMT",
        pub_date_formatted="2h atras",
        source=source.name,
        category="Regional",
    )


class FakeFetcher:
    """Returns ``counts[source.id]`` items; ``failing`` ids raise instead."""

    def __init__(self, counts: Dict[str, int], delay: float = 0.0) -> None:
        self.counts = dict(counts)
        self.delay = delay
        self.failing: set = set()
        self.calls: List[str] = []

    async def __call__(self, source: NewsSource) -> List[NormalizedNewsItem]:
        self.calls.append(source.id)
        if self.delay:
            await asyncio.sleep(self.delay)
        if source.id in self.failing:
            raise RuntimeError(f"{source.id} exploded")
        return [_item(source, i) for i in range(self.counts.get(source.id, 0))]


@pytest.mark.asyncio
async def test_cold_start_refreshes_and_stamps_last_updated():
    fetcher = FakeFetcher({"g1": 2, "santa-portal": 1, "diario-litoral": 1})
    cache = NewsCache(SOURCES, fetcher, refresh_interval_s=3600, clock=FakeClock())

    assert cache.is_stale()
    response = await cache.build_news_response()

    assert response.last_updated == START
    assert response.enabled_source_ids == ["g1", "santa-portal", "diario-litoral"]
    assert [item.id for item in response.items] == ["g1-0", "santa-portal-0", "diario-litoral-0", "g1-1"]
    assert not cache.is_stale()


@pytest.mark.asyncio
async def test_concurrent_requests_share_one_refresh_cycle():
    fetcher = FakeFetcher({"g1": 1, "santa-portal": 1, "diario-litoral": 1}, delay=0.05)
    cache = NewsCache(SOURCES, fetcher, refresh_interval_s=3600, clock=FakeClock())

    await asyncio.gather(cache.ensure_fresh(), cache.ensure_fresh(), cache.refresh())

    assert sorted(fetcher.calls) == ["diario-litoral", "g1", "santa-portal"]
    assert not cache.refresh_in_flight
    assert cache.source_counts() == {"g1": 1, "santa-portal": 1, "diario-litoral": 1}


@pytest.mark.asyncio
async def test_stale_cache_refreshes_on_next_read():
    clock = FakeClock()
    fetcher = FakeFetcher({"g1": 1})
    cache = NewsCache(SOURCES, fetcher, refresh_interval_s=3600, clock=clock)

    await cache.ensure_fresh()
    clock.advance(3599)
    await cache.ensure_fresh()
    assert fetcher.calls.count("g1") == 1

    clock.advance(2)
    assert cache.is_stale()
    await cache.ensure_fresh()
    assert fetcher.calls.count("g1") == 2
    assert cache.last_updated == START + timedelta(seconds=3601)


@pytest.mark.asyncio
async def test_crashing_source_keeps_previous_items_and_empty_source_is_overwritten():
    clock = FakeClock()
    fetcher = FakeFetcher({"g1": 2, "santa-portal": 3, "diario-litoral": 1})
    cache = NewsCache(SOURCES, fetcher, refresh_interval_s=3600, clock=clock)
    await cache.refresh()

    fetcher.failing = {"g1"}
    fetcher.counts["santa-portal"] = 0
    clock.advance(10)
    await cache.refresh()

    assert cache.source_counts() == {"g1": 2, "santa-portal": 0, "diario-litoral": 1}
    assert cache.last_updated == START + timedelta(seconds=10)


@pytest.mark.asyncio
async def test_all_sources_empty_keeps_previous_snapshot():
    clock = FakeClock()
    fetcher = FakeFetcher({"g1": 2, "santa-portal": 1})
    cache = NewsCache(SOURCES, fetcher, refresh_interval_s=3600, clock=clock)
    await cache.refresh()

    fetcher.counts = {}
    clock.advance(60)
    await cache.refresh()

    assert cache.source_counts() == {"g1": 2, "santa-portal": 1, "diario-litoral": 0}
    # the cycle still completed
    assert cache.last_updated == START + timedelta(seconds=60)


@pytest.mark.asyncio
async def test_items_are_capped_per_source():
    fetcher = FakeFetcher({"g1": 40})
    cache = NewsCache(SOURCES, fetcher, max_items_per_source=15, clock=FakeClock())

    await cache.refresh()

    assert cache.source_counts()["g1"] == 15


@pytest.mark.asyncio
async def test_source_filter_and_unknown_ids():
    fetcher = FakeFetcher({"g1": 2, "santa-portal": 2, "diario-litoral": 2})
    cache = NewsCache(SOURCES, fetcher, clock=FakeClock())

    response = await cache.build_news_response(["santa-portal", "nope"])

    assert response.enabled_source_ids == ["santa-portal", "nope"]
    assert [item.id for item in response.items] == ["santa-portal-0", "santa-portal-1"]


@pytest.mark.asyncio
async def test_snapshot_is_isolated_from_later_refreshes():
    clock = FakeClock()
    fetcher = FakeFetcher({"g1": 1})
    cache = NewsCache(SOURCES, fetcher, clock=clock)
    await cache.refresh()
    before = cache.snapshot()

    fetcher.counts["g1"] = 3
    await cache.refresh()

    assert len(before.per_source["g1"]) == 1
    assert len(cache.snapshot().per_source["g1"]) == 3


@pytest.mark.asyncio
async def test_health_reports_counts():
    fetcher = FakeFetcher({"g1": 2, "diario-litoral": 1})
    cache = NewsCache(SOURCES, fetcher, clock=FakeClock())

    health = cache.health()
    assert health.last_updated is None
    assert health.stale is True
    assert health.total == 0

    await cache.refresh()
    health = cache.health()
    assert health.stale is False
    assert health.sources == {"g1": 2, "santa-portal": 0, "diario-litoral": 1}
    assert health.total == 3


@pytest.mark.asyncio
async def test_scheduler_refreshes_on_start_and_stops_cleanly():
    fetcher = FakeFetcher({"g1": 1})
    cache = NewsCache(SOURCES, fetcher, clock=FakeClock())
    scheduler = NewsRefreshScheduler(cache, interval_seconds=0.01)

    scheduler.start()
    assert scheduler.running
    for _ in range(100):
        if fetcher.calls.count("g1") >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert not scheduler.running
    assert fetcher.calls.count("g1") >= 2
    assert cache.source_counts()["g1"] == 1


@pytest.mark.asyncio
async def test_scheduler_survives_refresh_errors(monkeypatch):
    cache = NewsCache(SOURCES, FakeFetcher({}), clock=FakeClock())
    attempts: List[int] = []

    async def broken_refresh() -> None:
        attempts.append(1)
        raise RuntimeError("boom")

    monkeypatch.setattr(cache, "refresh", broken_refresh)
    scheduler = NewsRefreshScheduler(cache, interval_seconds=0.01)

    scheduler.start()
    for _ in range(100):
        if len(attempts) >= 2:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert len(attempts) >= 2
