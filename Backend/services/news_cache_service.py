from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from app.core.config import settings
from app.core.logging import get_logger
from app.core.request_id import with_run_id
from app.models.news_normalized import NormalizedNewsItem
from app.models.news_public import NewsHealthResponse, NewsResponse
from app.models.news_sources import NewsSource
from services.news_interleave import interleave_by_source

logger = get_logger().bind(module="news_cache_service")

FetchSource = Callable[[NewsSource], Awaitable[List[NormalizedNewsItem]]]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class NewsSnapshot:
    per_source: Mapping[str, List[NormalizedNewsItem]] = field(default_factory=dict)
    last_updated: Optional[datetime] = None


class NewsCache:
    """
    Last fetched items per source plus the time of the last completed cycle.

    Only ``_run_refresh`` writes state, and it swaps the whole map in one
    step at the end of a cycle, so readers never see a partial refresh. At
    most one cycle runs at a time: concurrent ``refresh()`` callers await the
    task that is already in flight.
    """

    def __init__(
        self,
        sources: Sequence[NewsSource],
        fetch_source: FetchSource,
        *,
        refresh_interval_s: float = settings.NEWS_REFRESH_INTERVAL_S,
        max_items_per_source: int = settings.NEWS_MAX_ITEMS_PER_SOURCE,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._sources = tuple(sources)
        self._fetch_source = fetch_source
        self.refresh_interval_s = refresh_interval_s
        self.max_items_per_source = max_items_per_source
        self._clock = clock
        self._per_source: Dict[str, List[NormalizedNewsItem]] = {}
        self._last_updated: Optional[datetime] = None
        self._inflight: Optional[asyncio.Task[None]] = None

    @property
    def sources(self) -> Sequence[NewsSource]:
        return self._sources

    @property
    def source_ids(self) -> List[str]:
        return [source.id for source in self._sources]

    @property
    def last_updated(self) -> Optional[datetime]:
        return self._last_updated

    @property
    def refresh_in_flight(self) -> bool:
        return self._inflight is not None

    def is_stale(self, now: Optional[datetime] = None) -> bool:
        if self._last_updated is None:
            return True
        current = now or self._clock()
        return (current - self._last_updated).total_seconds() > self.refresh_interval_s

    async def ensure_fresh(self) -> None:
        if self.is_stale():
            await self.refresh()

    async def refresh(self) -> None:
        task = self._inflight
        if task is None:
            task = asyncio.get_running_loop().create_task(self._run_refresh(), name="news-refresh")
            self._inflight = task
        else:
            logger.debug("news_refresh_joined")
        # A cancelled caller must not cancel the cycle other callers wait on.
        await asyncio.shield(task)

    async def _run_refresh(self) -> None:
        try:
            started = self._clock()
            results = await asyncio.gather(
                *(self._fetch_source(source) for source in self._sources),
                return_exceptions=True,
            )

            previous = self._per_source
            updated: Dict[str, List[NormalizedNewsItem]] = {}
            for source, result in zip(self._sources, results):
                if isinstance(result, BaseException):
                    logger.error(
                        "news_refresh_source_crashed",
                        source=source.id,
                        error=repr(result),
                    )
                    updated[source.id] = list(previous.get(source.id, []))
                    continue
                updated[source.id] = list(result or [])[: self.max_items_per_source]

            if not any(updated.values()) and any(previous.values()):
                logger.warning("news_refresh_all_sources_empty", kept_previous=True)
                updated = dict(previous)

            self._per_source = updated
            self._last_updated = self._clock()
            logger.info(
                "news_refresh_completed",
                sources={source_id: len(items) for source_id, items in updated.items()},
                duration_ms=int((self._last_updated - started).total_seconds() * 1000),
            )
        finally:
            self._inflight = None

    def snapshot(self) -> NewsSnapshot:
        return NewsSnapshot(
            per_source={source_id: list(items) for source_id, items in self._per_source.items()},
            last_updated=self._last_updated,
        )

    def source_counts(self) -> Dict[str, int]:
        return {source_id: len(self._per_source.get(source_id, [])) for source_id in self.source_ids}

    def health(self) -> NewsHealthResponse:
        counts = self.source_counts()
        return NewsHealthResponse(
            last_updated=self._last_updated,
            stale=self.is_stale(),
            sources=counts,
            total=sum(counts.values()),
        )

    async def build_news_response(self, source_ids: Optional[Sequence[str]] = None) -> NewsResponse:
        """
        Ensure freshness, then interleave the requested sources (all configured
        sources when none are given). Unknown ids contribute no items.
        """
        await self.ensure_fresh()

        ids = list(source_ids) if source_ids else self.source_ids
        snapshot = self.snapshot()
        per_source = {source_id: snapshot.per_source.get(source_id, []) for source_id in ids}
        return NewsResponse(
            items=interleave_by_source(per_source),
            last_updated=snapshot.last_updated or self._clock(),
            enabled_source_ids=ids,
        )


class NewsRefreshScheduler:
    """
    Refreshes the cache once at start and then on a fixed interval,
    independent of read traffic.
    """

    def __init__(self, cache: NewsCache, *, interval_seconds: Optional[float] = None) -> None:
        self.cache = cache
        self.interval_seconds = interval_seconds if interval_seconds is not None else cache.refresh_interval_s
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        if self._task is not None:
            return
        loop = asyncio.get_running_loop()
        self._stop_event.clear()
        self._task = loop.create_task(self._run(), name="news-refresh-scheduler")
        logger.info("news_refresh_scheduler_started", interval_seconds=self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stop_event.set()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            logger.info("news_refresh_scheduler_stopped")

    async def _run(self) -> None:
        while not self._stop_event.is_set():
            with with_run_id():
                try:
                    await self.cache.refresh()
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    logger.error("news_refresh_scheduled_failed", error=str(exc))
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
            except asyncio.TimeoutError:
                continue
