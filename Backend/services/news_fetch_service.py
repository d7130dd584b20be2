from __future__ import annotations

from typing import Any, List, Optional

import feedparser
import httpx

from app.core.config import settings
from app.core.logging import get_logger
from app.models.news_normalized import NormalizedNewsItem
from app.models.news_sources import NewsSource
from services.news_errors import FallbackExhausted, SourceFetchFailure
from services.rss_normalization import normalize_feed_entries

logger = get_logger().bind(module="news_fetch_service")

# Several upstream feeds reject default client signatures.
BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
    ),
    "Accept": "application/rss+xml, application/xml, text/xml, */*",
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
}


def fetch_strategies(source: NewsSource) -> List[str]:
    """Feed URLs to try for a source, in order: primary, then fallbacks."""
    urls = [source.feed_url]
    for url in source.fallback_urls:
        if url and url not in urls:
            urls.append(url)
    return urls


class NewsFeedFetcher:
    def __init__(
        self,
        *,
        timeout_s: float = settings.NEWS_FETCH_TIMEOUT_S,
        max_items: int = settings.NEWS_MAX_ITEMS_PER_SOURCE,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self.max_items = max_items
        self._client: Optional[httpx.AsyncClient] = client
        self._owns_client = client is None

    async def __aenter__(self) -> "NewsFeedFetcher":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_s,
                headers=BROWSER_HEADERS,
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _fetch_parsed(self, source: NewsSource, url: str) -> Any:
        client = self._ensure_client()
        try:
            response = await client.get(url)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise SourceFetchFailure(source.id, url, str(exc) or exc.__class__.__name__) from exc

        parsed = feedparser.parse(response.content)
        entries = getattr(parsed, "entries", None) or []
        if getattr(parsed, "bozo", False) and not entries:
            reason = getattr(parsed, "bozo_exception", None)
            raise SourceFetchFailure(source.id, url, f"unparsable feed: {reason}")
        return parsed

    async def fetch_source(self, source: NewsSource) -> List[NormalizedNewsItem]:
        """
        Fetch and normalize one source. Tries the primary feed, then each
        fallback feed; items always carry the owning source's identity.
        Never raises: every failure degrades to an empty list.
        """
        attempts: List[SourceFetchFailure] = []
        for index, url in enumerate(fetch_strategies(source)):
            try:
                parsed = await self._fetch_parsed(source, url)
            except SourceFetchFailure as exc:
                logger.warning(
                    "news_fetch_failed",
                    source=source.id,
                    url=url,
                    attempt=index + 1,
                    error=str(exc),
                )
                attempts.append(exc)
                continue

            items, errors = normalize_feed_entries(parsed, source, limit=self.max_items)
            for err in errors:
                logger.debug("news_fetch_entry_rejected", source=source.id, reason=str(err))
            logger.info(
                "news_fetch_source_success",
                source=source.id,
                url=url,
                fallback=index > 0,
                items=len(items),
                rejected=len(errors),
            )
            return items

        exhausted = FallbackExhausted(source.id, attempts)
        logger.warning(
            "news_fetch_source_exhausted",
            source=source.id,
            attempts=len(exhausted.attempts),
            error=str(exhausted),
        )
        return []


async def fetch_feed(source: NewsSource) -> List[NormalizedNewsItem]:
    """One-shot fetch with a short-lived client."""
    async with NewsFeedFetcher() as fetcher:
        return await fetcher.fetch_source(source)
