from __future__ import annotations

import argparse
import asyncio
from typing import List, Optional

from app.core.config import settings
from app.core.logging import configure_logging, get_logger
from app.core.request_id import with_run_id
from app.models.news_sources import NewsSource, get_all_news_sources
from services.news_cache_service import NewsCache
from services.news_fetch_service import NewsFeedFetcher

configure_logging(service_name="worker")
logger = get_logger().bind(worker="news_refresh_bot")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="NewsRefreshBot - fetch every configured feed once and report counts.")
    parser.add_argument(
        "--source",
        action="append",
        default=None,
        help="Restrict the run to this source id. May be given more than once.",
    )
    parser.add_argument(
        "--sources-path",
        default=None,
        help="Optional path to a news_sources.yml overriding the configured one.",
    )
    return parser.parse_args(argv)


def select_sources(all_sources: List[NewsSource], wanted: Optional[List[str]]) -> List[NewsSource]:
    if not wanted:
        return list(all_sources)
    wanted_ids = set(wanted)
    selected = [source for source in all_sources if source.id in wanted_ids]
    unknown = wanted_ids - {source.id for source in selected}
    if unknown:
        logger.warning("news_refresh_bot_unknown_sources", sources=sorted(unknown))
    return selected


async def run_refresh(sources: List[NewsSource]) -> int:
    if not sources:
        logger.error("news_refresh_bot_no_sources")
        return 1

    async with NewsFeedFetcher(
        timeout_s=settings.NEWS_FETCH_TIMEOUT_S,
        max_items=settings.NEWS_MAX_ITEMS_PER_SOURCE,
    ) as fetcher:
        cache = NewsCache(sources, fetcher.fetch_source)
        await cache.refresh()

    health = cache.health()
    logger.info(
        "news_refresh_bot_finished",
        sources=health.sources,
        total=health.total,
    )
    if health.total == 0:
        logger.error("news_refresh_bot_all_sources_empty")
        return 1
    return 0


async def main_async(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    sources = select_sources(get_all_news_sources(args.sources_path), args.source)
    with with_run_id():
        return await run_refresh(sources)


def main() -> None:
    exit_code = asyncio.run(main_async())
    raise SystemExit(exit_code)


if __name__ == "__main__":
    main()
