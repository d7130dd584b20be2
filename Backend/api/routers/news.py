from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from app.core.config import settings
from app.core.logging import get_logger
from app.deps.services import get_news_cache
from app.models.news_public import (
    NewsHealthResponse,
    NewsResponse,
    NewsSourceListResponse,
    NewsSourceRecord,
)
from services.news_cache_service import NewsCache
from services.news_thumbnails import to_proxied_image_url

logger = get_logger().bind(module="news_router")

router = APIRouter(
    prefix="/news",
    tags=["news"],
)


def _parse_source_ids(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


@router.get("", response_model=NewsResponse)
async def get_news(
    sources: Optional[str] = Query(
        default=None,
        description="Comma-separated source ids; empty means all configured sources.",
    ),
    cache: NewsCache = Depends(get_news_cache),
) -> NewsResponse:
    response = await cache.build_news_response(_parse_source_ids(sources))
    prefix = settings.IMAGE_PROXY_PREFIX
    if prefix:
        response.items = [
            item.model_copy(update={"thumbnail": to_proxied_image_url(item.thumbnail, prefix)})
            for item in response.items
        ]
    return response


@router.get("/sources", response_model=NewsSourceListResponse)
async def list_sources(cache: NewsCache = Depends(get_news_cache)) -> NewsSourceListResponse:
    return NewsSourceListResponse(
        sources=[
            NewsSourceRecord(
                id=source.id,
                name=source.name,
                type=source.type.value,
                feed_url=source.feed_url,
                has_fallback=source.has_fallback,
            )
            for source in cache.sources
        ]
    )


@router.get("/health", response_model=NewsHealthResponse)
async def news_health(cache: NewsCache = Depends(get_news_cache)) -> NewsHealthResponse:
    return cache.health()


@router.post("/refresh", response_model=NewsHealthResponse)
async def force_refresh(cache: NewsCache = Depends(get_news_cache)) -> NewsHealthResponse:
    """Run a refresh cycle now (or join the one in flight) and report counts."""
    logger.info("news_force_refresh_requested")
    await cache.refresh()
    return cache.health()
