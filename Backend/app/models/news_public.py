from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.news_normalized import NormalizedNewsItem


class NewsResponse(BaseModel):
    """Payload for GET /news."""

    model_config = ConfigDict(populate_by_name=True)

    items: List[NormalizedNewsItem]
    last_updated: datetime = Field(alias="lastUpdated")
    enabled_source_ids: List[str] = Field(alias="enabledSourceIds")


class NewsSourceRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    type: str
    feed_url: str = Field(alias="feedUrl")
    has_fallback: bool = Field(alias="hasFallback")


class NewsSourceListResponse(BaseModel):
    sources: List[NewsSourceRecord]


class NewsHealthResponse(BaseModel):
    """Per-source item counts of the current cache snapshot."""

    model_config = ConfigDict(populate_by_name=True)

    last_updated: Optional[datetime] = Field(default=None, alias="lastUpdated")
    stale: bool
    sources: Dict[str, int] = Field(default_factory=dict)
    total: int = 0
