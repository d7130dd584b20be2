from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class NormalizedNewsItem(BaseModel):
    """
    Canonical, normalized representation of a single news entry as served
    by GET /news.

    Field names on the wire follow the display client (``pubDate``,
    ``pubDateFormatted``); Python code uses the snake_case attributes.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    title: str
    description: str
    link: str
    # Real image URL or a per-source placeholder, never empty.
    thumbnail: str
    pub_date: str = Field(alias="pubDate")
    pub_date_formatted: str = Field(alias="pubDateFormatted")
    # Display name of the owning source, even when a fallback feed served it.
    source: str
    category: str
