from __future__ import annotations

import base64
import calendar
import re
import secrets
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote
from zoneinfo import ZoneInfo

from app.core.config import settings
from app.models.news_normalized import NormalizedNewsItem
from app.models.news_sources import NewsSource
from services.news_categories import derive_category
from services.news_thumbnails import resolve_thumbnail

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_WHITESPACE_RE = re.compile(r"\s+")
_FIRST_PARAGRAPH_RE = re.compile(r"<p[^>]*>([\s\S]*?)</p>", re.IGNORECASE)
_NON_ALNUM_RE = re.compile(r"[^a-zA-Z0-9]")

# Only these six entities are decoded, in this order.
_ENTITY_REPLACEMENTS: Tuple[Tuple[str, str], ...] = (
    ("&nbsp;", " "),
    ("&quot;", '"'),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&#39;", "'"),
)

# encodeURIComponent leaves these unescaped
_URI_COMPONENT_SAFE = "-_.!~*'()"

ID_TITLE_PREFIX = 30
ID_LENGTH = 16

LABEL_NOW = "Agora"
LABEL_TODAY = "Hoje"
LABEL_YESTERDAY = "Ontem"
_PT_BR_MONTHS = (
    "jan.", "fev.", "mar.", "abr.", "mai.", "jun.",
    "jul.", "ago.", "set.", "out.", "nov.", "dez.",
)


class RSSNormalizationError(Exception):
    """
    Recoverable normalization failure for a single RSS/Atom entry.
    The entry is dropped; the rest of the feed is still served.
    """

    def __init__(self, message: str, entry_raw: Dict[str, Any] | None = None):
        super().__init__(message)
        self.entry_raw = entry_raw or {}


def clean_html(value: Any) -> str:
    if not value:
        return ""
    text = _HTML_TAG_RE.sub("", str(value))
    for entity, replacement in _ENTITY_REPLACEMENTS:
        text = text.replace(entity, replacement)
    text = _WHITESPACE_RE.sub(" ", text)
    return text.strip()


def extract_first_paragraph(html: Any) -> str:
    if not html:
        return ""
    match = _FIRST_PARAGRAPH_RE.search(str(html))
    if match and match.group(1):
        return clean_html(match.group(1))
    return clean_html(html)


def _get_first_content_value(entry: Dict[str, Any]) -> str:
    encoded = entry.get("content:encoded")
    if isinstance(encoded, str) and encoded.strip():
        return encoded
    content = entry.get("content")
    if isinstance(content, list):
        for block in content:
            if isinstance(block, dict):
                val = block.get("value")
                if isinstance(val, str) and val.strip():
                    return val
    if isinstance(content, dict):
        val = content.get("value")
        if isinstance(val, str):
            return val
    return ""


def pick_description_raw(entry: Dict[str, Any]) -> str:
    """
    First non-empty of: full content, generic content, summary,
    plain-text snippet, short description.
    """
    candidates = (
        _get_first_content_value(entry),
        entry.get("content"),
        entry.get("summary"),
        entry.get("contentSnippet") or entry.get("content_snippet"),
        entry.get("description"),
    )
    for candidate in candidates:
        if isinstance(candidate, str) and candidate:
            return candidate
    return ""


def _utf16_prefix(text: str, units: int) -> str:
    # Raises UnicodeDecodeError when the cut lands inside a surrogate pair.
    return text.encode("utf-16-le", "surrogatepass")[: units * 2].decode("utf-16-le")


def generate_item_id(title: str) -> str:
    """
    Display key derived from the title prefix, counted in UTF-16 units so
    ids agree with the display client. Not unique: two titles sharing
    their first 30 units collide.
    """
    try:
        encoded = quote(_utf16_prefix(str(title), ID_TITLE_PREFIX), safe=_URI_COMPONENT_SAFE)
        digest = base64.b64encode(encoded.encode("ascii")).decode("ascii")
        return _NON_ALNUM_RE.sub("", digest)[:ID_LENGTH]
    except (UnicodeError, ValueError, TypeError):
        return secrets.token_hex(ID_LENGTH // 2)


def _struct_time_to_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError):
        return None


def parse_feed_date(value: Any) -> datetime:
    """
    Parse RFC 822 (RSS) or ISO 8601 (Atom) dates. Raises ValueError when the
    value is not a date; naive results are treated as UTC.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        raw = value.strip()
        try:
            parsed = parsedate_to_datetime(raw)
        except (TypeError, ValueError, IndexError):
            parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    else:
        raise ValueError(f"not a date: {value!r}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_relative_date(value: Any, now: Optional[datetime] = None) -> str:
    try:
        published = parse_feed_date(value)
        current = now or datetime.now(timezone.utc)
        if current.tzinfo is None:
            current = current.replace(tzinfo=timezone.utc)
        diff_s = (current - published).total_seconds()
        diff_hours = int(diff_s // 3600)
        diff_days = int(diff_s // 86400)

        if diff_hours < 1:
            return LABEL_NOW
        if diff_hours < 24:
            return f"{diff_hours}h atras"
        if diff_days == 1:
            return LABEL_YESTERDAY
        if diff_days < 7:
            return f"{diff_days} dias atras"

        local = published.astimezone(ZoneInfo(settings.NEWS_TIMEZONE))
        return f"{local.day:02d} de {_PT_BR_MONTHS[local.month - 1]}"
    except (ValueError, TypeError, OverflowError, KeyError):
        return LABEL_TODAY


def _extract_pub_date(entry: Dict[str, Any], now: Optional[datetime]) -> str:
    for key in ("pubDate", "published", "isoDate", "updated"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    parsed = _struct_time_to_datetime(entry.get("published_parsed")) or _struct_time_to_datetime(
        entry.get("updated_parsed")
    )
    if parsed is not None:
        return parsed.isoformat()
    return (now or datetime.now(timezone.utc)).isoformat()


def _extract_link(entry: Dict[str, Any]) -> str:
    for key in ("link", "guid", "id"):
        value = entry.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return ""


def normalize_entry(
    source: NewsSource,
    entry: Dict[str, Any],
    *,
    now: Optional[datetime] = None,
) -> Tuple[NormalizedNewsItem | None, RSSNormalizationError | None]:
    """
    Normalize a single feed entry into a NormalizedNewsItem.
    Returns:
        (NormalizedNewsItem, None) on success
        (None, RSSNormalizationError) when the entry is rejected
    """
    try:
        raw_title = str(entry.get("title") or "").strip()
        title = clean_html(raw_title)
        link = _extract_link(entry)
        if not title:
            return None, RSSNormalizationError("missing_title", entry_raw=entry)
        if not link:
            return None, RSSNormalizationError("missing_link", entry_raw=entry)

        description_raw = pick_description_raw(entry)
        pub_date = _extract_pub_date(entry, now)

        item = NormalizedNewsItem(
            id=generate_item_id(raw_title),
            title=title,
            description=extract_first_paragraph(description_raw),
            link=link,
            thumbnail=resolve_thumbnail(entry, description_raw, source.type, base_url=link),
            pub_date=pub_date,
            pub_date_formatted=format_relative_date(pub_date, now=now),
            source=source.name,
            category=derive_category(entry, source, link),
        )
        return item, None
    except Exception as exc:
        return None, RSSNormalizationError(str(exc), entry_raw=entry if isinstance(entry, dict) else {})


def normalize_feed_entries(
    parsed_feed: Any,
    source: NewsSource,
    *,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[List[NormalizedNewsItem], List[RSSNormalizationError]]:
    """
    Main entry point for the normalization engine.
    - Take the first ``limit`` raw entries (all when None)
    - Normalize each against the owning source
    - Collect normalized items + rejected entries
    """
    items: List[NormalizedNewsItem] = []
    errors: List[RSSNormalizationError] = []
    if isinstance(parsed_feed, dict):
        entries = parsed_feed.get("entries") or []
    else:
        entries = getattr(parsed_feed, "entries", []) or []
    if limit is not None:
        entries = list(entries)[:limit]
    for entry in entries:
        item, err = normalize_entry(source, entry, now=now)
        if item is not None:
            items.append(item)
        elif err is not None:
            errors.append(err)
    return items, errors
