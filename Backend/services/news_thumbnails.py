"""
Thumbnail resolution for normalized news items.

Every function here is total: malformed URLs and odd feed shapes degrade to
"no change" or to the per-source placeholder, never to an exception.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Tuple
from urllib.parse import parse_qsl, quote, urlencode, urljoin, urlsplit, urlunsplit

from app.models.news_sources import SourceType

MIN_THUMBNAIL_LENGTH = 10

UPGRADED_WIDTH = "1600"
UPGRADED_HEIGHT = "900"
UPGRADED_BOX = f"{UPGRADED_WIDTH},{UPGRADED_HEIGHT}"

# query param -> replacement value
_UPGRADE_PARAMS: Dict[str, str] = {
    "w": UPGRADED_WIDTH,
    "width": UPGRADED_WIDTH,
    "h": UPGRADED_HEIGHT,
    "height": UPGRADED_HEIGHT,
    "resize": UPGRADED_BOX,
    "fit": UPGRADED_BOX,
}

# WordPress-style "-300x200" size suffix right before the file extension
_SIZE_SUFFIX_RE = re.compile(r"-\d{2,4}x\d{2,4}(?=\.[a-zA-Z0-9]+$)")
_IMG_SRC_RE = re.compile(r"""<img[^>]+src=["']([^"']+)["']""", re.IGNORECASE)
_HTTP_URL_RE = re.compile(r"^https?://", re.IGNORECASE)

PLACEHOLDERS: Dict[SourceType, str] = {
    SourceType.G1: "https://placehold.co/800x450/c4170c/ffffff?text=G1+Santos",
    SourceType.SANTA_PORTAL: "https://placehold.co/800x450/1a6b3c/ffffff?text=Santa+Portal",
    SourceType.DIARIO_LITORAL: "https://placehold.co/800x450/0066cc/ffffff?text=Diario+Litoral",
}


def is_http_url(value: Any) -> bool:
    return isinstance(value, str) and bool(_HTTP_URL_RE.match(value))


def placeholder_for_source(source_type: SourceType) -> str:
    return PLACEHOLDERS.get(source_type, PLACEHOLDERS[SourceType.DIARIO_LITORAL])


def _url_of(value: Any) -> str:
    if isinstance(value, dict):
        for key in ("url", "href"):
            candidate = value.get(key)
            if isinstance(candidate, str) and candidate:
                return candidate
        # rss-parser style {"$": {"url": ...}}
        attrs = value.get("$")
        if isinstance(attrs, dict):
            candidate = attrs.get("url")
            if isinstance(candidate, str):
                return candidate
    return ""


def get_media_url(entry: Dict[str, Any]) -> str:
    """Enclosure URL first, then the first media:content URL."""
    if not isinstance(entry, dict):
        return ""

    enclosure = entry.get("enclosure")
    url = _url_of(enclosure)
    if url:
        return url
    enclosures = entry.get("enclosures")
    if isinstance(enclosures, list) and enclosures:
        url = _url_of(enclosures[0])
        if url:
            return url

    for key in ("media_content", "media:content"):
        media = entry.get(key)
        if isinstance(media, list):
            if media:
                url = _url_of(media[0])
                if url:
                    return url
        else:
            url = _url_of(media)
            if url:
                return url
    return ""


def extract_first_image(html: Any) -> str:
    if not html:
        return ""
    match = _IMG_SRC_RE.search(str(html))
    return match.group(1) if match else ""


def upgrade_image_url(thumbnail_url: str) -> str:
    """
    Ask the image host for a bigger rendition: drop "-WxH" filename suffixes
    and bump known size query params. Non-http values pass through untouched.
    """
    if not is_http_url(thumbnail_url):
        return thumbnail_url

    try:
        parts = urlsplit(thumbnail_url)
        path = _SIZE_SUFFIX_RE.sub("", parts.path, count=1)
        query = parts.query

        pairs: List[Tuple[str, str]] = parse_qsl(parts.query, keep_blank_values=True)
        if any(key in _UPGRADE_PARAMS for key, _ in pairs):
            query = urlencode(
                [(key, _UPGRADE_PARAMS.get(key, value)) for key, value in pairs],
                safe=",",
            )

        if path == parts.path and query == parts.query:
            return thumbnail_url
        return urlunsplit((parts.scheme, parts.netloc, path, query, parts.fragment))
    except ValueError:
        return thumbnail_url


def absolutize_image_url(candidate: str, base_url: str = "") -> str:
    """Resolve relative and protocol-relative image paths against the article link."""
    if not candidate or is_http_url(candidate):
        return candidate
    try:
        return urljoin(base_url, candidate.strip())
    except ValueError:
        return ""


def resolve_thumbnail(
    entry: Dict[str, Any],
    description_raw: str,
    source_type: SourceType,
    base_url: str = "",
) -> str:
    """Always an http(s) URL: the feed image when usable, else the source placeholder."""
    thumbnail = get_media_url(entry)
    if not thumbnail:
        thumbnail = extract_first_image(description_raw)
    thumbnail = absolutize_image_url(thumbnail, base_url)
    if not is_http_url(thumbnail) or len(thumbnail) < MIN_THUMBNAIL_LENGTH:
        return placeholder_for_source(source_type)
    return upgrade_image_url(thumbnail)


def to_proxied_image_url(thumbnail_url: str, prefix: str) -> str:
    """Route an http(s) thumbnail through the image proxy mounted at ``prefix``."""
    if not prefix or not is_http_url(thumbnail_url):
        return thumbnail_url
    if thumbnail_url.startswith(prefix):
        return thumbnail_url
    return f"{prefix}?url={quote(thumbnail_url, safe='')}"
