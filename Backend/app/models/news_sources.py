"""
News sources registry loader.

Parses configs/news_sources.yml into strongly-typed NewsSource objects with
structlog-backed validation and caching. When the file is missing or holds no
valid entry, the built-in Baixada Santista sources are served instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

import yaml

from app.core.config import settings
from app.core.logging import get_logger

logger = get_logger()

THIS_FILE = Path(__file__).resolve()
APP_DIR = THIS_FILE.parent.parent  # Backend/app
BACKEND_DIR = APP_DIR.parent       # Backend
REPO_ROOT = BACKEND_DIR.parent     # repo root
NEWS_SOURCES_YML = REPO_ROOT / "configs" / "news_sources.yml"


class SourceType(str, Enum):
    G1 = "g1"
    SANTA_PORTAL = "santa-portal"
    DIARIO_LITORAL = "diario-litoral"


G1_GOOGLE_NEWS_FALLBACK = (
    "https://news.google.com/rss/search?"
    "q=santos+OR+baixada+santista+site:g1.globo.com&hl=pt-BR&gl=BR&ceid=BR:pt-419"
)

# Ordered alternate feeds per source type, tried after the primary URL fails.
FALLBACK_FEEDS: Dict[SourceType, Tuple[str, ...]] = {
    SourceType.G1: (G1_GOOGLE_NEWS_FALLBACK,),
}


@dataclass(frozen=True)
class NewsSource:
    """Single configured RSS feed."""

    id: str
    name: str
    type: SourceType
    feed_url: str
    fallback_urls: Tuple[str, ...] = field(default=())

    @property
    def has_fallback(self) -> bool:
        return bool(self.fallback_urls)


def make_news_source(
    *,
    id: str,
    name: str,
    type: SourceType,
    feed_url: str,
) -> NewsSource:
    """Build a NewsSource with the fallback chain registered for its type."""
    return NewsSource(
        id=id,
        name=name,
        type=type,
        feed_url=feed_url,
        fallback_urls=FALLBACK_FEEDS.get(type, ()),
    )


DEFAULT_NEWS_SOURCES: Tuple[NewsSource, ...] = (
    make_news_source(
        id="g1",
        name="G1 Santos e Regiao",
        type=SourceType.G1,
        feed_url="https://g1.globo.com/rss/g1/sp/santos-regiao/",
    ),
    make_news_source(
        id="santa-portal",
        name="Santa Portal",
        type=SourceType.SANTA_PORTAL,
        feed_url="https://santaportal.com.br/feed/",
    ),
    make_news_source(
        id="diario-litoral",
        name="Diario do Litoral",
        type=SourceType.DIARIO_LITORAL,
        feed_url="https://www.diariodolitoral.com.br/praia-grande/rss/",
    ),
)


def load_news_sources_config(path: Optional[Path] = None) -> Dict[str, object]:
    """
    Load raw YAML config.

    Returns empty dict if file is missing or invalid so the API keeps serving.
    """
    cfg_path = Path(path) if path else NEWS_SOURCES_YML
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("news_sources_config_not_found", path=str(cfg_path))
        return {}
    except OSError as exc:
        logger.error("news_sources_config_read_error", path=str(cfg_path), error=str(exc))
        return {}

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("news_sources_config_parse_error", path=str(cfg_path), error=str(exc))
        return {}

    if not isinstance(data, dict):
        logger.error(
            "news_sources_config_invalid_root",
            path=str(cfg_path),
            root_type=type(data).__name__,
        )
        return {}

    return data


def _validate_source(raw: Dict[str, object]) -> Optional[NewsSource]:
    """Validate raw dict and convert to NewsSource, logging issues."""
    required_keys = ("id", "name", "type", "feed_url")
    missing = [k for k in required_keys if not raw.get(k)]
    if missing:
        logger.warning("news_source_invalid_missing_fields", missing=missing, raw=raw)
        return None

    try:
        source_type = SourceType(str(raw.get("type")).strip().lower())
    except ValueError:
        logger.warning(
            "news_source_invalid_type",
            type=raw.get("type"),
            allowed=[t.value for t in SourceType],
        )
        return None

    feed_url = raw.get("feed_url")
    if not isinstance(feed_url, str) or not feed_url.startswith(("http://", "https://")):
        logger.warning("news_source_invalid_url", url=feed_url, raw=raw)
        return None

    source_id = str(raw.get("id")).strip()
    name = str(raw.get("name")).strip()
    if not source_id or not name:
        logger.warning("news_source_invalid_empty_field", id=source_id, name=name)
        return None

    fallback_urls = FALLBACK_FEEDS.get(source_type, ())
    raw_fallbacks = raw.get("fallback_urls")
    if isinstance(raw_fallbacks, list):
        fallback_urls = tuple(
            str(u).strip()
            for u in raw_fallbacks
            if isinstance(u, str) and u.strip().startswith(("http://", "https://"))
        )

    return NewsSource(
        id=source_id,
        name=name,
        type=source_type,
        feed_url=feed_url.strip(),
        fallback_urls=fallback_urls,
    )


@lru_cache(maxsize=8)
def _load_sources_from_path(path_str: str) -> Tuple[NewsSource, ...]:
    cfg_path = Path(path_str)
    cfg = load_news_sources_config(cfg_path)
    raw_sources = cfg.get("sources", [])

    if not isinstance(raw_sources, list):
        logger.error(
            "news_sources_invalid_sources_type",
            actual_type=type(raw_sources).__name__,
            path=str(cfg_path),
        )
        raw_sources = []

    result: List[NewsSource] = []
    seen: Set[str] = set()
    for idx, raw in enumerate(raw_sources):
        if not isinstance(raw, dict):
            logger.warning(
                "news_source_invalid_entry_type",
                index=idx,
                value_type=type(raw).__name__,
            )
            continue
        parsed = _validate_source(raw)
        if parsed is None:
            continue
        if parsed.id in seen:
            logger.warning("news_source_duplicate_id", id=parsed.id)
            continue
        seen.add(parsed.id)
        result.append(parsed)

    if not result:
        logger.warning("news_sources_using_defaults", path=str(cfg_path))
        return DEFAULT_NEWS_SOURCES

    logger.info("news_sources_loaded", path=str(cfg_path), total=len(result))
    return tuple(result)


def get_all_news_sources(path: Optional[Path] = None) -> List[NewsSource]:
    """
    Public accessor for all valid news sources.

    Accepts optional path (useful for tests). Results are cached per-path.
    """
    cfg_path = Path(path) if path else (settings.NEWS_SOURCES_PATH or NEWS_SOURCES_YML)
    return list(_load_sources_from_path(str(Path(cfg_path).resolve())))


def get_news_source(source_id: str, path: Optional[Path] = None) -> Optional[NewsSource]:
    for source in get_all_news_sources(path):
        if source.id == source_id:
            return source
    return None


def clear_news_sources_cache() -> None:
    """Reset LRU cache (useful for tests)."""
    _load_sources_from_path.cache_clear()
