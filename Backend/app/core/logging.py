# Backend/app/core/logging.py
from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog

from app.core.config import settings
from app.core.request_id import get_request_id, get_run_id

# Feed, redirect and proxy events carry caller-supplied URLs under these keys.
_URL_KEYS = ("url", "location", "feed_url")

# Proxied URLs may carry credentials in their query string.
_SECRET_KEYS = {
    "authorization", "cookie", "set_cookie", "token", "access_token",
    "api_key", "apikey", "password", "secret",
}


def _add_ts(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict


def _add_level(_: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # structlog passes "exception" for logger.exception
    level = "error" if method_name == "exception" else method_name
    event_dict["level"] = str(level or "info").lower()
    return event_dict


def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner


def _add_correlation_ids(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """request_id inside API requests, run_id inside refresh cycles and worker runs."""
    request_id = get_request_id()
    if request_id:
        event_dict.setdefault("request_id", request_id)
    run_id = get_run_id()
    if run_id:
        event_dict.setdefault("run_id", run_id)
    return event_dict


def _shorten_urls(max_length: int):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        for key in _URL_KEYS:
            value = event_dict.get(key)
            if isinstance(value, str) and len(value) > max_length:
                event_dict[key] = value[:max_length] + "..."
        return event_dict
    return _inner


def _redact_secrets(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for key in list(event_dict.keys()):
        if str(key).lower() in _SECRET_KEYS:
            event_dict[key] = "***redacted***"
    return event_dict


def _resolve_level(level: Optional[int | str]) -> int:
    if isinstance(level, int):
        return level
    name = str(level or settings.LOG_LEVEL).upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


_logger: structlog.BoundLogger | None = None


def configure_logging(service_name: str = "api", *, level: Optional[int | str] = None) -> None:
    """
    One structlog stack for the API and the refresh worker.

    JSON lines on stderr by default; LOG_FORMAT=console switches to the
    structlog dev renderer for local runs.
    """
    global _logger

    numeric_level = _resolve_level(level)
    logging.basicConfig(
        level=numeric_level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    processors: List[Any] = [
        _add_ts,
        _add_level,
        _add_service(service_name),
        _add_correlation_ids,
        _shorten_urls(settings.LOG_MAX_URL_LENGTH),
        _redact_secrets,
    ]
    if settings.LOG_FORMAT.lower() == "console":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [
            structlog.processors.EventRenamer("event"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    _logger = structlog.get_logger()


def get_logger() -> structlog.BoundLogger:
    if _logger is None:
        configure_logging("api")
    return _logger


logger = get_logger()
