# Backend/app/core/request_id.py
from __future__ import annotations

import contextvars
import re
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

# Inbound X-Request-Id values end up in every log line of the request.
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex[:8]


def request_id_from_header(value: Optional[str]) -> str:
    """Reuse the caller's X-Request-Id when it is a plain token, else mint one."""
    if value and _VALID_REQUEST_ID.match(value.strip()):
        return value.strip()
    return new_request_id()


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def clear_request_id() -> None:
    _request_id_ctx.set(None)


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """Scope a run id around one refresh cycle or worker run, restoring the outer one after."""
    token = _run_id_ctx.set(run_id or new_run_id())
    try:
        yield _run_id_ctx.get()
    finally:
        _run_id_ctx.reset(token)
