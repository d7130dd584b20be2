from __future__ import annotations

from typing import List, Optional


class SourceFetchFailure(Exception):
    """
    Network, timeout or parse failure for one feed URL of a source.
    Absorbed by the fetcher; callers only ever see an empty item list.
    """

    def __init__(self, source_id: str, url: str, message: str):
        super().__init__(message)
        self.source_id = source_id
        self.url = url


class FallbackExhausted(Exception):
    """Every fetch strategy of a source failed (primary and fallbacks)."""

    def __init__(self, source_id: str, attempts: List[SourceFetchFailure]):
        super().__init__(f"all {len(attempts)} feed url(s) failed for {source_id}")
        self.source_id = source_id
        self.attempts = list(attempts)


class ProxyError(Exception):
    """Base for proxy failures that surface to the HTTP caller."""

    status_code: int = 502
    error: str = "Bad Gateway"

    def __init__(self, message: str, *, url: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.url = url


class MalformedProxyRequest(ProxyError):
    status_code = 400
    error = "Bad Request"


class ProxyDomainRejected(ProxyError):
    status_code = 403
    error = "Domain not allowed"


class ProxyUpstreamFailure(ProxyError):
    status_code = 502
    error = "Bad Gateway"
