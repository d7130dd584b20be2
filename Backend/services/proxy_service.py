"""
Allow-listed passthrough proxies for third-party feeds and images.

Both paths are stateless per request and relay the upstream status as is.
Only timeouts, transport errors and the redirect cap become gateway errors.
Redirects are followed by hand so each hop can be counted, capped and
checked against the same allow-list as the requested URL.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence
from urllib.parse import urljoin, urlsplit

import httpx

from app.core.config import settings
from app.core.logging import get_logger
from services.news_errors import MalformedProxyRequest, ProxyDomainRejected, ProxyUpstreamFailure

logger = get_logger().bind(module="proxy_service")

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)

_BASE_HEADERS = {
    "User-Agent": _USER_AGENT,
    "Accept-Language": "pt-BR,pt;q=0.9,en-US;q=0.8,en;q=0.7",
    "Accept-Encoding": "identity",
    "Cache-Control": "no-cache",
}

FEED_HEADERS = {
    **_BASE_HEADERS,
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}

IMAGE_HEADERS = {
    **_BASE_HEADERS,
    "Accept": "image/*,*/*;q=0.8",
}

RSS_CONTENT_TYPE = "application/rss+xml; charset=utf-8"
HTML_CONTENT_TYPE = "text/html; charset=utf-8"
PLAIN_CONTENT_TYPE = "text/plain; charset=utf-8"
DEFAULT_MEDIA_CONTENT_TYPE = "application/octet-stream"
IMAGE_CACHE_CONTROL = "public, max-age=3600"

_FEED_MARKERS = ("<rss", "<channel", "<feed")


def is_allowed_host(target_url: str, allowed_hosts: Sequence[str]) -> bool:
    """Exact hostname match or a subdomain of an allowed host."""
    try:
        host = urlsplit(str(target_url)).hostname
    except ValueError:
        return False
    if not host:
        return False
    host = host.lower()
    for allowed in allowed_hosts:
        allowed = allowed.strip().lower()
        if allowed and (host == allowed or host.endswith(f".{allowed}")):
            return True
    return False


def validate_target(target_url: Optional[str], allowed_hosts: Sequence[str]) -> str:
    if target_url is None or not target_url.strip():
        raise MalformedProxyRequest("Missing url parameter")
    url = target_url.strip()
    try:
        parts = urlsplit(url)
        _ = parts.port  # raises on a malformed port
    except ValueError as exc:
        raise MalformedProxyRequest("Invalid URL", url=url) from exc
    if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
        raise MalformedProxyRequest("Invalid URL", url=url)
    if not is_allowed_host(url, allowed_hosts):
        raise ProxyDomainRejected("Domain not allowed", url=url)
    return url


def sniff_feed_content_type(body: str) -> str:
    if any(marker in body for marker in _FEED_MARKERS):
        return RSS_CONTENT_TYPE
    return HTML_CONTENT_TYPE


@dataclass(frozen=True)
class UpstreamText:
    status_code: int
    body: str
    content_type: str


@dataclass
class UpstreamStream:
    status_code: int
    content_type: str
    body: AsyncIterator[bytes]
    response: httpx.Response

    async def aclose(self) -> None:
        await self.response.aclose()


class ProxyGateway:
    def __init__(
        self,
        *,
        feed_allowed_hosts: Sequence[str] = tuple(settings.RSS_PROXY_ALLOWED_HOSTS),
        image_allowed_hosts: Sequence[str] = tuple(settings.IMAGE_PROXY_ALLOWED_HOSTS),
        timeout_s: float = settings.PROXY_TIMEOUT_S,
        max_redirects: int = settings.PROXY_MAX_REDIRECTS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.feed_allowed_hosts = tuple(feed_allowed_hosts)
        self.image_allowed_hosts = tuple(image_allowed_hosts)
        self.timeout_s = timeout_s
        self.max_redirects = max(0, max_redirects)
        self._client = httpx.AsyncClient(
            timeout=timeout_s,
            follow_redirects=False,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def validate_feed_target(self, target_url: Optional[str]) -> str:
        return validate_target(target_url, self.feed_allowed_hosts)

    def validate_image_target(self, target_url: Optional[str]) -> str:
        return validate_target(target_url, self.image_allowed_hosts)

    async def _send(self, url: str, headers: dict, allowed_hosts: Sequence[str]) -> httpx.Response:
        """GET ``url`` following at most ``max_redirects`` allow-listed redirects; body left unread."""
        current = url
        for _ in range(self.max_redirects + 1):
            request = self._client.build_request("GET", current, headers=headers)
            try:
                response = await self._client.send(request, stream=True)
            except httpx.TimeoutException as exc:
                raise ProxyUpstreamFailure(f"Timeout after {self.timeout_s:g}s", url=current) from exc
            except httpx.HTTPError as exc:
                raise ProxyUpstreamFailure(str(exc) or exc.__class__.__name__, url=current) from exc

            location = response.headers.get("location")
            if 300 <= response.status_code < 400 and location:
                await response.aclose()
                redirected = urljoin(current, location)
                if not is_allowed_host(redirected, allowed_hosts):
                    logger.warning("proxy_redirect_rejected", url=current, location=redirected)
                    raise ProxyDomainRejected("Domain not allowed", url=redirected)
                logger.debug("proxy_redirect", url=current, location=redirected, status=response.status_code)
                current = redirected
                continue
            return response

        raise ProxyUpstreamFailure(f"Too many redirects (max {self.max_redirects})", url=url)

    async def fetch_text(self, url: str) -> UpstreamText:
        """Buffered fetch for feed/HTML passthrough."""
        logger.info("proxy_feed_fetch", url=url)
        response = await self._send(url, FEED_HEADERS, self.feed_allowed_hosts)
        try:
            await response.aread()
        except httpx.HTTPError as exc:
            raise ProxyUpstreamFailure(str(exc) or exc.__class__.__name__, url=url) from exc
        finally:
            await response.aclose()

        body = response.text
        if response.status_code != 200:
            logger.warning("proxy_upstream_status", url=url, status=response.status_code)
            return UpstreamText(status_code=response.status_code, body=body, content_type=PLAIN_CONTENT_TYPE)
        return UpstreamText(
            status_code=response.status_code,
            body=body,
            content_type=sniff_feed_content_type(body),
        )

    async def open_stream(self, url: str) -> UpstreamStream:
        """
        Open an image response without reading it. The caller forwards
        ``body`` chunk by chunk and must ``aclose()`` the stream afterwards.
        """
        response = await self._send(url, IMAGE_HEADERS, self.image_allowed_hosts)
        if not response.is_success:
            logger.warning("proxy_upstream_status", url=url, status=response.status_code)
        return UpstreamStream(
            status_code=response.status_code,
            content_type=response.headers.get("content-type") or DEFAULT_MEDIA_CONTENT_TYPE,
            body=self._iter_body(response, url),
            response=response,
        )

    async def _iter_body(self, response: httpx.Response, url: str) -> AsyncIterator[bytes]:
        try:
            async for chunk in response.aiter_bytes():
                yield chunk
        except httpx.HTTPError as exc:
            # Headers are already sent; the client sees a truncated body.
            logger.warning("proxy_stream_interrupted", url=url, error=str(exc))
            raise
        finally:
            await response.aclose()
