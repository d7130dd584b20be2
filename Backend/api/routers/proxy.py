from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from app.core.logging import get_logger
from app.core.request_id import get_request_id
from app.deps.services import get_proxy_gateway
from services.news_errors import ProxyError
from services.proxy_service import IMAGE_CACHE_CONTROL, ProxyGateway

logger = get_logger().bind(module="proxy_router")

router = APIRouter(tags=["proxy"])


def _to_http_exception(exc: ProxyError, *, path: str) -> HTTPException:
    if exc.status_code >= 500:
        logger.error("proxy_upstream_failed", path=path, url=exc.url, error=exc.message)
    else:
        logger.info("proxy_request_rejected", path=path, url=exc.url, reason=exc.message)
    return HTTPException(
        status_code=exc.status_code,
        detail={"error": exc.error, "message": exc.message, "requestId": get_request_id()},
    )


@router.get("/rss-proxy")
async def rss_proxy(
    url: Optional[str] = Query(default=None, description="Feed or page URL on an allowed host."),
    gateway: ProxyGateway = Depends(get_proxy_gateway),
) -> Response:
    try:
        target = gateway.validate_feed_target(url)
        result = await gateway.fetch_text(target)
    except ProxyError as exc:
        raise _to_http_exception(exc, path="/rss-proxy") from exc

    return Response(content=result.body, status_code=result.status_code, media_type=result.content_type)


@router.get("/image-proxy")
async def image_proxy(
    url: Optional[str] = Query(default=None, description="Image URL on an allowed host."),
    gateway: ProxyGateway = Depends(get_proxy_gateway),
) -> StreamingResponse:
    try:
        target = gateway.validate_image_target(url)
        upstream = await gateway.open_stream(target)
    except ProxyError as exc:
        raise _to_http_exception(exc, path="/image-proxy") from exc

    return StreamingResponse(
        upstream.body,
        status_code=upstream.status_code,
        media_type=upstream.content_type,
        headers={"Cache-Control": IMAGE_CACHE_CONTROL},
        background=BackgroundTask(upstream.aclose),
    )
