# Backend/app/main.py
from __future__ import annotations

# --- ensure Backend/ is on sys.path so `api.*`, `app.*` and `services.*` are importable ---
import sys
from pathlib import Path
THIS_FILE = Path(__file__).resolve()
BACKEND_ROOT = THIS_FILE.parents[1]  # .../Backend
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))
# -------------------------------------------------------------------------

from typing import Dict, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response as StarletteResponse

from app.core.config import settings
from app.core.logging import configure_logging, logger
from app.core.request_id import clear_request_id, request_id_from_header, set_request_id
from app.models.news_sources import get_all_news_sources
from services.message_store import MessageStore
from services.news_cache_service import NewsCache, NewsRefreshScheduler
from services.news_fetch_service import NewsFeedFetcher
from services.proxy_service import ProxyGateway

from api.routers.messages import router as messages_router
from api.routers.news import router as news_router
from api.routers.proxy import router as proxy_router

configure_logging(service_name="api")

app = FastAPI(
    title="Baixada News - Backend",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _init_state(target: FastAPI) -> None:
    """One service object per concern, shared by all requests through app.state."""
    sources = get_all_news_sources()
    fetcher = NewsFeedFetcher()
    cache = NewsCache(sources, fetcher.fetch_source)
    target.state.news_fetcher = fetcher
    target.state.news_cache = cache
    target.state.news_scheduler = NewsRefreshScheduler(cache)
    target.state.proxy_gateway = ProxyGateway()
    target.state.message_store = MessageStore()


_init_state(app)


def _cors_headers(origin: Optional[str]) -> Dict[str, str]:
    allowed = settings.CORS_ALLOW_ORIGINS
    if "*" in allowed:
        return {"Access-Control-Allow-Origin": "*"}
    if origin and origin in allowed:
        return {
            "Access-Control-Allow-Origin": origin,
            "Vary": "Origin",
        }
    return {}

@app.on_event("startup")
async def _startup_news_refresh() -> None:
    if settings.NEWS_REFRESH_ON_STARTUP:
        app.state.news_scheduler.start()

@app.on_event("shutdown")
async def _shutdown_cleanup() -> None:
    await app.state.news_scheduler.stop()
    await app.state.news_fetcher.aclose()
    await app.state.proxy_gateway.aclose()

class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        req_id = request_id_from_header(request.headers.get("x-request-id"))
        set_request_id(req_id)

        logger.info("request_started", method=request.method, path=str(request.url.path))
        try:
            response: StarletteResponse = await call_next(request)
        except Exception as exc:
            logger.error("request_exception", error=str(exc.__class__.__name__))
            clear_request_id()
            raise
        logger.info("request_ended", status_code=response.status_code)
        response.headers["X-Request-Id"] = req_id
        clear_request_id()
        return response

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_credentials="*" not in settings.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Accept", "X-Request-Id"],
    expose_headers=["X-Request-Id"],
)

app.add_middleware(RequestIdMiddleware)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    origin = request.headers.get("origin") or request.headers.get("Origin")
    headers = dict(exc.headers or {})
    headers.update(_cors_headers(origin))
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=headers)


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    origin = request.headers.get("origin") or request.headers.get("Origin")
    headers = _cors_headers(origin)
    logger.exception("unhandled_exception", path=str(request.url.path), exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal Server Error"}, headers=headers)

# --- Health ---
@app.get("/health")
async def health():
    return {"status": "ok"}

app.include_router(news_router)
app.include_router(proxy_router)
app.include_router(messages_router)

logger.info("routers_registered", routers=["news", "proxy", "messages"])
