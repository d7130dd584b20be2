from __future__ import annotations

from fastapi import Request

from services.message_store import MessageStore
from services.news_cache_service import NewsCache
from services.proxy_service import ProxyGateway


def get_news_cache(request: Request) -> NewsCache:
    return request.app.state.news_cache


def get_proxy_gateway(request: Request) -> ProxyGateway:
    return request.app.state.proxy_gateway


def get_message_store(request: Request) -> MessageStore:
    return request.app.state.message_store
