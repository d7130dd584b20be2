# Backend/app/core/config.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Backend/app/core/config.py -> parents[2] = Backend
ENV_FILE = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_FILE, override=False)  # pre-load in process environment

DEFAULT_RSS_PROXY_ALLOWED_HOSTS: List[str] = [
    "g1.globo.com",
    "santaportal.com.br",
    "diariodolitoral.com.br",
    "news.google.com",
]

DEFAULT_IMAGE_PROXY_ALLOWED_HOSTS: List[str] = [
    "g1.globo.com",
    "globo.com",
    "glbimg.com",
    "santaportal.com.br",
    "diariodolitoral.com.br",
    "news.google.com",
    "googleusercontent.com",
    "ggpht.com",
    "placehold.co",
]


class Settings(BaseSettings):
    # ---- App ----
    APP_VERSION: str = "0.1.0"
    CORS_ALLOW_ORIGINS: List[str] = Field(default_factory=lambda: ["*"])

    # ---- Logging ----
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "json"  # "json" | "console"
    LOG_MAX_URL_LENGTH: int = 256

    # ---- News ----
    # None -> configs/news_sources.yml at the repo root
    NEWS_SOURCES_PATH: Optional[Path] = None
    NEWS_REFRESH_INTERVAL_S: int = 60 * 60
    NEWS_FETCH_TIMEOUT_S: float = 15.0
    NEWS_MAX_ITEMS_PER_SOURCE: int = 15
    NEWS_TIMEZONE: str = "America/Sao_Paulo"
    NEWS_REFRESH_ON_STARTUP: bool = True

    # ---- Proxies ----
    # Prefix used to rewrite thumbnails in /news; empty string disables the rewrite.
    IMAGE_PROXY_PREFIX: str = "/image-proxy"
    PROXY_TIMEOUT_S: float = 15.0
    PROXY_MAX_REDIRECTS: int = 5
    RSS_PROXY_ALLOWED_HOSTS: List[str] = Field(
        default_factory=lambda: list(DEFAULT_RSS_PROXY_ALLOWED_HOSTS)
    )
    IMAGE_PROXY_ALLOWED_HOSTS: List[str] = Field(
        default_factory=lambda: list(DEFAULT_IMAGE_PROXY_ALLOWED_HOSTS)
    )

    # Pydantic v2 settings
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()
