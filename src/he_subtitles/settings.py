from __future__ import annotations

from functools import lru_cache
from typing import Dict, List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="HE_SUBS_", env_file=".env", env_file_encoding="utf-8", extra="ignore")

    version: str = "1.4.0"
    host: str = "0.0.0.0"
    port: int = 7010
    # Origin used when building proxy URLs handed out to players
    public_url: Optional[str] = None

    source_domain: str = "wizdom.xyz"
    source_base: str = "https://wizdom.xyz"
    search_bases: List[str] = [
        "https://wizdom.xyz",
        "http://wizdom.xyz",
        "https://www.wizdom.xyz",
        "http://www.wizdom.xyz",
    ]
    web_search_url: str = "https://duckduckgo.com/html/"
    cinemeta_bases: List[str] = [
        "https://v3-cinemeta.strem.io",
        "https://cinemeta-live.strem.io",
    ]

    # Hand out source URLs instead of proxy URLs
    direct_mode: bool = False

    request_timeout: float = 15.0
    render_enabled: bool = True
    render_timeout: float = 15.0
    episode_render_timeout: float = 20.0
    render_settle_seconds: float = 1.5
    page_poll_attempts: int = 3
    page_poll_interval: float = 2.0

    cache_ttl: float = 30 * 60
    cache_max_size: int = 200

    # imdb id -> title used for searching
    title_overrides: Dict[str, str] = {}

    log_level: str = "INFO"
    json_logs: bool = False

    @property
    def proxy_origin(self) -> str:
        return (self.public_url or f"http://127.0.0.1:{self.port}").rstrip("/")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
