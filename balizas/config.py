"""Balizas V16 — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── DGT Feed ──
    feed_source: str = "datex2"  # datex2 | rest
    datex2_url: str = (
        "https://nap.dgt.es/datex2/v3/dgt/SituationPublication/datex2_v36.xml"
    )
    dgt_api_url: Optional[str] = None
    dgt_api_token: Optional[str] = None
    request_timeout: float = 30.0

    # ── Database ──
    database_url: str = ""

    # ── History ──
    distinguish_info_updates: bool = False  # tag non-status edits as info_update

    # ── Cache ──
    cache_ttl_seconds: float = 60.0

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    poll_interval_minutes: int = 5

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/balizas.db"
        return "sqlite:///./balizas.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
