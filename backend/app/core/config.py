"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from backend.app.core.config import settings
    print(settings.REDIS_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Tourist Safety SOS Relay"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Broadcast channels ──
    BROADCAST_CHANNEL_NAME: str = "tourist-safety-alerts"
    MAILBOX_BACKEND: str = "memory"  # memory | redis
    REDIS_URL: str = "redis://localhost:6379/0"

    # Persisted keys shared with the browser apps
    ALERTS_KEY: str = "sosAlerts"
    ALERT_MAILBOX_KEY: str = "sosAlertBroadcast"
    LOCATION_MAILBOX_KEY: str = "locationUpdateBroadcast"

    # ── Timers ──
    LOCATION_SHARE_INTERVAL_SECONDS: float = 30.0
    MAILBOX_POLL_INTERVAL_SECONDS: float = 2.0

    # ── Relay ──
    RELAY_URL: str = "http://localhost:3000"
    RELAY_TIMEOUT_SECONDS: float = 10.0

    # ── Facilities ──
    FACILITY_CATALOG_PATH: Optional[str] = None  # JSON override of the sample catalog

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
