from __future__ import annotations

import enum
from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Mode(str, enum.Enum):
    DEVELOPMENT = "development"
    PRODUCTION = "production"


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ERROR_BOUNDARY_",
        case_sensitive=False,
    )

    # Unknown deployments disclose nothing.
    environment: Mode = Mode.PRODUCTION
    log_level: str = "INFO"

    # Notification
    notifier: Literal["log", "webhook", "celery", "none"] = "log"
    notify_webhook_url: str | None = None
    notify_timeout_s: float = 5.0

    # Redaction
    redacted_body_fields: list[str] = [
        "password",
        "oldPassword",
        "newPassword",
        "token",
    ]
    redacted_headers: list[str] = ["authorization", "cookie"]

    # Celery
    # Default dev behavior: run tasks inline unless explicitly disabled.
    celery_eager: bool = True
    redis_url: str | None = None

    cors_allow_origin: str = "http://localhost:3000"


@lru_cache
def get_settings() -> Settings:
    return Settings()
