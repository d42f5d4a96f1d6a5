"""
Tandem — Application Configuration

Loads all configuration from environment variables (and an optional .env file)
using Pydantic Settings.  A cached ``get_settings()`` helper is provided so that
FastAPI dependency-injection (and any other call-site) always receives the same
validated instance without re-parsing the environment on every request.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration for the Tandem service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------ #
    # Database – Cloud SQL via Unix socket or plain DATABASE_URL
    # ------------------------------------------------------------------ #
    DATABASE_URL: str
    DB_USER: str = "tandem_user"
    DB_PASSWORD: str = ""
    DB_NAME: str = "tandem"
    CLOUD_SQL_INSTANCE_CONNECTION: str = ""
    CLOUD_SQL_USE_UNIX_SOCKET: bool = False

    # ------------------------------------------------------------------ #
    # Connection state machine
    # ------------------------------------------------------------------ #
    LOCK_TIMEOUT_MS: int = 5000  # SET LOCAL lock_timeout for pair locks

    # ------------------------------------------------------------------ #
    # Identity (supplied by the upstream auth gateway)
    # ------------------------------------------------------------------ #
    AUTH_USER_HEADER: str = "X-User-Id"

    # ------------------------------------------------------------------ #
    # Runtime environment
    # ------------------------------------------------------------------ #
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"
    REQUEST_TIMEOUT_SECONDS: float = 30.0

    # ------------------------------------------------------------------ #
    # CORS
    # ------------------------------------------------------------------ #
    ALLOWED_ORIGINS: str = "*"

    # ------------------------------------------------------------------ #
    # Derived helpers
    # ------------------------------------------------------------------ #
    @property
    def allowed_origins_list(self) -> list[str]:
        """Return ALLOWED_ORIGINS as a list split on commas."""
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @field_validator("LOCK_TIMEOUT_MS")
    @classmethod
    def _lock_timeout_must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"LOCK_TIMEOUT_MS must be positive, got {v}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def _log_level_must_be_known(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LOG_LEVEL must be a standard level name, got {v!r}")
        return level

    @field_validator("REQUEST_TIMEOUT_SECONDS")
    @classmethod
    def _request_timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"REQUEST_TIMEOUT_SECONDS must be positive, got {v}")
        return v


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached, validated ``Settings`` instance.

    Using ``@lru_cache`` guarantees the .env file is read and validated
    exactly once per process lifetime.  Import this function anywhere you
    need access to configuration::

        from tandem.config import get_settings
        settings = get_settings()
    """
    return Settings()  # type: ignore[call-arg]
