"""Configuration module for the HomeBoard workflow service."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from app.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    JWT_SECRET: str
    JWT_ACCESS_TTL_MINUTES: int
    JWT_REFRESH_TTL_DAYS: int
    JWT_PERMISSIONS_VERSION: int
    API_HOST: str
    API_PORT: int
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str
    BOARD_POLL_INTERVAL_SECONDS: float
    OVERDUE_THRESHOLD_HOURS: int
    ORDER_SOURCE_URL: str | None
    ORDER_SOURCE_API_KEY: str | None
    ORDER_SOURCE_TIMEOUT_SECONDS: int

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def order_source_enabled(self) -> bool:
        return bool(self.ORDER_SOURCE_URL)


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))

    config = Config(
        APP_NAME="HomeBoard",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./homeboard.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        JWT_SECRET=os.getenv("JWT_SECRET", "change_me_jwt_secret"),
        JWT_ACCESS_TTL_MINUTES=int(os.getenv("JWT_ACCESS_TTL_MINUTES", "15")),
        JWT_REFRESH_TTL_DAYS=int(os.getenv("JWT_REFRESH_TTL_DAYS", "14")),
        JWT_PERMISSIONS_VERSION=int(os.getenv("JWT_PERMISSIONS_VERSION", "1")),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=int(os.getenv("API_PORT", "8000")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
        BOARD_POLL_INTERVAL_SECONDS=float(os.getenv("BOARD_POLL_INTERVAL_SECONDS", "120")),
        OVERDUE_THRESHOLD_HOURS=int(os.getenv("OVERDUE_THRESHOLD_HOURS", "24")),
        ORDER_SOURCE_URL=os.getenv("ORDER_SOURCE_URL") or None,
        ORDER_SOURCE_API_KEY=os.getenv("ORDER_SOURCE_API_KEY") or None,
        ORDER_SOURCE_TIMEOUT_SECONDS=int(os.getenv("ORDER_SOURCE_TIMEOUT_SECONDS", "10")),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.JWT_ACCESS_TTL_MINUTES < 1:
        raise ConfigurationError("JWT_ACCESS_TTL_MINUTES must be >= 1.")
    if config.JWT_REFRESH_TTL_DAYS < 1:
        raise ConfigurationError("JWT_REFRESH_TTL_DAYS must be >= 1.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.BOARD_POLL_INTERVAL_SECONDS <= 0:
        raise ConfigurationError("BOARD_POLL_INTERVAL_SECONDS must be > 0.")
    if config.OVERDUE_THRESHOLD_HOURS < 1:
        raise ConfigurationError("OVERDUE_THRESHOLD_HOURS must be >= 1.")
    if config.ORDER_SOURCE_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("ORDER_SOURCE_TIMEOUT_SECONDS must be >= 1.")
    if config.ORDER_SOURCE_URL and urlparse(config.ORDER_SOURCE_URL).scheme not in {"http", "https"}:
        raise ConfigurationError("ORDER_SOURCE_URL must be an http(s) URL.")
    if config.is_production and "change_me" in config.JWT_SECRET:
        raise ConfigurationError("Production JWT_SECRET uses the placeholder value.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
