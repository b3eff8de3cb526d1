"""Configuration module for the order fulfillment service."""

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
    API_PREFIX: str
    LOG_LEVEL: str
    LOG_FILE: str
    SERVICE_FEE_CENTS: int
    SYSTEM_USER_EMAIL: str
    PRICING_BACKEND: str
    PRICING_SERVICE_URL: str | None
    EXTERNAL_TIMEOUT_SECONDS: int
    NOTIFICATION_WEBHOOK_URL: str | None
    WORKFLOW_SERVICE_URL: str | None
    OUTBOX_MAX_ATTEMPTS: int

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=False)

    config = Config(
        APP_NAME="Order Fulfillment Engine",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./orders.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(
            os.getenv("DB_CONNECTIVITY_REQUIRED"), default=(resolved_env == "production")
        ),
        JWT_SECRET=os.getenv("JWT_SECRET", "change_me_jwt_secret"),
        JWT_ACCESS_TTL_MINUTES=int(os.getenv("JWT_ACCESS_TTL_MINUTES", "60")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
        SERVICE_FEE_CENTS=int(os.getenv("SERVICE_FEE_CENTS", "7900")),
        SYSTEM_USER_EMAIL=os.getenv("SYSTEM_USER_EMAIL", "system@internal.local").strip().lower(),
        PRICING_BACKEND=os.getenv("PRICING_BACKEND", "catalog").strip().lower(),
        PRICING_SERVICE_URL=os.getenv("PRICING_SERVICE_URL"),
        EXTERNAL_TIMEOUT_SECONDS=int(os.getenv("EXTERNAL_TIMEOUT_SECONDS", "5")),
        NOTIFICATION_WEBHOOK_URL=os.getenv("NOTIFICATION_WEBHOOK_URL"),
        WORKFLOW_SERVICE_URL=os.getenv("WORKFLOW_SERVICE_URL"),
        OUTBOX_MAX_ATTEMPTS=int(os.getenv("OUTBOX_MAX_ATTEMPTS", "5")),
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
    if config.SERVICE_FEE_CENTS < 0:
        raise ConfigurationError("SERVICE_FEE_CENTS must be >= 0.")
    if config.EXTERNAL_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("EXTERNAL_TIMEOUT_SECONDS must be >= 1.")
    if config.OUTBOX_MAX_ATTEMPTS < 1:
        raise ConfigurationError("OUTBOX_MAX_ATTEMPTS must be >= 1.")
    if config.PRICING_BACKEND not in {"catalog", "http"}:
        raise ConfigurationError("PRICING_BACKEND must be 'catalog' or 'http'.")
    if config.PRICING_BACKEND == "http" and not config.PRICING_SERVICE_URL:
        raise ConfigurationError("PRICING_SERVICE_URL is required when PRICING_BACKEND=http.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.JWT_SECRET.lower():
        raise ConfigurationError("Production JWT_SECRET uses placeholder value.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
