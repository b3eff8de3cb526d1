"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from app.core.config import get_config
from app.core.enums import UserType
from app.core.logging_config import configure_logging
from app.database.db import get_active_database_url, get_db_session, verify_database_connection
from app.models import User

logger = logging.getLogger(__name__)


def system_user_exists() -> bool:
    """Whether the internal user that captures account-triggered benchmarks exists."""
    config = get_config()
    try:
        with get_db_session() as session:
            user = (
                session.query(User)
                .filter(
                    func.lower(User.email) == config.SYSTEM_USER_EMAIL.lower(),
                    User.user_type == UserType.INTERNAL.value,
                )
                .first()
            )
            return user is not None
    except SQLAlchemyError:
        return False


def validate_startup_config() -> None:
    """Fail-fast config and connectivity checks."""
    config = get_config()
    database_ok = verify_database_connection()
    active_database_url = get_active_database_url()
    if not database_ok and config.DB_CONNECTIVITY_REQUIRED:
        raise RuntimeError("Database connectivity check failed.")
    if not database_ok:
        logger.warning(
            "startup.database.connectivity_optional_failed",
            extra={"event": "startup.database.connectivity_optional_failed"},
        )
    elif not system_user_exists():
        logger.warning(
            "startup.system_user.missing",
            extra={"event": "startup.system_user.missing"},
        )

    if config.is_production and active_database_url.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )
    if config.PRICING_BACKEND == "http" and not config.PRICING_SERVICE_URL:
        logger.warning(
            "startup.pricing.http_without_url",
            extra={"event": "startup.pricing.http_without_url"},
        )

    logger.info(
        "startup.config.validated",
        extra={"event": "startup.config.validated", "env": config.ENV},
    )


def bootstrap() -> None:
    """Initialize logging and validate runtime configuration."""
    configure_logging()
    validate_startup_config()
