"""Dependency providers for API handlers."""

from __future__ import annotations

from collections.abc import Generator

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.auth.session import SessionUser, require_internal, require_session
from app.database.db import get_db


def get_db_session() -> Generator[Session, None, None]:
    """Yield SQLAlchemy session for dependency injection."""
    yield from get_db()


def get_current_session(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> SessionUser:
    """Resolve the bearer session or fail with Unauthorized."""
    return require_session(authorization)


def get_internal_session(session: SessionUser = Depends(get_current_session)) -> SessionUser:
    require_internal(session)
    return session
