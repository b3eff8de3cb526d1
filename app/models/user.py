"""User model module."""

from __future__ import annotations

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.enums import UserType
from app.models.base import AuditMixin, Base


class User(Base, AuditMixin):
    """Internal staff and system identities that audit rows can be attributed to."""

    __tablename__ = "users"
    __table_args__ = (Index("idx_users_type", "user_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), unique=True, nullable=False)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    user_type: Mapped[str] = mapped_column(String(20), default=UserType.INTERNAL.value, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
