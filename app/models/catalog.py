"""Read-side catalog models owned by the offering/qualification collaborators."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base


class BulkAnalysisDomain(Base, AuditMixin):
    """A candidate domain that went through qualification."""

    __tablename__ = "bulk_analysis_domains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    domain: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    client_id: Mapped[int | None] = mapped_column(Integer)
    qualification_status: Mapped[str | None] = mapped_column(String(40))
    qualification_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)


class Website(Base, AuditMixin):
    __tablename__ = "websites"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    domain_rating: Mapped[int | None] = mapped_column(Integer)
    total_traffic: Mapped[int | None] = mapped_column(Integer)
    guest_post_cost: Mapped[int | None] = mapped_column(Integer)
    pricing_strategy: Mapped[str] = mapped_column(String(20), default="min_price", nullable=False)
    price_override_offering_id: Mapped[int | None] = mapped_column(Integer)
    custom_offering_id: Mapped[int | None] = mapped_column(Integer)

    offerings = relationship("PublisherOffering", back_populates="website")


class PublisherOffering(Base, AuditMixin):
    __tablename__ = "publisher_offerings"
    __table_args__ = (Index("idx_publisher_offerings_website", "website_id", "is_active"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    website_id: Mapped[int] = mapped_column(ForeignKey("websites.id", ondelete="CASCADE"), nullable=False)
    publisher_id: Mapped[int] = mapped_column(Integer, nullable=False)
    offering_type: Mapped[str] = mapped_column(String(40), default="guest_post", nullable=False)
    base_price: Mapped[int | None] = mapped_column(Integer)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    current_availability: Mapped[str] = mapped_column(String(40), default="available", nullable=False)

    website = relationship("Website", back_populates="offerings")
