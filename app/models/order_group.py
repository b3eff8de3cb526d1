"""Legacy order group and site submission model module."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enums import InclusionStatus, SubmissionStatus
from app.models.base import AuditMixin, Base


class OrderGroup(Base, AuditMixin):
    """Per-client grouping of an order, now a container for negotiation metadata."""

    __tablename__ = "order_groups"
    __table_args__ = (UniqueConstraint("order_id", "client_id", name="uq_order_groups_order_client"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False)
    link_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    target_pages: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)
    requirement_overrides: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    suggestion_round: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    order = relationship("Order", back_populates="groups")
    submissions = relationship("OrderSiteSubmission", back_populates="group", order_by="OrderSiteSubmission.id")


class OrderSiteSubmission(Base, AuditMixin):
    __tablename__ = "order_site_submissions"
    __table_args__ = (
        Index("idx_submissions_group_status", "order_group_id", "submission_status"),
        Index("idx_submissions_assigned_line_item", "assigned_to_line_item_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_group_id: Mapped[int] = mapped_column(ForeignKey("order_groups.id", ondelete="CASCADE"), nullable=False)
    domain_id: Mapped[int] = mapped_column(ForeignKey("bulk_analysis_domains.id"), nullable=False)
    submission_status: Mapped[str] = mapped_column(String(32), default=SubmissionStatus.PENDING.value, nullable=False)
    inclusion_status: Mapped[str] = mapped_column(String(32), default=InclusionStatus.INCLUDED.value, nullable=False)
    exclusion_reason: Mapped[str | None] = mapped_column(Text)
    client_review_notes: Mapped[str | None] = mapped_column(Text)
    client_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    wholesale_price_snapshot: Mapped[int | None] = mapped_column(Integer)
    retail_price_snapshot: Mapped[int | None] = mapped_column(Integer)
    assigned_to_line_item_id: Mapped[int | None] = mapped_column(ForeignKey("order_line_items.id"))
    submission_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)

    group = relationship("OrderGroup", back_populates="submissions")
