"""Order line item and change log model module."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enums import LineItemStatus
from app.models.base import AuditMixin, Base


class OrderLineItem(Base, AuditMixin):
    __tablename__ = "order_line_items"
    __table_args__ = (
        Index("idx_line_items_order_status", "order_id", "status"),
        Index("idx_line_items_order_client", "order_id", "client_id"),
        Index("idx_line_items_publisher", "publisher_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="RESTRICT"), nullable=False)
    client_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_page_url: Mapped[str | None] = mapped_column(String(2048))
    anchor_text: Mapped[str | None] = mapped_column(String(500))
    status: Mapped[str] = mapped_column(String(32), default=LineItemStatus.PENDING.value, nullable=False)

    assigned_domain_id: Mapped[int | None] = mapped_column(ForeignKey("bulk_analysis_domains.id"))
    assigned_domain: Mapped[str | None] = mapped_column(String(255))
    assigned_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    assigned_by: Mapped[int | None] = mapped_column(Integer)
    publisher_id: Mapped[int | None] = mapped_column(Integer)

    wholesale_price: Mapped[int | None] = mapped_column(Integer)
    estimated_price: Mapped[int | None] = mapped_column(Integer)
    approved_price: Mapped[int | None] = mapped_column(Integer)
    service_fee: Mapped[int | None] = mapped_column(Integer)

    # "metadata" is reserved on declarative classes.
    item_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSON, default=dict, nullable=False)
    display_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    added_by: Mapped[int | None] = mapped_column(Integer)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    order = relationship("Order", back_populates="line_items")
    changes = relationship("LineItemChange", back_populates="line_item", order_by="LineItemChange.id")

    @property
    def effective_price(self) -> int | None:
        return self.approved_price if self.approved_price is not None else self.estimated_price


class LineItemChange(Base, AuditMixin):
    __tablename__ = "line_item_changes"
    __table_args__ = (
        Index("idx_line_item_changes_item", "line_item_id"),
        Index("idx_line_item_changes_order", "order_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    line_item_id: Mapped[int] = mapped_column(ForeignKey("order_line_items.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    change_type: Mapped[str] = mapped_column(String(40), nullable=False)
    previous_value: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    new_value: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    changed_by: Mapped[int] = mapped_column(Integer, nullable=False)
    change_reason: Mapped[str | None] = mapped_column(Text)
    batch_id: Mapped[str | None] = mapped_column(String(64))

    line_item = relationship("OrderLineItem", back_populates="changes")
