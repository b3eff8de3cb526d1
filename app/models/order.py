"""Order and status history model module."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.core.enums import OrderState, OrderStatus
from app.models.base import AuditMixin, Base


class Order(Base, AuditMixin):
    __tablename__ = "orders"
    __table_args__ = (
        Index("idx_orders_account_status", "account_id", "status"),
        Index("idx_orders_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    account_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(32), default=OrderStatus.DRAFT.value, nullable=False)
    state: Mapped[str] = mapped_column(String(32), default=OrderState.DRAFT.value, nullable=False)
    internal_notes: Mapped[str | None] = mapped_column(Text)
    resubmission_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    subtotal_retail: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_retail: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_wholesale: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    profit_margin: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    estimated_price_per_link: Mapped[int | None] = mapped_column(Integer)
    estimated_links_count: Mapped[int | None] = mapped_column(Integer)

    preferences_dr_min: Mapped[int | None] = mapped_column(Integer)
    preferences_dr_max: Mapped[int | None] = mapped_column(Integer)
    preferences_traffic_min: Mapped[int | None] = mapped_column(Integer)
    estimated_budget_min: Mapped[int | None] = mapped_column(Integer)
    estimated_budget_max: Mapped[int | None] = mapped_column(Integer)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    confirmed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_resubmitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    line_items = relationship(
        "OrderLineItem",
        back_populates="order",
        order_by="OrderLineItem.display_order",
    )
    groups = relationship("OrderGroup", back_populates="order", order_by="OrderGroup.id")
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
    )


class OrderStatusHistory(Base, AuditMixin):
    __tablename__ = "order_status_history"
    __table_args__ = (Index("idx_order_status_history_order", "order_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    old_status: Mapped[str | None] = mapped_column(String(32))
    new_status: Mapped[str] = mapped_column(String(32), nullable=False)
    changed_by: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    order = relationship("Order", back_populates="status_history")
