"""Benchmark snapshot and comparison model module."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import AuditMixin, Base


class OrderBenchmark(Base, AuditMixin):
    __tablename__ = "order_benchmarks"
    __table_args__ = (
        UniqueConstraint("order_id", "version", name="uq_order_benchmarks_order_version"),
        Index("idx_order_benchmarks_key", "order_id", "captured_by", "benchmark_type"),
        Index("idx_order_benchmarks_latest", "order_id", "is_latest"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    captured_by: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    benchmark_type: Mapped[str] = mapped_column(String(32), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    is_latest: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    benchmark_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    captured_by_user = relationship("User")


class BenchmarkComparison(Base, AuditMixin):
    __tablename__ = "benchmark_comparisons"
    __table_args__ = (Index("idx_benchmark_comparisons_order", "order_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    benchmark_id: Mapped[int] = mapped_column(ForeignKey("order_benchmarks.id", ondelete="CASCADE"), nullable=False)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    compared_by: Mapped[int | None] = mapped_column(Integer)
    comparison_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    benchmark = relationship("OrderBenchmark")
