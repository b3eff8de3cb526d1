from __future__ import annotations

from pathlib import Path

from app.models import Base
import app.models  # noqa: F401

MIGRATION = Path(__file__).resolve().parents[3] / "migrations" / "versions" / "20261018_0001_order_fulfillment_schema.py"


def test_model_metadata_contains_target_tables():
    expected = {
        "users",
        "orders",
        "order_status_history",
        "order_groups",
        "order_site_submissions",
        "order_line_items",
        "line_item_changes",
        "order_benchmarks",
        "benchmark_comparisons",
        "outbox_events",
        "bulk_analysis_domains",
        "websites",
        "publisher_offerings",
    }
    assert expected.issubset(set(Base.metadata.tables.keys()))


def test_line_item_metadata_column_keeps_wire_name():
    columns = Base.metadata.tables["order_line_items"].columns
    assert "metadata" in columns
    assert "version" in columns


def test_migration_creates_every_model_table():
    source = MIGRATION.read_text(encoding="utf-8")
    for table in Base.metadata.tables:
        assert f'"{table}"' in source
