"""order fulfillment schema: orders, line items, negotiation, benchmarks, outbox

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 00:00:01
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _audit_columns() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("user_type", sa.String(length=20), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )

    op.create_table(
        "bulk_analysis_domains",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=True),
        sa.Column("qualification_status", sa.String(length=40), nullable=True),
        sa.Column("qualification_data", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_bulk_analysis_domains_domain", "bulk_analysis_domains", ["domain"])

    op.create_table(
        "websites",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("domain", sa.String(length=255), nullable=False),
        sa.Column("domain_rating", sa.Integer(), nullable=True),
        sa.Column("total_traffic", sa.Integer(), nullable=True),
        sa.Column("guest_post_cost", sa.Integer(), nullable=True),
        sa.Column("pricing_strategy", sa.String(length=20), nullable=False),
        sa.Column("price_override_offering_id", sa.Integer(), nullable=True),
        sa.Column("custom_offering_id", sa.Integer(), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("domain"),
    )

    op.create_table(
        "publisher_offerings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("website_id", sa.Integer(), nullable=False),
        sa.Column("publisher_id", sa.Integer(), nullable=False),
        sa.Column("offering_type", sa.String(length=40), nullable=False),
        sa.Column("base_price", sa.Integer(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("current_availability", sa.String(length=40), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["website_id"], ["websites.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_publisher_offerings_website", "publisher_offerings", ["website_id", "is_active"])

    op.create_table(
        "orders",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False),
        sa.Column("internal_notes", sa.Text(), nullable=True),
        sa.Column("resubmission_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("subtotal_retail", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_retail", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_wholesale", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("profit_margin", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("estimated_price_per_link", sa.Integer(), nullable=True),
        sa.Column("estimated_links_count", sa.Integer(), nullable=True),
        sa.Column("preferences_dr_min", sa.Integer(), nullable=True),
        sa.Column("preferences_dr_max", sa.Integer(), nullable=True),
        sa.Column("preferences_traffic_min", sa.Integer(), nullable=True),
        sa.Column("estimated_budget_min", sa.Integer(), nullable=True),
        sa.Column("estimated_budget_max", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_resubmitted_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_orders_account_status", "orders", ["account_id", "status"])
    op.create_index("idx_orders_status", "orders", ["status"])

    op.create_table(
        "order_status_history",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("old_status", sa.String(length=32), nullable=True),
        sa.Column("new_status", sa.String(length=32), nullable=False),
        sa.Column("changed_by", sa.Integer(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_order_status_history_order", "order_status_history", ["order_id"])

    op.create_table(
        "order_line_items",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("target_page_url", sa.String(length=2048), nullable=True),
        sa.Column("anchor_text", sa.String(length=500), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("assigned_domain_id", sa.Integer(), nullable=True),
        sa.Column("assigned_domain", sa.String(length=255), nullable=True),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("assigned_by", sa.Integer(), nullable=True),
        sa.Column("publisher_id", sa.Integer(), nullable=True),
        sa.Column("wholesale_price", sa.Integer(), nullable=True),
        sa.Column("estimated_price", sa.Integer(), nullable=True),
        sa.Column("approved_price", sa.Integer(), nullable=True),
        sa.Column("service_fee", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("added_by", sa.Integer(), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["assigned_domain_id"], ["bulk_analysis_domains.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_line_items_order_status", "order_line_items", ["order_id", "status"])
    op.create_index("idx_line_items_order_client", "order_line_items", ["order_id", "client_id"])
    op.create_index("idx_line_items_publisher", "order_line_items", ["publisher_id"])

    op.create_table(
        "line_item_changes",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("line_item_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("change_type", sa.String(length=40), nullable=False),
        sa.Column("previous_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changed_by", sa.Integer(), nullable=False),
        sa.Column("change_reason", sa.Text(), nullable=True),
        sa.Column("batch_id", sa.String(length=64), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["line_item_id"], ["order_line_items.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_line_item_changes_item", "line_item_changes", ["line_item_id"])
    op.create_index("idx_line_item_changes_order", "line_item_changes", ["order_id"])

    op.create_table(
        "order_groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), nullable=False),
        sa.Column("link_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("target_pages", sa.JSON(), nullable=False),
        sa.Column("requirement_overrides", sa.JSON(), nullable=False),
        sa.Column("suggestion_round", sa.Integer(), nullable=False, server_default="1"),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "client_id", name="uq_order_groups_order_client"),
    )
    op.create_index("ix_order_groups_order_id", "order_groups", ["order_id"])

    op.create_table(
        "order_site_submissions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_group_id", sa.Integer(), nullable=False),
        sa.Column("domain_id", sa.Integer(), nullable=False),
        sa.Column("submission_status", sa.String(length=32), nullable=False),
        sa.Column("inclusion_status", sa.String(length=32), nullable=False),
        sa.Column("exclusion_reason", sa.Text(), nullable=True),
        sa.Column("client_review_notes", sa.Text(), nullable=True),
        sa.Column("client_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("wholesale_price_snapshot", sa.Integer(), nullable=True),
        sa.Column("retail_price_snapshot", sa.Integer(), nullable=True),
        sa.Column("assigned_to_line_item_id", sa.Integer(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_group_id"], ["order_groups.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["domain_id"], ["bulk_analysis_domains.id"]),
        sa.ForeignKeyConstraint(["assigned_to_line_item_id"], ["order_line_items.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "idx_submissions_group_status",
        "order_site_submissions",
        ["order_group_id", "submission_status"],
    )
    op.create_index(
        "idx_submissions_assigned_line_item",
        "order_site_submissions",
        ["assigned_to_line_item_id"],
    )

    op.create_table(
        "order_benchmarks",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("captured_by", sa.Integer(), nullable=False),
        sa.Column("benchmark_type", sa.String(length=32), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_latest", sa.Boolean(), nullable=False),
        sa.Column("benchmark_data", sa.JSON(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["captured_by"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_id", "version", name="uq_order_benchmarks_order_version"),
    )
    op.create_index(
        "idx_order_benchmarks_key",
        "order_benchmarks",
        ["order_id", "captured_by", "benchmark_type"],
    )
    op.create_index("idx_order_benchmarks_latest", "order_benchmarks", ["order_id", "is_latest"])

    op.create_table(
        "benchmark_comparisons",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("benchmark_id", sa.Integer(), nullable=False),
        sa.Column("order_id", sa.Integer(), nullable=False),
        sa.Column("compared_by", sa.Integer(), nullable=True),
        sa.Column("comparison_data", sa.JSON(), nullable=False),
        *_audit_columns(),
        sa.ForeignKeyConstraint(["benchmark_id"], ["order_benchmarks.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_benchmark_comparisons_order", "benchmark_comparisons", ["order_id"])

    op.create_table(
        "outbox_events",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("event_type", sa.String(length=64), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        *_audit_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_outbox_events_status", "outbox_events", ["status", "id"])


def downgrade() -> None:
    op.drop_index("idx_outbox_events_status", table_name="outbox_events")
    op.drop_table("outbox_events")
    op.drop_index("idx_benchmark_comparisons_order", table_name="benchmark_comparisons")
    op.drop_table("benchmark_comparisons")
    op.drop_index("idx_order_benchmarks_latest", table_name="order_benchmarks")
    op.drop_index("idx_order_benchmarks_key", table_name="order_benchmarks")
    op.drop_table("order_benchmarks")
    op.drop_index("idx_submissions_assigned_line_item", table_name="order_site_submissions")
    op.drop_index("idx_submissions_group_status", table_name="order_site_submissions")
    op.drop_table("order_site_submissions")
    op.drop_index("ix_order_groups_order_id", table_name="order_groups")
    op.drop_table("order_groups")
    op.drop_index("idx_line_item_changes_order", table_name="line_item_changes")
    op.drop_index("idx_line_item_changes_item", table_name="line_item_changes")
    op.drop_table("line_item_changes")
    op.drop_index("idx_line_items_publisher", table_name="order_line_items")
    op.drop_index("idx_line_items_order_client", table_name="order_line_items")
    op.drop_index("idx_line_items_order_status", table_name="order_line_items")
    op.drop_table("order_line_items")
    op.drop_index("idx_order_status_history_order", table_name="order_status_history")
    op.drop_table("order_status_history")
    op.drop_index("idx_orders_status", table_name="orders")
    op.drop_index("idx_orders_account_status", table_name="orders")
    op.drop_table("orders")
    op.drop_index("idx_publisher_offerings_website", table_name="publisher_offerings")
    op.drop_table("publisher_offerings")
    op.drop_table("websites")
    op.drop_index("ix_bulk_analysis_domains_domain", table_name="bulk_analysis_domains")
    op.drop_table("bulk_analysis_domains")
    op.drop_table("users")
