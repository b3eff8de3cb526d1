"""Versioned, immutable order benchmarks with comparison and restore."""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Any

from sqlalchemy import func

from app.core.enums import BenchmarkType, LineItemStatus, UserType
from app.core.exceptions import NotFound, ValidationError
from app.models import (
    BenchmarkComparison,
    LineItemChange,
    Order,
    OrderBenchmark,
    OrderGroup,
    OrderLineItem,
    OrderSiteSubmission,
    User,
)
from app.services.aggregation_service import AggregationService
from app.services.base_service import BaseService, utcnow
from app.services.group_sync_service import GroupSyncService

logger = logging.getLogger(__name__)

DELIVERED_STATUSES = frozenset({LineItemStatus.DELIVERED.value, LineItemStatus.COMPLETED.value})

# Line-item fields captured in a snapshot and written back on restore.
RESTORABLE_FIELDS = {
    "targetPageUrl": "target_page_url",
    "anchorText": "anchor_text",
    "status": "status",
    "assignedDomainId": "assigned_domain_id",
    "assignedDomain": "assigned_domain",
    "publisherId": "publisher_id",
    "wholesalePrice": "wholesale_price",
    "estimatedPrice": "estimated_price",
    "approvedPrice": "approved_price",
    "serviceFee": "service_fee",
}


def _snapshot_line_item(item: OrderLineItem) -> dict[str, Any]:
    data = {key: getattr(item, attr) for key, attr in RESTORABLE_FIELDS.items()}
    data.update(
        {
            "id": item.id,
            "clientId": item.client_id,
            "displayOrder": item.display_order,
            "effectivePrice": item.effective_price,
            "metadata": copy.deepcopy(item.item_metadata or {}),
        }
    )
    return data


def _snapshot_group(group: OrderGroup) -> dict[str, Any]:
    return {
        "id": group.id,
        "clientId": group.client_id,
        "linkCount": group.link_count,
        "targetPages": copy.deepcopy(group.target_pages or []),
        "requirementOverrides": copy.deepcopy(group.requirement_overrides or {}),
        "suggestionRound": group.suggestion_round,
    }


def _snapshot_order(order: Order) -> dict[str, Any]:
    return {
        "id": order.id,
        "accountId": order.account_id,
        "status": order.status,
        "state": order.state,
        "resubmissionCount": order.resubmission_count,
        "subtotalRetail": order.subtotal_retail,
        "totalRetail": order.total_retail,
        "totalWholesale": order.total_wholesale,
        "profitMargin": order.profit_margin,
        "estimatedPricePerLink": order.estimated_price_per_link,
        "estimatedLinksCount": order.estimated_links_count,
        "originalConstraints": {
            "budgetRange": [v for v in (order.estimated_budget_min, order.estimated_budget_max) if v is not None],
            "drRange": [v for v in (order.preferences_dr_min, order.preferences_dr_max) if v is not None],
            "minTraffic": order.preferences_traffic_min,
        },
    }


class BenchmarkService(BaseService):
    """Captures point-in-time snapshots of an order for disputes and rollback."""

    def _resolve_capturer(self, user_id: int, actor_type: str) -> int | None:
        if actor_type != UserType.ACCOUNT.value:
            return user_id
        system_user = (
            self.db.query(User)
            .filter(
                func.lower(User.email) == self.config.SYSTEM_USER_EMAIL.lower(),
                User.user_type == UserType.INTERNAL.value,
            )
            .first()
        )
        return system_user.id if system_user else None

    def build_snapshot(self, order: Order) -> dict[str, Any]:
        groups = self.db.query(OrderGroup).filter(OrderGroup.order_id == order.id).order_by(OrderGroup.id).all()
        items = (
            self.db.query(OrderLineItem)
            .filter(OrderLineItem.order_id == order.id)
            .order_by(OrderLineItem.display_order, OrderLineItem.id)
            .all()
        )
        active = [item for item in items if item.status != LineItemStatus.CANCELLED.value]
        return {
            "capturedAt": utcnow().isoformat(),
            "order": _snapshot_order(order),
            "groups": [_snapshot_group(group) for group in groups],
            "lineItems": [_snapshot_line_item(item) for item in items],
            "summary": {
                "totalLinks": len(active),
                "totalClients": len({item.client_id for item in active}),
                "totalUniqueDomains": len({item.assigned_domain for item in active if item.assigned_domain}),
                "orderTotal": order.total_retail,
            },
        }

    def create_benchmark(
        self,
        order_id: int,
        captured_by_user_id: int,
        benchmark_type: str = BenchmarkType.MANUAL.value,
        actor_type: str = UserType.INTERNAL.value,
        notes: str | None = None,
    ) -> OrderBenchmark | None:
        """Persist a new latest snapshot; returns None when no capturer is available."""
        if benchmark_type not in {member.value for member in BenchmarkType}:
            raise ValidationError(f"Unknown benchmark type: {benchmark_type}")

        with self.transaction():
            order = self.get_order(order_id)
            captured_by = self._resolve_capturer(captured_by_user_id, actor_type)
            if captured_by is None:
                logger.warning(
                    "benchmark.skipped.no_system_user",
                    extra={"event": "benchmark.skipped.no_system_user", "order_id": order_id},
                )
                return None

            previous_version = (
                self.db.query(func.max(OrderBenchmark.version)).filter(OrderBenchmark.order_id == order_id).scalar()
            )
            self.db.query(OrderBenchmark).filter(
                OrderBenchmark.order_id == order_id,
                OrderBenchmark.is_latest.is_(True),
            ).update({OrderBenchmark.is_latest: False}, synchronize_session="fetch")

            benchmark = OrderBenchmark(
                order_id=order_id,
                captured_by=captured_by,
                benchmark_type=benchmark_type,
                version=(previous_version or 0) + 1,
                is_latest=True,
                benchmark_data=self.build_snapshot(order),
                notes=notes,
            )
            self.db.add(benchmark)
            self.db.flush()

        logger.info(
            "benchmark.created",
            extra={"event": "benchmark.created", "order_id": order_id, "benchmark_id": benchmark.id},
        )
        return benchmark

    def get_latest(self, order_id: int) -> OrderBenchmark | None:
        return (
            self.db.query(OrderBenchmark)
            .filter(OrderBenchmark.order_id == order_id, OrderBenchmark.is_latest.is_(True))
            .order_by(OrderBenchmark.version.desc())
            .first()
        )

    def get_history(self, order_id: int) -> list[OrderBenchmark]:
        return (
            self.db.query(OrderBenchmark)
            .filter(OrderBenchmark.order_id == order_id)
            .order_by(OrderBenchmark.version.desc())
            .all()
        )

    def get_benchmark(self, order_id: int, benchmark_id: int) -> OrderBenchmark:
        benchmark = (
            self.db.query(OrderBenchmark)
            .filter(OrderBenchmark.id == benchmark_id, OrderBenchmark.order_id == order_id)
            .first()
        )
        if benchmark is None:
            raise NotFound(f"Benchmark not found: {benchmark_id}")
        return benchmark

    def compare_to_benchmark(self, order_id: int, compared_by: int | None = None) -> dict[str, Any] | None:
        """Diff the current line items against the latest benchmark and persist the result."""
        benchmark = self.get_latest(order_id)
        if benchmark is None:
            return None

        with self.transaction():
            order = self.get_order(order_id)
            snapshot_items = {
                item["id"]: item
                for item in benchmark.benchmark_data.get("lineItems", [])
                if item.get("status") != LineItemStatus.CANCELLED.value
            }
            current_items = {
                item.id: item
                for item in self.db.query(OrderLineItem).filter(OrderLineItem.order_id == order_id).all()
                if item.status != LineItemStatus.CANCELLED.value
            }

            added = [
                {"lineItemId": item_id, "domain": item.assigned_domain, "price": item.effective_price}
                for item_id, item in current_items.items()
                if item_id not in snapshot_items
            ]
            removed = [
                {"lineItemId": item_id, "domain": item.get("assignedDomain"), "price": item.get("effectivePrice")}
                for item_id, item in snapshot_items.items()
                if item_id not in current_items
            ]
            domain_swaps = []
            price_changes = []
            for item_id, snap in snapshot_items.items():
                item = current_items.get(item_id)
                if item is None:
                    continue
                if snap.get("assignedDomain") != item.assigned_domain:
                    domain_swaps.append(
                        {"lineItemId": item_id, "from": snap.get("assignedDomain"), "to": item.assigned_domain}
                    )
                before = snap.get("effectivePrice") or 0
                after = item.effective_price or 0
                if before != after:
                    price_changes.append(
                        {"lineItemId": item_id, "from": before, "to": after, "delta": after - before}
                    )

            expected_revenue = benchmark.benchmark_data.get("order", {}).get("totalRetail") or 0
            requested = len(snapshot_items)
            delivered = sum(1 for item in current_items.values() if item.status in DELIVERED_STATUSES)
            issues = []
            if removed:
                issues.append({"type": "missing", "description": f"{len(removed)} line items removed since benchmark"})
            if domain_swaps:
                issues.append({"type": "substitution", "description": f"{len(domain_swaps)} domain substitutions"})

            comparison_data = {
                "benchmarkVersion": benchmark.version,
                "requestedLinks": requested,
                "deliveredLinks": delivered,
                "completionPercentage": (200 * delivered + requested) // (2 * requested) if requested else 0,
                "added": added,
                "removed": removed,
                "domainSwaps": domain_swaps,
                "priceChanges": price_changes,
                "expectedRevenue": expected_revenue,
                "actualRevenue": order.total_retail,
                "revenueDifference": order.total_retail - expected_revenue,
                "issues": issues,
            }
            comparison = BenchmarkComparison(
                benchmark_id=benchmark.id,
                order_id=order_id,
                compared_by=compared_by,
                comparison_data=comparison_data,
            )
            self.db.add(comparison)
            self.db.flush()

        return {"id": comparison.id, "benchmarkId": benchmark.id, **comparison_data}

    def _restore_submission_markers(self, order_id: int, items: list[OrderLineItem]) -> None:
        """Point each submission at the restored item that consumed it, and clear the rest."""
        owners = {}
        for item in items:
            submission_id = (item.item_metadata or {}).get("submissionId")
            if (
                submission_id is not None
                and item.assigned_domain_id is not None
                and item.status != LineItemStatus.CANCELLED.value
            ):
                owners[submission_id] = item.id
        submissions = (
            self.db.query(OrderSiteSubmission)
            .join(OrderGroup, OrderGroup.id == OrderSiteSubmission.order_group_id)
            .filter(OrderGroup.order_id == order_id)
            .all()
        )
        for submission in submissions:
            submission.assigned_to_line_item_id = owners.get(submission.id)

    def restore_from_benchmark(self, order_id: int, benchmark_id: int, restored_by: int) -> dict[str, Any]:
        """Rewrite line items to the snapshot's values. Repair tooling, internal only."""
        batch_id = uuid.uuid4().hex
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            benchmark = self.get_benchmark(order_id, benchmark_id)
            snapshot_items = {item["id"]: item for item in benchmark.benchmark_data.get("lineItems", [])}
            items = self.db.query(OrderLineItem).filter(OrderLineItem.order_id == order_id).all()

            restored = 0
            cancelled = 0
            now = utcnow()
            for item in items:
                snap = snapshot_items.get(item.id)
                if snap is None:
                    if item.status == LineItemStatus.CANCELLED.value:
                        continue
                    previous = {"status": item.status}
                    item.status = LineItemStatus.CANCELLED.value
                    item.cancelled_at = now
                    item.cancellation_reason = f"Not present in benchmark v{benchmark.version}"
                    change_type = "cancelled"
                    cancelled += 1
                else:
                    previous = {key: getattr(item, attr) for key, attr in RESTORABLE_FIELDS.items()}
                    for key, attr in RESTORABLE_FIELDS.items():
                        setattr(item, attr, snap.get(key))
                    item.item_metadata = copy.deepcopy(snap.get("metadata") or {})
                    if item.status != LineItemStatus.CANCELLED.value:
                        item.cancelled_at = None
                        item.cancellation_reason = None
                    change_type = "restored"
                    restored += 1
                item.version = (item.version or 1) + 1
                self.db.add(
                    LineItemChange(
                        line_item_id=item.id,
                        order_id=order_id,
                        change_type=change_type,
                        previous_value=previous,
                        new_value={"benchmarkId": benchmark.id, "benchmarkVersion": benchmark.version},
                        changed_by=restored_by,
                        change_reason=f"Restored from benchmark v{benchmark.version}",
                        batch_id=batch_id,
                    )
                )

            self._restore_submission_markers(order_id, items)
            GroupSyncService(db=self.db, config=self.config).sync_order_groups(order_id)
            totals = AggregationService(db=self.db, config=self.config).apply_totals(order)

        logger.info(
            "benchmark.restored",
            extra={"event": "benchmark.restored", "order_id": order_id, "benchmark_id": benchmark_id},
        )
        return {
            "benchmarkId": benchmark_id,
            "restoredCount": restored,
            "cancelledCount": cancelled,
            "batchId": batch_id,
            "totals": totals.to_dict(),
        }
