"""Order lifecycle: creation, resubmission and table-driven status transitions."""

from __future__ import annotations

import logging
from typing import Any

from app.auth.session import SessionUser, ensure_order_access, require_internal
from app.core.enums import BenchmarkType, LineItemStatus, OrderState, OrderStatus
from app.core.exceptions import Forbidden, InvalidStateTransition, ValidationError
from app.models import Order, OrderBenchmark, OrderGroup, OrderLineItem, OrderStatusHistory
from app.orchestration.state_machine import DEFAULT_STATE_FOR_STATUS, ORDER_STATE_MACHINE
from app.services.aggregation_service import AggregationService, OrderTotals
from app.services.base_service import BaseService, utcnow
from app.services.benchmark_service import BenchmarkService
from app.services.group_sync_service import GroupSyncService
from app.services.outbox_service import BENCHMARK_RETRY, WORKFLOW_CREATE, OutboxService

logger = logging.getLogger(__name__)

RESUBMITTABLE_STATUSES = frozenset({OrderStatus.PENDING_CONFIRMATION.value, OrderStatus.CONFIRMED.value})
VALID_ORDER_STATUSES = frozenset(status.value for status in OrderStatus)

PREFERENCE_FIELDS = (
    "preferences_dr_min",
    "preferences_dr_max",
    "preferences_traffic_min",
    "estimated_budget_min",
    "estimated_budget_max",
)


def _target_urls(target_pages: list[Any]) -> list[str | None]:
    urls: list[str | None] = []
    for page in target_pages or []:
        if isinstance(page, dict):
            urls.append(page.get("url"))
        else:
            urls.append(page)
    return urls or [None]


class OrderService(BaseService):
    """Service for order creation and status transitions."""

    @property
    def aggregator(self) -> AggregationService:
        return AggregationService(db=self.db, config=self.config)

    @property
    def outbox(self) -> OutboxService:
        return OutboxService(db=self.db, config=self.config)

    def _record_history(self, order: Order, old_status: str | None, session: SessionUser, notes: str | None) -> None:
        self.db.add(
            OrderStatusHistory(
                order_id=order.id,
                old_status=old_status,
                new_status=order.status,
                changed_by=session.user_id,
                notes=notes,
            )
        )

    def get_order_for(self, order_id: int, session: SessionUser) -> Order:
        order = self.get_order(order_id)
        ensure_order_access(session, order, order.line_items)
        return order

    def create_order(
        self,
        session: SessionUser,
        groups: list[dict[str, Any]],
        account_id: int | None = None,
        preferences: dict[str, Any] | None = None,
        notes: str | None = None,
    ) -> Order:
        if session.is_publisher:
            raise Forbidden("Publishers cannot create orders.")
        if session.is_account:
            account_id = session.user_id
        if account_id is None:
            raise ValidationError("account_id is required when creating an order for an account.")
        if not groups:
            raise ValidationError("An order needs at least one client group.")
        client_ids = [group["client_id"] for group in groups]
        if len(set(client_ids)) != len(client_ids):
            raise ValidationError("Each client may appear only once per order.")
        for group in groups:
            if int(group.get("link_count") or 0) < 1:
                raise ValidationError("link_count must be at least 1.", {"clientId": group["client_id"]})

        with self.transaction():
            now = utcnow()
            order = Order(
                account_id=account_id,
                status=OrderStatus.PENDING_CONFIRMATION.value,
                state=OrderState.AWAITING_REVIEW.value,
                internal_notes=notes,
                resubmission_count=0,
                estimated_links_count=sum(int(group["link_count"]) for group in groups),
                submitted_at=now,
                **{field: (preferences or {}).get(field) for field in PREFERENCE_FIELDS},
            )
            self.db.add(order)
            self.db.flush()

            display_order = 0
            for group_payload in groups:
                self.db.add(
                    OrderGroup(
                        order_id=order.id,
                        client_id=group_payload["client_id"],
                        link_count=int(group_payload["link_count"]),
                        target_pages=[],
                        requirement_overrides={},
                        suggestion_round=1,
                    )
                )
                urls = _target_urls(group_payload.get("target_pages") or [])
                for index in range(int(group_payload["link_count"])):
                    self.db.add(
                        OrderLineItem(
                            order_id=order.id,
                            client_id=group_payload["client_id"],
                            target_page_url=urls[index % len(urls)],
                            anchor_text=group_payload.get("anchor_text"),
                            status=LineItemStatus.PENDING.value,
                            estimated_price=group_payload.get("estimated_price_per_link"),
                            item_metadata={},
                            display_order=display_order,
                            version=1,
                            added_by=session.user_id,
                        )
                    )
                    display_order += 1

            self.db.flush()
            GroupSyncService(db=self.db, config=self.config).sync_order_groups(order.id)
            self.aggregator.apply_totals(order)
            self._record_history(order, None, session, "Order submitted")
            self.outbox.record("notification.internal.order_submitted", {"orderId": order.id, "accountId": account_id})

        logger.info(
            "order.created",
            extra={"event": "order.created", "order_id": order.id, "user_id": session.user_id},
        )
        return order

    def _capture_benchmark(
        self,
        order: Order,
        session: SessionUser,
        benchmark_type: str,
        notes: str | None = None,
    ) -> OrderBenchmark | None:
        """Best-effort snapshot; a failure is logged and queued for retry, never raised."""
        try:
            return BenchmarkService(db=self.db, config=self.config).create_benchmark(
                order_id=order.id,
                captured_by_user_id=session.user_id,
                benchmark_type=benchmark_type,
                actor_type=session.user_type,
                notes=notes,
            )
        except Exception as exc:
            logger.warning(
                "benchmark.capture.failed",
                extra={"event": "benchmark.capture.failed", "order_id": order.id, "error": str(exc)},
            )
            with self.transaction():
                self.outbox.record(
                    BENCHMARK_RETRY,
                    {
                        "orderId": order.id,
                        "capturedBy": session.user_id,
                        "actorType": session.user_type,
                        "benchmarkType": benchmark_type,
                        "notes": notes,
                    },
                )
            return None

    def resubmit(self, order_id: int, session: SessionUser, notes: str | None = None) -> dict[str, Any]:
        """Send a pending or confirmed order back for confirmation after edits."""
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            if session.is_publisher:
                raise Forbidden("Publishers cannot resubmit orders.")
            ensure_order_access(session, order)
            if order.status not in RESUBMITTABLE_STATUSES:
                raise InvalidStateTransition(
                    f"Order cannot be resubmitted from status: '{order.status}'",
                    {"allowed": sorted(RESUBMITTABLE_STATUSES)},
                )

            old_status = order.status
            order.resubmission_count = (order.resubmission_count or 0) + 1
            order.last_resubmitted_at = utcnow()
            self.aggregator.apply_totals(order)
            order.status = OrderStatus.PENDING_CONFIRMATION.value
            order.state = OrderState.AWAITING_REVIEW.value
            self._record_history(
                order,
                old_status,
                session,
                notes or f"Order resubmitted (#{order.resubmission_count})",
            )

        logger.info(
            "order.resubmitted",
            extra={"event": "order.resubmitted", "order_id": order_id, "user_id": session.user_id},
        )
        benchmark = self._capture_benchmark(order, session, BenchmarkType.RESUBMISSION.value, notes)
        return {
            "success": True,
            "order": order,
            "resubmissionCount": order.resubmission_count,
            "benchmark": benchmark,
        }

    def transition(
        self,
        order_id: int,
        session: SessionUser,
        target_status: str,
        notes: str | None = None,
    ) -> Order:
        if target_status not in VALID_ORDER_STATUSES:
            raise ValidationError(f"Unknown order status: {target_status}")

        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            items = (
                self.db.query(OrderLineItem)
                .filter(OrderLineItem.order_id == order_id)
                .order_by(OrderLineItem.display_order, OrderLineItem.id)
                .all()
            )
            ensure_order_access(session, order, items)
            transition = ORDER_STATE_MACHINE.get(order.status, target_status)
            if transition is None:
                raise InvalidStateTransition(
                    f"Transition not allowed: {order.status} -> {target_status}",
                    {"allowed": sorted(ORDER_STATE_MACHINE.targets(order.status))},
                )
            if session.user_type not in transition.actors:
                raise Forbidden(f"{session.user_type} users cannot move an order to '{target_status}'.")

            old_status = order.status
            now = utcnow()
            order.status = target_status
            order.state = DEFAULT_STATE_FOR_STATUS[target_status]
            if target_status == OrderStatus.PENDING_CONFIRMATION.value:
                order.submitted_at = now
                self.aggregator.apply_totals(order)
            elif target_status == OrderStatus.CONFIRMED.value:
                order.confirmed_at = now
                self.outbox.record("notification.internal.order_confirmed", {"orderId": order.id})
            elif target_status == OrderStatus.SITES_READY.value:
                self.outbox.record("notification.account.sites_ready", {"orderId": order.id, "accountId": order.account_id})
            elif target_status == OrderStatus.IN_PROGRESS.value:
                for item in items:
                    if item.assigned_domain_id is not None and item.status != LineItemStatus.CANCELLED.value:
                        self.outbox.record(
                            WORKFLOW_CREATE,
                            {
                                "orderId": order.id,
                                "lineItemId": item.id,
                                "clientId": item.client_id,
                                "domain": item.assigned_domain,
                                "targetPageUrl": item.target_page_url,
                                "anchorText": item.anchor_text,
                                "publisherId": item.publisher_id,
                            },
                        )
            elif target_status == OrderStatus.COMPLETED.value:
                order.completed_at = now
                self.outbox.record(
                    "notification.account.order_completed",
                    {"orderId": order.id, "accountId": order.account_id},
                )
            elif target_status == OrderStatus.CANCELLED.value:
                order.cancelled_at = now
            self._record_history(order, old_status, session, notes)

        logger.info(
            "order.transitioned",
            extra={"event": "order.transitioned", "order_id": order_id, "user_id": session.user_id},
        )
        if target_status == OrderStatus.CONFIRMED.value:
            self._capture_benchmark(order, session, BenchmarkType.INITIAL.value, "Captured on confirmation")
        return order

    def recompute_totals(self, order_id: int, session: SessionUser) -> OrderTotals:
        require_internal(session)
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            totals = self.aggregator.apply_totals(order)
        return totals
