"""Line item store: CRUD, domain assignment and change log."""

from __future__ import annotations

import copy
import logging
import uuid
from collections import Counter
from typing import Any

from sqlalchemy import update

from app.auth.session import SessionUser, ensure_order_access, require_internal
from app.core.enums import (
    ACCOUNT_EDITABLE_STATUSES,
    PAYMENT_LOCKED_STATUSES,
    TERMINAL_ORDER_STATUSES,
    LineItemStatus,
    OrderStatus,
    SubmissionStatus,
)
from app.core.exceptions import (
    AlreadyAssigned,
    ConcurrentUpdate,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from app.models import (
    BulkAnalysisDomain,
    LineItemChange,
    Order,
    OrderGroup,
    OrderLineItem,
    OrderSiteSubmission,
)
from app.services.aggregation_service import AggregationService
from app.services.base_service import BaseService, utcnow
from app.services.group_sync_service import GroupSyncService
from app.services.outbox_service import OutboxService
from app.services.pricing_service import PricingResolver, find_website, get_pricing_resolver, price_with_fallback

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("status", "client_id", "target_page_url", "anchor_text")
PRICE_FIELDS = ("estimated_price", "wholesale_price", "approved_price")
ASSIGNMENT_METADATA_KEYS = (
    "domainRating",
    "traffic",
    "qualificationStatus",
    "qualificationData",
    "submissionId",
    "offeringId",
    "pricingSource",
    "preAssignment",
)
VALID_LINE_ITEM_STATUSES = frozenset(status.value for status in LineItemStatus)


def _validate_price(name: str, value: Any) -> None:
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer amount of cents.", {"field": name})


def _check_price_invariant(item: OrderLineItem) -> None:
    effective = item.effective_price
    if item.wholesale_price is not None and effective is not None and item.wholesale_price > effective:
        raise ValidationError(
            "Wholesale price cannot exceed the effective price.",
            {"lineItemId": item.id, "wholesalePrice": item.wholesale_price, "effectivePrice": effective},
        )


class LineItemService(BaseService):
    def __init__(self, db=None, config=None, pricing_resolver: PricingResolver | None = None) -> None:
        super().__init__(db=db, config=config)
        self._pricing_resolver = pricing_resolver

    @property
    def pricing_resolver(self) -> PricingResolver:
        if self._pricing_resolver is None:
            self._pricing_resolver = get_pricing_resolver(self.db, self.config)
        return self._pricing_resolver

    @property
    def aggregator(self) -> AggregationService:
        return AggregationService(db=self.db, config=self.config)

    @property
    def group_sync(self) -> GroupSyncService:
        return GroupSyncService(db=self.db, config=self.config)

    @property
    def outbox(self) -> OutboxService:
        return OutboxService(db=self.db, config=self.config)

    def _items_for(self, order_id: int) -> list[OrderLineItem]:
        return (
            self.db.query(OrderLineItem)
            .filter(OrderLineItem.order_id == order_id)
            .order_by(OrderLineItem.display_order, OrderLineItem.id)
            .all()
        )

    def _get_item(self, order_id: int, line_item_id: int, for_update: bool = False) -> OrderLineItem:
        query = self.db.query(OrderLineItem).filter(
            OrderLineItem.id == line_item_id,
            OrderLineItem.order_id == order_id,
        )
        if for_update:
            query = query.with_for_update()
        item = query.first()
        if item is None:
            raise NotFound(f"Line item not found: {line_item_id}")
        return item

    def _ensure_can_edit(self, order: Order, session: SessionUser, action: str) -> None:
        ensure_order_access(session, order)
        if session.is_publisher:
            raise Forbidden(f"Publishers cannot {action} line items.")
        if order.status in TERMINAL_ORDER_STATUSES:
            raise InvalidStateTransition(f"Cannot {action} line items in status: '{order.status}'")
        if session.is_account and order.status not in ACCOUNT_EDITABLE_STATUSES:
            if order.status in PAYMENT_LOCKED_STATUSES:
                raise InvalidStateTransition(
                    f"Cannot {action} line items once payment process begins. Current status: '{order.status}'"
                )
            raise InvalidStateTransition(f"Cannot {action} line items in status: '{order.status}'")

    def _log_change(
        self,
        item: OrderLineItem,
        change_type: str,
        session: SessionUser,
        previous: dict[str, Any] | None,
        new: dict[str, Any] | None,
        reason: str | None = None,
        batch_id: str | None = None,
    ) -> None:
        self.db.add(
            LineItemChange(
                line_item_id=item.id,
                order_id=item.order_id,
                change_type=change_type,
                previous_value=previous,
                new_value=new,
                changed_by=session.user_id,
                change_reason=reason,
                batch_id=batch_id,
            )
        )

    def list_line_items(
        self,
        order_id: int,
        session: SessionUser,
        status: str | None = None,
        client_id: int | None = None,
    ) -> tuple[list[OrderLineItem], dict[str, Any]]:
        order = self.get_order(order_id)
        all_items = self._items_for(order_id)
        ensure_order_access(session, order, all_items)

        items = [
            item
            for item in all_items
            if (status is None or item.status == status) and (client_id is None or item.client_id == client_id)
        ]
        summary = {
            "total": len(items),
            "byStatus": dict(Counter(item.status for item in items)),
            "byClient": {str(key): value for key, value in Counter(item.client_id for item in items).items()},
            "totalValue": sum(
                item.effective_price or 0 for item in items if item.status != LineItemStatus.CANCELLED.value
            ),
            "deliveredCount": sum(
                1 for item in items if item.status in {LineItemStatus.DELIVERED.value, LineItemStatus.COMPLETED.value}
            ),
            "pendingCount": sum(
                1 for item in items if item.status in {LineItemStatus.DRAFT.value, LineItemStatus.PENDING.value}
            ),
        }
        return items, summary

    def add_line_items(
        self,
        order_id: int,
        session: SessionUser,
        items: list[dict[str, Any]],
        reason: str | None = None,
    ) -> list[OrderLineItem]:
        if not items:
            raise ValidationError("At least one line item is required.")
        batch_id = uuid.uuid4().hex
        created: list[OrderLineItem] = []
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            self._ensure_can_edit(order, session, "add")

            last = (
                self.db.query(OrderLineItem.display_order)
                .filter(OrderLineItem.order_id == order_id)
                .order_by(OrderLineItem.display_order.desc())
                .first()
            )
            next_order = (last[0] + 1) if last else 0
            default_status = (
                LineItemStatus.DRAFT.value if order.status == OrderStatus.DRAFT.value else LineItemStatus.PENDING.value
            )
            for payload in items:
                _validate_price("estimated_price", payload.get("estimated_price"))
                item = OrderLineItem(
                    order_id=order_id,
                    client_id=payload["client_id"],
                    target_page_url=payload.get("target_page_url"),
                    anchor_text=payload.get("anchor_text"),
                    status=default_status,
                    estimated_price=payload.get("estimated_price"),
                    item_metadata=copy.deepcopy(payload.get("metadata") or {}),
                    display_order=next_order,
                    version=1,
                    added_by=session.user_id,
                )
                next_order += 1
                self.db.add(item)
                self.db.flush()
                self._log_change(
                    item,
                    "created",
                    session,
                    None,
                    {"clientId": item.client_id, "targetPageUrl": item.target_page_url},
                    reason or "Line item added",
                    batch_id,
                )
                created.append(item)

            self.group_sync.sync_order_groups(order_id)
            self.aggregator.apply_totals(order)

        logger.info(
            "line_items.added",
            extra={"event": "line_items.added", "order_id": order_id, "user_id": session.user_id},
        )
        return created

    def update_line_items(
        self,
        order_id: int,
        session: SessionUser,
        updates: list[dict[str, Any]],
        reason: str | None = None,
    ) -> list[OrderLineItem]:
        """Apply bulk field updates guarded by each item's ``version``.

        Totals are recomputed only when a price or status changed; metadata-only
        edits never move the order's totals.
        """
        if not updates:
            raise ValidationError("At least one update is required.")
        batch_id = uuid.uuid4().hex
        updated: list[OrderLineItem] = []
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            self._ensure_can_edit(order, session, "edit")
            needs_totals = False
            needs_sync = False

            for payload in updates:
                item = self._get_item(order_id, payload["id"], for_update=True)
                expected_version = payload.get("version")
                if expected_version is not None and expected_version != item.version:
                    raise ConcurrentUpdate(
                        f"Concurrent update detected for line item {item.id}",
                        {"lineItemId": item.id, "expectedVersion": expected_version, "currentVersion": item.version},
                    )

                changes: dict[str, dict[str, Any]] = {}
                for field in EDITABLE_FIELDS + PRICE_FIELDS:
                    if field not in payload or payload[field] == getattr(item, field):
                        continue
                    if field in PRICE_FIELDS:
                        if not session.is_internal and field != "estimated_price":
                            raise Forbidden(f"Only internal users may set {field}.")
                        _validate_price(field, payload[field])
                    if field == "status" and payload[field] not in VALID_LINE_ITEM_STATUSES:
                        raise ValidationError(f"Unknown line item status: {payload[field]}")
                    changes[field] = {"from": getattr(item, field), "to": payload[field]}

                if payload.get("metadata") is not None:
                    merged = {**copy.deepcopy(item.item_metadata or {}), **copy.deepcopy(payload["metadata"])}
                    if merged != item.item_metadata:
                        changes["metadata"] = {"from": copy.deepcopy(item.item_metadata), "to": merged}

                if not changes:
                    continue

                claim = self.db.execute(
                    update(OrderLineItem)
                    .where(OrderLineItem.id == item.id, OrderLineItem.version == item.version)
                    .values(version=item.version + 1)
                    .execution_options(synchronize_session="fetch")
                )
                if claim.rowcount == 0:
                    raise ConcurrentUpdate(f"Concurrent update detected for line item {item.id}")

                for field, change in changes.items():
                    if field == "metadata":
                        item.item_metadata = change["to"]
                    else:
                        setattr(item, field, change["to"])
                if "status" in changes and item.status == LineItemStatus.CANCELLED.value:
                    item.cancelled_at = utcnow()
                _check_price_invariant(item)

                needs_totals = needs_totals or any(field in changes for field in PRICE_FIELDS + ("status",))
                needs_sync = needs_sync or any(field in changes for field in ("status", "client_id", "target_page_url"))
                self._log_change(
                    item,
                    "status_changed" if "status" in changes else "modified",
                    session,
                    {field: change["from"] for field, change in changes.items()},
                    {field: change["to"] for field, change in changes.items()},
                    reason or payload.get("reason") or "Line item updated",
                    batch_id,
                )
                updated.append(item)

            if needs_sync:
                self.group_sync.sync_order_groups(order_id)
            if needs_totals:
                self.aggregator.apply_totals(order)

        logger.info(
            "line_items.updated",
            extra={"event": "line_items.updated", "order_id": order_id, "user_id": session.user_id},
        )
        return updated

    def cancel_line_items(
        self,
        order_id: int,
        session: SessionUser,
        line_item_ids: list[int],
        reason: str | None = None,
    ) -> list[OrderLineItem]:
        if not line_item_ids:
            raise ValidationError("At least one line item id is required.")
        batch_id = uuid.uuid4().hex
        cancelled: list[OrderLineItem] = []
        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            self._ensure_can_edit(order, session, "delete")
            now = utcnow()
            for line_item_id in line_item_ids:
                item = self._get_item(order_id, line_item_id, for_update=True)
                if item.status == LineItemStatus.CANCELLED.value:
                    continue
                previous_status = item.status
                item.status = LineItemStatus.CANCELLED.value
                item.cancelled_at = now
                item.cancellation_reason = reason
                item.version = (item.version or 1) + 1
                self._log_change(
                    item,
                    "cancelled",
                    session,
                    {"status": previous_status},
                    {"status": item.status},
                    reason or "Line item cancelled",
                    batch_id,
                )
                cancelled.append(item)

            self.group_sync.sync_order_groups(order_id)
            self.aggregator.apply_totals(order)

        logger.info(
            "line_items.cancelled",
            extra={"event": "line_items.cancelled", "order_id": order_id, "user_id": session.user_id},
        )
        return cancelled

    def _get_submission(self, order_id: int, submission_id: int) -> OrderSiteSubmission:
        submission = (
            self.db.query(OrderSiteSubmission)
            .join(OrderGroup, OrderGroup.id == OrderSiteSubmission.order_group_id)
            .filter(OrderSiteSubmission.id == submission_id, OrderGroup.order_id == order_id)
            .first()
        )
        if submission is None:
            raise NotFound(f"Submission not found: {submission_id}")
        return submission

    def _check_submission_matches(
        self, submission: OrderSiteSubmission, item: OrderLineItem, domain_id: int
    ) -> None:
        details = {"submissionId": submission.id, "lineItemId": item.id}
        if submission.domain_id != domain_id:
            raise ValidationError(
                f"Submission {submission.id} proposes a different domain.",
                {**details, "submissionDomainId": submission.domain_id, "domainId": domain_id},
            )
        if submission.submission_status == SubmissionStatus.CLIENT_REJECTED.value:
            raise ValidationError(f"Submission {submission.id} was rejected by the client.", details)
        group = self.db.get(OrderGroup, submission.order_group_id)
        if group is None or group.client_id != item.client_id:
            raise ValidationError(f"Submission {submission.id} belongs to another client's group.", details)

    def assign_domain(
        self,
        order_id: int,
        line_item_id: int,
        domain_id: int,
        session: SessionUser,
        submission_id: int | None = None,
    ) -> OrderLineItem:
        """Bind a qualified domain to a line item and price it.

        The line item is claimed with a conditional update, so of two concurrent
        assignments exactly one wins and the other raises AlreadyAssigned.
        """
        require_internal(session)
        with self.transaction():
            order = self.get_order(order_id)
            item = self._get_item(order_id, line_item_id, for_update=True)
            if item.assigned_domain_id is not None:
                raise AlreadyAssigned(
                    f"Line item {line_item_id} already has a domain assigned.",
                    {"assignedDomain": item.assigned_domain},
                )
            if item.status == LineItemStatus.CANCELLED.value:
                raise InvalidStateTransition("Cannot assign a domain to a cancelled line item.")

            domain = self.db.get(BulkAnalysisDomain, domain_id)
            if domain is None:
                raise NotFound(f"Domain not found: {domain_id}")

            submission = None
            if submission_id is not None:
                submission = self._get_submission(order_id, submission_id)
                self._check_submission_matches(submission, item, domain_id)
                if submission.assigned_to_line_item_id not in (None, item.id):
                    raise AlreadyAssigned(
                        f"Submission {submission_id} is already assigned to another line item.",
                        {"lineItemId": submission.assigned_to_line_item_id},
                    )

            website = find_website(self.db, domain.domain)
            price, pricing_source = price_with_fallback(
                self.pricing_resolver, website, domain.domain, self.config.SERVICE_FEE_CENTS
            )

            now = utcnow()
            claim = self.db.execute(
                update(OrderLineItem)
                .where(OrderLineItem.id == item.id, OrderLineItem.assigned_domain_id.is_(None))
                .values(
                    assigned_domain_id=domain.id,
                    assigned_domain=domain.domain,
                    assigned_at=now,
                    assigned_by=session.user_id,
                )
                .execution_options(synchronize_session="fetch")
            )
            if claim.rowcount == 0:
                raise AlreadyAssigned(f"Line item {line_item_id} already has a domain assigned.")

            metadata = copy.deepcopy(item.item_metadata or {})
            pre_assignment = {
                "status": item.status,
                "estimatedPrice": item.estimated_price,
                "wholesalePrice": item.wholesale_price,
                "approvedPrice": item.approved_price,
                "serviceFee": item.service_fee,
                "publisherId": item.publisher_id,
                "metadata": {key: metadata[key] for key in ASSIGNMENT_METADATA_KEYS if key in metadata},
            }
            metadata["preAssignment"] = copy.deepcopy(pre_assignment)
            metadata.update(
                {
                    "domainRating": website.domain_rating if website is not None else None,
                    "traffic": website.total_traffic if website is not None else None,
                    "qualificationStatus": domain.qualification_status,
                    "qualificationData": copy.deepcopy(domain.qualification_data or {}),
                    "pricingSource": pricing_source,
                }
            )
            if submission is not None:
                metadata["submissionId"] = submission.id
            if price is not None:
                item.wholesale_price = price.wholesale_price
                item.estimated_price = price.retail_price
                item.service_fee = price.retail_price - price.wholesale_price
                item.publisher_id = price.publisher_id
                if price.offering_id is not None:
                    metadata["offeringId"] = price.offering_id
            item.item_metadata = metadata
            item.status = LineItemStatus.ASSIGNED.value
            item.version = (item.version or 1) + 1
            _check_price_invariant(item)

            if submission is not None:
                submission.assigned_to_line_item_id = item.id
                if submission.wholesale_price_snapshot is None and price is not None:
                    submission.wholesale_price_snapshot = price.wholesale_price
                    submission.retail_price_snapshot = price.retail_price

            self._log_change(
                item,
                "domain_assigned",
                session,
                {"assignedDomain": None},
                {"assignedDomain": domain.domain, "estimatedPrice": item.estimated_price},
                "Domain assigned",
            )
            if item.publisher_id is not None:
                self.outbox.record(
                    "notification.publisher.new_order",
                    {"orderId": order_id, "lineItemId": item.id, "publisherId": item.publisher_id},
                )
            self.aggregator.apply_totals(order)

        logger.info(
            "line_item.domain.assigned",
            extra={"event": "line_item.domain.assigned", "order_id": order_id, "line_item_id": line_item_id},
        )
        return item

    def unassign_domain(self, order_id: int, line_item_id: int, session: SessionUser) -> OrderLineItem:
        require_internal(session)
        with self.transaction():
            order = self.get_order(order_id)
            item = self._get_item(order_id, line_item_id, for_update=True)
            if item.assigned_domain_id is None:
                return item

            previous = {
                "assignedDomainId": item.assigned_domain_id,
                "assignedDomain": item.assigned_domain,
                "wholesalePrice": item.wholesale_price,
                "estimatedPrice": item.estimated_price,
            }
            metadata = copy.deepcopy(item.item_metadata or {})
            # Items assigned before pre-assignment values were kept fall back to a bare pending item.
            restore = metadata.get("preAssignment") or {"status": LineItemStatus.PENDING.value}
            item.assigned_domain_id = None
            item.assigned_domain = None
            item.assigned_at = None
            item.assigned_by = None
            item.publisher_id = restore.get("publisherId")
            item.wholesale_price = restore.get("wholesalePrice")
            item.estimated_price = restore.get("estimatedPrice")
            item.approved_price = restore.get("approvedPrice")
            item.service_fee = restore.get("serviceFee")
            item.status = restore.get("status") or LineItemStatus.PENDING.value
            cleaned = {key: value for key, value in metadata.items() if key not in ASSIGNMENT_METADATA_KEYS}
            cleaned.update(restore.get("metadata") or {})
            item.item_metadata = cleaned
            item.version = (item.version or 1) + 1

            for submission in (
                self.db.query(OrderSiteSubmission).filter(OrderSiteSubmission.assigned_to_line_item_id == item.id).all()
            ):
                submission.assigned_to_line_item_id = None

            self._log_change(item, "domain_unassigned", session, previous, {"assignedDomain": None}, "Domain unassigned")
            self.aggregator.apply_totals(order)

        logger.info(
            "line_item.domain.unassigned",
            extra={"event": "line_item.domain.unassigned", "order_id": order_id, "line_item_id": line_item_id},
        )
        return item
