"""Keeps legacy order groups derived from line items."""

from __future__ import annotations

import logging
import re
from collections import OrderedDict
from typing import Any

from app.core.enums import LineItemStatus
from app.models import Order, OrderGroup, OrderLineItem
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)

RESUBMISSIONS_MARKER = re.compile(r"\[RESUBMISSIONS:\s*(\d+)\]\s*")
SUGGESTION_ROUND_MARKER = re.compile(r"\[SUGGESTION_ROUND:\s*(\d+)\]\s*")


def _target_pages(items: list[OrderLineItem]) -> list[dict[str, Any]]:
    counts: OrderedDict[str, int] = OrderedDict()
    for item in items:
        if item.target_page_url:
            counts[item.target_page_url] = counts.get(item.target_page_url, 0) + 1
    return [{"url": url, "requestedLinks": count} for url, count in counts.items()]


class GroupSyncService(BaseService):
    """Derives OrderGroup link counts from the order's line items.

    Line items are the source of truth. Groups are only written here so their
    counts cannot drift from the items. Methods flush; callers own the commit.
    """

    def sync_order_groups(self, order_id: int) -> list[OrderGroup]:
        # Sessions run with autoflush off; pending status edits must reach the filter below.
        self.db.flush()
        items = (
            self.db.query(OrderLineItem)
            .filter(
                OrderLineItem.order_id == order_id,
                OrderLineItem.status != LineItemStatus.CANCELLED.value,
            )
            .order_by(OrderLineItem.display_order, OrderLineItem.id)
            .all()
        )
        by_client: OrderedDict[int, list[OrderLineItem]] = OrderedDict()
        for item in items:
            by_client.setdefault(item.client_id, []).append(item)

        groups = {
            group.client_id: group
            for group in self.db.query(OrderGroup).filter(OrderGroup.order_id == order_id).all()
        }
        for client_id, client_items in by_client.items():
            group = groups.get(client_id)
            if group is None:
                group = OrderGroup(
                    order_id=order_id,
                    client_id=client_id,
                    target_pages=[],
                    requirement_overrides={},
                    suggestion_round=1,
                )
                self.db.add(group)
                groups[client_id] = group
            group.link_count = len(client_items)
            group.target_pages = _target_pages(client_items)

        for client_id, group in groups.items():
            if client_id not in by_client:
                group.link_count = 0

        self.db.flush()
        logger.debug("order.groups.synced", extra={"event": "order.groups.synced", "order_id": order_id})
        return sorted(groups.values(), key=lambda group: group.id)

    def migrate_note_counters(self, order: Order) -> dict[str, Any]:
        """Move counters embedded in ``internal_notes`` into structured columns.

        Existing structured values win when they are already higher, so running
        the migration twice is harmless.
        """
        notes = order.internal_notes or ""
        resubmissions = [int(value) for value in RESUBMISSIONS_MARKER.findall(notes)]
        rounds = [int(value) for value in SUGGESTION_ROUND_MARKER.findall(notes)]
        if not resubmissions and not rounds:
            return {"orderId": order.id, "changed": False}

        if resubmissions:
            order.resubmission_count = max(order.resubmission_count or 0, max(resubmissions))
        if rounds:
            for group in self.db.query(OrderGroup).filter(OrderGroup.order_id == order.id).all():
                group.suggestion_round = max(group.suggestion_round or 1, max(rounds))

        cleaned = SUGGESTION_ROUND_MARKER.sub("", RESUBMISSIONS_MARKER.sub("", notes)).strip()
        order.internal_notes = cleaned or None
        self.db.flush()
        logger.info(
            "order.counters.migrated",
            extra={"event": "order.counters.migrated", "order_id": order.id},
        )
        return {
            "orderId": order.id,
            "changed": True,
            "resubmissionCount": order.resubmission_count,
            "suggestionRound": max(rounds) if rounds else None,
        }

    def migrate_all_note_counters(self) -> list[dict[str, Any]]:
        results = []
        with self.transaction():
            orders = (
                self.db.query(Order)
                .filter(Order.internal_notes.isnot(None))
                .order_by(Order.id)
                .all()
            )
            for order in orders:
                result = self.migrate_note_counters(order)
                if result["changed"]:
                    results.append(result)
        return results
