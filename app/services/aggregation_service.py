"""Order totals aggregation over line items."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass

from app.core.enums import LineItemStatus
from app.models import Order, OrderLineItem
from app.services.base_service import BaseService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderTotals:
    subtotal_retail: int = 0
    total_retail: int = 0
    total_wholesale: int = 0
    profit_margin: int = 0
    estimated_price_per_link: int | None = None
    priced_item_count: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def _round_div(numerator: int, denominator: int) -> int:
    """Half-up division for non-negative integers."""
    return (2 * numerator + denominator) // (2 * denominator)


def compute_order_totals(items: Iterable[OrderLineItem], service_fee_cents: int) -> OrderTotals:
    """Pure totals computation over line items.

    Cancelled items are ignored. Items without a price count toward nothing.
    A negative or non-integer price is logged and skipped.
    """
    subtotal = 0
    wholesale = 0
    count = 0
    for item in items:
        if item.status == LineItemStatus.CANCELLED.value:
            continue
        price = item.effective_price
        if price is None:
            continue
        if isinstance(price, bool) or not isinstance(price, int) or price < 0:
            logger.warning(
                "aggregation.item.malformed",
                extra={"event": "aggregation.item.malformed", "line_item_id": item.id, "order_id": item.order_id},
            )
            continue
        if price == 0:
            continue
        subtotal += price
        wholesale += max(price - service_fee_cents, 0)
        count += 1

    total_retail = subtotal
    per_link = _round_div(total_retail, count) if count else None
    margin = _round_div(100 * (total_retail - wholesale), total_retail) if total_retail else 0
    return OrderTotals(
        subtotal_retail=subtotal,
        total_retail=total_retail,
        total_wholesale=wholesale,
        profit_margin=margin,
        estimated_price_per_link=per_link,
        priced_item_count=count,
    )


class AggregationService(BaseService):
    """Writes recomputed totals back onto the order.

    ``recompute_totals`` only flushes; callers own the surrounding transaction so
    the totals land together with the line-item mutation that triggered them.
    """

    def recompute_totals(self, order_id: int) -> OrderTotals:
        order = self.get_order(order_id)
        return self.apply_totals(order)

    def apply_totals(self, order: Order) -> OrderTotals:
        items = self.db.query(OrderLineItem).filter(OrderLineItem.order_id == order.id).all()
        totals = compute_order_totals(items, self.config.SERVICE_FEE_CENTS)
        order.subtotal_retail = totals.subtotal_retail
        order.total_retail = totals.total_retail
        order.total_wholesale = totals.total_wholesale
        order.profit_margin = totals.profit_margin
        order.estimated_price_per_link = totals.estimated_price_per_link
        self.db.flush()
        logger.info(
            "order.totals.recomputed",
            extra={"event": "order.totals.recomputed", "order_id": order.id},
        )
        return totals
