"""SQLAlchemy model package for the order fulfillment schema."""

from app.models.base import Base
from app.models.benchmark import BenchmarkComparison, OrderBenchmark
from app.models.catalog import BulkAnalysisDomain, PublisherOffering, Website
from app.models.line_item import LineItemChange, OrderLineItem
from app.models.order import Order, OrderStatusHistory
from app.models.order_group import OrderGroup, OrderSiteSubmission
from app.models.outbox import OutboxEvent
from app.models.user import User

__all__ = [
    "Base",
    "BenchmarkComparison",
    "BulkAnalysisDomain",
    "LineItemChange",
    "Order",
    "OrderBenchmark",
    "OrderGroup",
    "OrderLineItem",
    "OrderSiteSubmission",
    "OrderStatusHistory",
    "OutboxEvent",
    "PublisherOffering",
    "User",
    "Website",
]
