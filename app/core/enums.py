"""Canonical status and type values for orders, line items and negotiation."""

from __future__ import annotations

import enum


class UserType(str, enum.Enum):
    """Kinds of session principals."""

    INTERNAL = "internal"
    ACCOUNT = "account"
    PUBLISHER = "publisher"


class OrderStatus(str, enum.Enum):
    """Business lifecycle of an order."""

    DRAFT = "draft"
    PENDING_CONFIRMATION = "pending_confirmation"
    CONFIRMED = "confirmed"
    ANALYZING = "analyzing"
    SITES_READY = "sites_ready"
    CLIENT_REVIEWING = "client_reviewing"
    CLIENT_APPROVED = "client_approved"
    INVOICED = "invoiced"
    PAID = "paid"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OrderState(str, enum.Enum):
    """
    Fulfillment-stage detail shown alongside the status.

    Advanced together with the status but not strictly one-to-one with it.
    """

    DRAFT = "draft"
    AWAITING_REVIEW = "awaiting_review"
    ANALYZING = "analyzing"
    SITES_READY = "sites_ready"
    REVIEWING = "reviewing"
    APPROVED = "approved"
    PAYMENT_PENDING = "payment_pending"
    FULFILLING = "fulfilling"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class LineItemStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    ASSIGNED = "assigned"
    APPROVED = "approved"
    IN_PROGRESS = "in_progress"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class SubmissionStatus(str, enum.Enum):
    PENDING = "pending"
    CLIENT_APPROVED = "client_approved"
    CLIENT_REJECTED = "client_rejected"


class InclusionStatus(str, enum.Enum):
    INCLUDED = "included"
    EXCLUDED = "excluded"
    SAVED_FOR_LATER = "saved_for_later"


class BenchmarkType(str, enum.Enum):
    """Checkpoint at which a benchmark snapshot was captured."""

    INITIAL = "initial"
    RESUBMISSION = "resubmission"
    CLIENT_REVISION = "client_revision"
    MANUAL = "manual"


class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


# Statuses in which an account user may still edit line items.
ACCOUNT_EDITABLE_STATUSES = frozenset(
    {
        OrderStatus.DRAFT.value,
        OrderStatus.PENDING_CONFIRMATION.value,
        OrderStatus.CONFIRMED.value,
        OrderStatus.ANALYZING.value,
        OrderStatus.SITES_READY.value,
        OrderStatus.CLIENT_REVIEWING.value,
        OrderStatus.CLIENT_APPROVED.value,
        OrderStatus.INVOICED.value,
    }
)

PAYMENT_LOCKED_STATUSES = frozenset(
    {
        OrderStatus.PAID.value,
        OrderStatus.IN_PROGRESS.value,
        OrderStatus.COMPLETED.value,
    }
)

TERMINAL_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED.value, OrderStatus.CANCELLED.value})
