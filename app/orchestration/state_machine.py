"""Canonical status transition table for orders."""

from __future__ import annotations

from dataclasses import dataclass

from app.core.enums import TERMINAL_ORDER_STATUSES, OrderState, OrderStatus, UserType


@dataclass(frozen=True)
class Transition:
    source: str
    target: str
    actors: frozenset[str]


class StateMachine:
    """Table-driven state machine keyed by (source, target) with actor roles."""

    def __init__(self, transitions: list[Transition]) -> None:
        self._transitions = {(item.source, item.target): item for item in transitions}

    def get(self, current: str, target: str) -> Transition | None:
        return self._transitions.get((current, target))

    def targets(self, current: str) -> set[str]:
        return {target for (source, target) in self._transitions if source == current}


_INTERNAL = UserType.INTERNAL.value
_ACCOUNT = UserType.ACCOUNT.value
_PUBLISHER = UserType.PUBLISHER.value


def _t(source: OrderStatus, target: OrderStatus, *actors: str) -> Transition:
    return Transition(source=source.value, target=target.value, actors=frozenset(actors))


ORDER_TRANSITIONS = [
    _t(OrderStatus.DRAFT, OrderStatus.PENDING_CONFIRMATION, _INTERNAL, _ACCOUNT),
    _t(OrderStatus.PENDING_CONFIRMATION, OrderStatus.CONFIRMED, _INTERNAL),
    _t(OrderStatus.CONFIRMED, OrderStatus.ANALYZING, _INTERNAL),
    _t(OrderStatus.ANALYZING, OrderStatus.SITES_READY, _INTERNAL),
    _t(OrderStatus.SITES_READY, OrderStatus.CLIENT_REVIEWING, _INTERNAL, _ACCOUNT),
    _t(OrderStatus.CLIENT_REVIEWING, OrderStatus.CLIENT_APPROVED, _INTERNAL, _ACCOUNT),
    _t(OrderStatus.CLIENT_REVIEWING, OrderStatus.ANALYZING, _INTERNAL, _ACCOUNT),
    _t(OrderStatus.CLIENT_APPROVED, OrderStatus.INVOICED, _INTERNAL),
    _t(OrderStatus.INVOICED, OrderStatus.PAID, _INTERNAL),
    _t(OrderStatus.PAID, OrderStatus.IN_PROGRESS, _INTERNAL, _PUBLISHER),
    _t(OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED, _INTERNAL, _PUBLISHER),
] + [
    _t(status, OrderStatus.CANCELLED, _INTERNAL)
    for status in OrderStatus
    if status.value not in TERMINAL_ORDER_STATUSES
]

ORDER_STATE_MACHINE = StateMachine(ORDER_TRANSITIONS)

# Default fulfillment stage written alongside each status.
DEFAULT_STATE_FOR_STATUS: dict[str, str] = {
    OrderStatus.DRAFT.value: OrderState.DRAFT.value,
    OrderStatus.PENDING_CONFIRMATION.value: OrderState.AWAITING_REVIEW.value,
    OrderStatus.CONFIRMED.value: OrderState.ANALYZING.value,
    OrderStatus.ANALYZING.value: OrderState.ANALYZING.value,
    OrderStatus.SITES_READY.value: OrderState.SITES_READY.value,
    OrderStatus.CLIENT_REVIEWING.value: OrderState.REVIEWING.value,
    OrderStatus.CLIENT_APPROVED.value: OrderState.APPROVED.value,
    OrderStatus.INVOICED.value: OrderState.PAYMENT_PENDING.value,
    OrderStatus.PAID.value: OrderState.FULFILLING.value,
    OrderStatus.IN_PROGRESS.value: OrderState.FULFILLING.value,
    OrderStatus.COMPLETED.value: OrderState.COMPLETE.value,
    OrderStatus.CANCELLED.value: OrderState.CANCELLED.value,
}
