from __future__ import annotations

from app.core.enums import OrderStatus
from app.orchestration.state_machine import (
    DEFAULT_STATE_FOR_STATUS,
    ORDER_STATE_MACHINE,
    StateMachine,
    Transition,
)


def test_state_machine_looks_up_transition_by_pair():
    sm = StateMachine([Transition("new", "running", frozenset({"internal"}))])
    transition = sm.get("new", "running")
    assert transition is not None
    assert transition.actors == frozenset({"internal"})
    assert sm.get("new", "completed") is None
    assert sm.targets("new") == {"running"}


def test_order_table_happy_path_is_connected():
    path = [
        OrderStatus.DRAFT,
        OrderStatus.PENDING_CONFIRMATION,
        OrderStatus.CONFIRMED,
        OrderStatus.ANALYZING,
        OrderStatus.SITES_READY,
        OrderStatus.CLIENT_REVIEWING,
        OrderStatus.CLIENT_APPROVED,
        OrderStatus.INVOICED,
        OrderStatus.PAID,
        OrderStatus.IN_PROGRESS,
        OrderStatus.COMPLETED,
    ]
    for source, target in zip(path, path[1:]):
        transition = ORDER_STATE_MACHINE.get(source.value, target.value)
        assert transition is not None
        assert "internal" in transition.actors


def test_terminal_statuses_have_no_exits():
    assert ORDER_STATE_MACHINE.targets(OrderStatus.COMPLETED.value) == set()
    assert ORDER_STATE_MACHINE.targets(OrderStatus.CANCELLED.value) == set()


def test_only_internal_users_cancel():
    for status in OrderStatus:
        if status in (OrderStatus.COMPLETED, OrderStatus.CANCELLED):
            continue
        transition = ORDER_STATE_MACHINE.get(status.value, "cancelled")
        assert transition is not None
        assert transition.actors == frozenset({"internal"})


def test_every_status_has_a_default_state():
    assert set(DEFAULT_STATE_FOR_STATUS) == {status.value for status in OrderStatus}
