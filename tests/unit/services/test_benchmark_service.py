from __future__ import annotations

import pytest

from app.core.enums import LineItemStatus, OrderStatus
from app.core.exceptions import AlreadyAssigned, NotFound, ValidationError
from app.models import (
    BenchmarkComparison,
    LineItemChange,
    Order,
    OrderBenchmark,
    OrderGroup,
    OrderLineItem,
    OrderSiteSubmission,
)
from app.services.benchmark_service import BenchmarkService
from app.services.line_item_service import LineItemService


def _items(order):
    return sorted(order.line_items, key=lambda item: item.display_order)


def _approved_submission(db_session, order, domain):
    group = db_session.query(OrderGroup).filter(OrderGroup.order_id == order.id).first()
    submission = OrderSiteSubmission(
        order_group_id=group.id,
        domain_id=domain.id,
        submission_status="client_approved",
        inclusion_status="included",
        submission_metadata={},
    )
    db_session.add(submission)
    db_session.commit()
    db_session.refresh(submission)
    return submission


def test_benchmarks_are_versioned_with_single_latest(db_session, seed_order):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(10000, 20000))
    service = BenchmarkService(db=db_session)

    first = service.create_benchmark(order.id, captured_by_user_id=1, benchmark_type="initial")
    second = service.create_benchmark(order.id, captured_by_user_id=1, notes="after edits")

    assert (first.version, second.version) == (1, 2)
    history = service.get_history(order.id)
    assert [row.version for row in history] == [2, 1]
    assert [row.is_latest for row in history] == [True, False]
    assert service.get_latest(order.id).id == second.id
    assert db_session.query(OrderBenchmark).filter(OrderBenchmark.is_latest.is_(True)).count() == 1


def test_snapshot_captures_line_items_and_summary(db_session, seed_order):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(10000, None))

    benchmark = BenchmarkService(db=db_session).create_benchmark(order.id, captured_by_user_id=1)

    data = benchmark.benchmark_data
    assert data["order"]["status"] == OrderStatus.CONFIRMED.value
    assert len(data["lineItems"]) == 2
    assert data["lineItems"][0]["estimatedPrice"] == 10000
    assert data["summary"]["totalLinks"] == 2
    assert data["summary"]["totalClients"] == 1


def test_account_capture_uses_system_user(db_session, seed_order, system_user):
    order = seed_order()
    benchmark = BenchmarkService(db=db_session).create_benchmark(
        order.id, captured_by_user_id=100, actor_type="account"
    )
    assert benchmark.captured_by == system_user.id


def test_account_capture_without_system_user_is_skipped(db_session, seed_order):
    order = seed_order()
    benchmark = BenchmarkService(db=db_session).create_benchmark(
        order.id, captured_by_user_id=100, actor_type="account"
    )
    assert benchmark is None
    assert db_session.query(OrderBenchmark).count() == 0


def test_unknown_benchmark_type_is_rejected(db_session, seed_order):
    order = seed_order()
    with pytest.raises(ValidationError):
        BenchmarkService(db=db_session).create_benchmark(order.id, captured_by_user_id=1, benchmark_type="weekly")


def test_compare_reports_swaps_price_changes_and_removals(db_session, seed_order):
    order = seed_order(status=OrderStatus.IN_PROGRESS.value, prices=(10000, 20000, 30000))
    first, second, third = _items(order)
    first.assigned_domain = "alpha.com"
    db_session.commit()
    service = BenchmarkService(db=db_session)
    stored = db_session.get(Order, order.id)
    stored.total_retail = 60000
    db_session.commit()
    service.create_benchmark(order.id, captured_by_user_id=1, benchmark_type="initial")

    first = db_session.get(OrderLineItem, first.id)
    first.assigned_domain = "beta.com"
    first.status = LineItemStatus.DELIVERED.value
    db_session.get(OrderLineItem, second.id).approved_price = 25000
    db_session.get(OrderLineItem, third.id).status = LineItemStatus.CANCELLED.value
    db_session.get(Order, order.id).total_retail = 35000
    db_session.commit()

    comparison = service.compare_to_benchmark(order.id, compared_by=1)

    assert comparison["domainSwaps"] == [{"lineItemId": first.id, "from": "alpha.com", "to": "beta.com"}]
    assert comparison["priceChanges"] == [{"lineItemId": second.id, "from": 20000, "to": 25000, "delta": 5000}]
    assert [row["lineItemId"] for row in comparison["removed"]] == [third.id]
    assert comparison["added"] == []
    assert comparison["expectedRevenue"] == 60000
    assert comparison["revenueDifference"] == -25000
    assert comparison["deliveredLinks"] == 1
    assert comparison["completionPercentage"] == 33
    assert {issue["type"] for issue in comparison["issues"]} == {"missing", "substitution"}
    assert db_session.query(BenchmarkComparison).count() == 1


def test_compare_without_benchmark_returns_none(db_session, seed_order):
    order = seed_order()
    assert BenchmarkService(db=db_session).compare_to_benchmark(order.id) is None


def test_restore_rewrites_items_and_cancels_newcomers(db_session, seed_order):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(10000, 20000))
    first, second = _items(order)
    service = BenchmarkService(db=db_session)
    benchmark = service.create_benchmark(order.id, captured_by_user_id=1)

    db_session.get(OrderLineItem, first.id).estimated_price = 99000
    db_session.get(OrderLineItem, second.id).status = LineItemStatus.CANCELLED.value
    newcomer = OrderLineItem(
        order_id=order.id,
        client_id=10,
        status=LineItemStatus.PENDING.value,
        estimated_price=5000,
        item_metadata={},
        display_order=2,
        version=1,
    )
    db_session.add(newcomer)
    db_session.commit()

    result = service.restore_from_benchmark(order.id, benchmark.id, restored_by=1)

    assert result["restoredCount"] == 2
    assert result["cancelledCount"] == 1
    assert result["totals"]["total_retail"] == 30000
    assert db_session.get(OrderLineItem, first.id).estimated_price == 10000
    assert db_session.get(OrderLineItem, second.id).status == LineItemStatus.PENDING.value
    assert db_session.get(OrderLineItem, newcomer.id).status == LineItemStatus.CANCELLED.value
    batch_ids = {change.batch_id for change in db_session.query(LineItemChange).all()}
    assert batch_ids == {result["batchId"]}


def test_restore_unknown_benchmark_raises(db_session, seed_order):
    order = seed_order()
    with pytest.raises(NotFound):
        BenchmarkService(db=db_session).restore_from_benchmark(order.id, 12345, restored_by=1)


def test_restore_repoints_submission_at_restored_assignment(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(None, None))
    first, second = _items(order)
    domain = seed_domain()
    submission = _approved_submission(db_session, order, domain)
    line_items = LineItemService(db=db_session)
    line_items.assign_domain(order.id, first.id, domain.id, internal_user, submission_id=submission.id)
    service = BenchmarkService(db=db_session)
    benchmark = service.create_benchmark(order.id, captured_by_user_id=1)

    line_items.unassign_domain(order.id, first.id, internal_user)
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id is None
    service.restore_from_benchmark(order.id, benchmark.id, restored_by=1)

    assert db_session.get(OrderLineItem, first.id).assigned_domain_id == domain.id
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id == first.id
    with pytest.raises(AlreadyAssigned):
        line_items.assign_domain(order.id, second.id, domain.id, internal_user, submission_id=submission.id)
    assert db_session.get(OrderLineItem, second.id).assigned_domain_id is None


def test_restore_releases_submission_when_item_returns_unassigned(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(None, None))
    first, _ = _items(order)
    domain = seed_domain()
    submission = _approved_submission(db_session, order, domain)
    service = BenchmarkService(db=db_session)
    benchmark = service.create_benchmark(order.id, captured_by_user_id=1)
    LineItemService(db=db_session).assign_domain(
        order.id, first.id, domain.id, internal_user, submission_id=submission.id
    )

    service.restore_from_benchmark(order.id, benchmark.id, restored_by=1)

    assert db_session.get(OrderLineItem, first.id).assigned_domain_id is None
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id is None
