from __future__ import annotations

import pytest

from app.core.enums import LineItemStatus, OrderStatus
from app.core.exceptions import (
    AlreadyAssigned,
    ConcurrentUpdate,
    ExternalDependencyDegraded,
    Forbidden,
    InvalidStateTransition,
    NotFound,
    ValidationError,
)
from app.models import LineItemChange, Order, OrderGroup, OrderLineItem, OrderSiteSubmission, OutboxEvent
from app.services.line_item_service import LineItemService


class _DegradedResolver:
    def get_website_price(self, website_id, domain, quantity=1, client_type="existing", urgency="standard"):
        raise ExternalDependencyDegraded("catalog offline")


def _first_item(order):
    return sorted(order.line_items, key=lambda item: item.display_order)[0]


def _add_submission(db_session, order, domain, assigned_to=None, status="client_approved", client_id=10):
    group = (
        db_session.query(OrderGroup)
        .filter(OrderGroup.order_id == order.id, OrderGroup.client_id == client_id)
        .first()
    )
    if group is None:
        group = OrderGroup(order_id=order.id, client_id=client_id, link_count=0, target_pages=[], suggestion_round=1)
        db_session.add(group)
        db_session.flush()
    submission = OrderSiteSubmission(
        order_group_id=group.id,
        domain_id=domain.id,
        submission_status=status,
        inclusion_status="included",
        assigned_to_line_item_id=assigned_to,
        submission_metadata={},
    )
    db_session.add(submission)
    db_session.commit()
    db_session.refresh(submission)
    return submission


def test_assign_domain_prices_from_catalog_and_matches_www(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain(domain="www.Example.com", website_domain="example.com", base_price=20000)
    item_id = _first_item(order).id

    item = LineItemService(db=db_session).assign_domain(order.id, item_id, domain.id, internal_user)

    assert item.assigned_domain == "www.Example.com"
    assert item.status == LineItemStatus.ASSIGNED.value
    assert item.wholesale_price == 20000
    assert item.estimated_price == 27900
    assert item.service_fee == 7900
    assert item.publisher_id == 300
    assert item.item_metadata["domainRating"] == 55
    assert item.item_metadata["pricingSource"] == "resolver"
    assert db_session.get(Order, order.id).total_retail == 27900
    events = db_session.query(OutboxEvent).filter(OutboxEvent.event_type == "notification.publisher.new_order").all()
    assert len(events) == 1


def test_second_assignment_is_rejected(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    first = seed_domain(domain="first.com", website_domain="first.com")
    second = seed_domain(domain="second.com", website_domain="second.com")
    item_id = _first_item(order).id
    service = LineItemService(db=db_session)

    service.assign_domain(order.id, item_id, first.id, internal_user)
    with pytest.raises(AlreadyAssigned):
        service.assign_domain(order.id, item_id, second.id, internal_user)

    assert db_session.get(OrderLineItem, item_id).assigned_domain == "first.com"


def test_assign_rejects_submission_held_by_another_item(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(None, None))
    domain = seed_domain()
    items = sorted(order.line_items, key=lambda item: item.display_order)
    submission = _add_submission(db_session, order, domain, assigned_to=items[0].id)

    with pytest.raises(AlreadyAssigned):
        LineItemService(db=db_session).assign_domain(
            order.id, items[1].id, domain.id, internal_user, submission_id=submission.id
        )

    assert db_session.get(OrderLineItem, items[1].id).assigned_domain_id is None


def test_assign_falls_back_to_guest_post_cost_when_resolver_degraded(
    db_session, seed_order, seed_domain, internal_user
):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain(base_price=None, guest_post_cost=15000)

    item = LineItemService(db=db_session, pricing_resolver=_DegradedResolver()).assign_domain(
        order.id, _first_item(order).id, domain.id, internal_user
    )

    assert item.wholesale_price == 15000
    assert item.estimated_price == 22900
    assert item.item_metadata["pricingSource"] == "fallback"


def test_assign_without_catalog_entry_leaves_item_unpriced(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain(domain="unknown.org", website_domain=None)

    item = LineItemService(db=db_session).assign_domain(order.id, _first_item(order).id, domain.id, internal_user)

    assert item.assigned_domain == "unknown.org"
    assert item.estimated_price is None
    assert item.item_metadata["pricingSource"] == "unpriced"
    assert db_session.get(Order, order.id).total_retail == 0


def test_assign_requires_internal_user(db_session, seed_order, seed_domain, account_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain()
    with pytest.raises(Forbidden):
        LineItemService(db=db_session).assign_domain(order.id, _first_item(order).id, domain.id, account_user)


def test_unassign_clears_assignment_and_submission(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain()
    item_id = _first_item(order).id
    submission = _add_submission(db_session, order, domain)
    service = LineItemService(db=db_session)
    service.assign_domain(order.id, item_id, domain.id, internal_user, submission_id=submission.id)
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id == item_id

    item = service.unassign_domain(order.id, item_id, internal_user)

    assert item.assigned_domain_id is None
    assert item.estimated_price is None
    assert item.status == LineItemStatus.PENDING.value
    assert "pricingSource" not in item.item_metadata
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id is None
    assert db_session.get(Order, order.id).total_retail == 0
    change_types = [change.change_type for change in db_session.query(LineItemChange).order_by(LineItemChange.id)]
    assert change_types == ["domain_assigned", "domain_unassigned"]


def test_unassign_of_unassigned_item_is_noop(db_session, seed_order, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    item_id = _first_item(order).id

    item = LineItemService(db=db_session).unassign_domain(order.id, item_id, internal_user)

    assert item.version == 1
    assert db_session.query(LineItemChange).count() == 0


def test_unassign_restores_pre_assignment_prices_and_metadata(db_session, seed_order, seed_domain, internal_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value, prices=(15000,))
    domain = seed_domain(base_price=20000)
    item_id = _first_item(order).id
    db_session.get(OrderLineItem, item_id).item_metadata = {"traffic": 500, "note": "client pick"}
    db_session.commit()
    service = LineItemService(db=db_session)

    assigned = service.assign_domain(order.id, item_id, domain.id, internal_user)
    assert assigned.estimated_price == 27900
    assert db_session.get(Order, order.id).total_retail == 27900

    item = service.unassign_domain(order.id, item_id, internal_user)

    assert item.estimated_price == 15000
    assert item.wholesale_price is None
    assert item.service_fee is None
    assert item.publisher_id is None
    assert item.status == LineItemStatus.PENDING.value
    assert item.item_metadata == {"traffic": 500, "note": "client pick"}
    assert db_session.get(Order, order.id).total_retail == 15000


@pytest.mark.parametrize(
    ("submitted_domain", "status", "client_id"),
    [
        ("other.com", "client_approved", 10),
        ("example.com", "client_rejected", 10),
        ("example.com", "client_approved", 11),
    ],
    ids=["different-domain", "rejected", "other-client-group"],
)
def test_assign_rejects_mismatched_submission(
    db_session, seed_order, seed_domain, internal_user, submitted_domain, status, client_id
):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain(domain="example.com", website_domain="example.com")
    if submitted_domain == "example.com":
        proposed = domain
    else:
        proposed = seed_domain(domain=submitted_domain, website_domain=submitted_domain)
    submission = _add_submission(db_session, order, proposed, status=status, client_id=client_id)
    item_id = _first_item(order).id

    with pytest.raises(ValidationError):
        LineItemService(db=db_session).assign_domain(
            order.id, item_id, domain.id, internal_user, submission_id=submission.id
        )

    assert db_session.get(OrderLineItem, item_id).assigned_domain_id is None
    assert db_session.get(OrderSiteSubmission, submission.id).assigned_to_line_item_id is None


def test_cancelling_through_update_shrinks_group_count(db_session, seed_order, account_user):
    order = seed_order(prices=(10000, 20000))
    first, _ = sorted(order.line_items, key=lambda item: item.display_order)
    group = db_session.query(OrderGroup).filter(OrderGroup.order_id == order.id).one()

    LineItemService(db=db_session).update_line_items(
        order.id, account_user, [{"id": first.id, "status": LineItemStatus.CANCELLED.value}]
    )

    db_session.refresh(group)
    assert group.link_count == 1
    assert db_session.get(Order, order.id).total_retail == 20000


def test_update_with_stale_version_is_rejected(db_session, seed_order, account_user):
    order = seed_order(prices=(10000,))
    item_id = _first_item(order).id

    with pytest.raises(ConcurrentUpdate):
        LineItemService(db=db_session).update_line_items(
            order.id, account_user, [{"id": item_id, "version": 5, "estimated_price": 12000}]
        )

    assert db_session.get(OrderLineItem, item_id).estimated_price == 10000


def test_price_update_bumps_version_and_recomputes_totals(db_session, seed_order, account_user):
    order = seed_order(prices=(10000,))
    item_id = _first_item(order).id

    updated = LineItemService(db=db_session).update_line_items(
        order.id, account_user, [{"id": item_id, "version": 1, "estimated_price": 12000}], reason="Budget change"
    )

    assert updated[0].version == 2
    assert db_session.get(Order, order.id).total_retail == 12000
    change = db_session.query(LineItemChange).one()
    assert change.previous_value == {"estimated_price": 10000}
    assert change.change_reason == "Budget change"


def test_metadata_only_update_leaves_totals_alone(db_session, seed_order, account_user):
    order = seed_order(prices=(10000,))
    item_id = _first_item(order).id
    stored = db_session.get(Order, order.id)
    stored.total_retail = 12345
    db_session.commit()

    LineItemService(db=db_session).update_line_items(
        order.id, account_user, [{"id": item_id, "metadata": {"note": "prefer tech blogs"}}]
    )

    assert db_session.get(Order, order.id).total_retail == 12345
    assert db_session.get(OrderLineItem, item_id).item_metadata == {"note": "prefer tech blogs"}


def test_account_cannot_set_wholesale_price(db_session, seed_order, account_user):
    order = seed_order(prices=(10000,))
    with pytest.raises(Forbidden):
        LineItemService(db=db_session).update_line_items(
            order.id, account_user, [{"id": _first_item(order).id, "wholesale_price": 500}]
        )


def test_wholesale_above_effective_price_is_rejected(db_session, seed_order, internal_user):
    order = seed_order(prices=(10000,))
    with pytest.raises(ValidationError):
        LineItemService(db=db_session).update_line_items(
            order.id, internal_user, [{"id": _first_item(order).id, "wholesale_price": 15000}]
        )


def test_unknown_item_rolls_back_whole_batch(db_session, seed_order, account_user):
    order = seed_order(prices=(10000,))
    item_id = _first_item(order).id

    with pytest.raises(NotFound):
        LineItemService(db=db_session).update_line_items(
            order.id,
            account_user,
            [{"id": item_id, "anchor_text": "new anchor"}, {"id": 9999, "anchor_text": "ghost"}],
        )

    assert db_session.get(OrderLineItem, item_id).anchor_text is None
    assert db_session.query(LineItemChange).count() == 0


def test_account_edits_locked_once_paid(db_session, seed_order, account_user):
    order = seed_order(status=OrderStatus.PAID.value, prices=(10000,))
    with pytest.raises(InvalidStateTransition) as exc:
        LineItemService(db=db_session).add_line_items(order.id, account_user, [{"client_id": 10}])
    assert "payment" in exc.value.message


def test_internal_user_can_still_edit_paid_order(db_session, seed_order, internal_user):
    order = seed_order(status=OrderStatus.PAID.value, prices=(10000,))
    created = LineItemService(db=db_session).add_line_items(order.id, internal_user, [{"client_id": 10}])
    assert len(created) == 1


def test_publisher_cannot_edit_line_items(db_session, seed_order, seed_domain, internal_user, publisher_user):
    order = seed_order(status=OrderStatus.CONFIRMED.value)
    domain = seed_domain()
    LineItemService(db=db_session).assign_domain(order.id, _first_item(order).id, domain.id, internal_user)

    with pytest.raises(Forbidden):
        LineItemService(db=db_session).add_line_items(order.id, publisher_user, [{"client_id": 10}])


def test_other_account_cannot_list_items(db_session, seed_order, other_account_user):
    order = seed_order()
    with pytest.raises(Forbidden):
        LineItemService(db=db_session).list_line_items(order.id, other_account_user)


def test_add_and_cancel_keep_group_counts_in_sync(db_session, seed_order, account_user):
    order = seed_order(status=OrderStatus.DRAFT.value, prices=(10000,))
    service = LineItemService(db=db_session)

    created = service.add_line_items(
        order.id,
        account_user,
        [
            {"client_id": 10, "target_page_url": "https://client.example/pricing", "estimated_price": 20000},
            {"client_id": 11, "estimated_price": 5000},
        ],
    )
    assert {item.status for item in created} == {LineItemStatus.DRAFT.value}
    groups = {group.client_id: group for group in db_session.query(OrderGroup).filter(OrderGroup.order_id == order.id)}
    assert groups[10].link_count == 2
    assert groups[11].link_count == 1
    assert db_session.get(Order, order.id).total_retail == 35000

    service.cancel_line_items(order.id, account_user, [created[1].id], reason="Client dropped")

    groups = {group.client_id: group for group in db_session.query(OrderGroup).filter(OrderGroup.order_id == order.id)}
    assert groups[11].link_count == 0
    assert db_session.get(Order, order.id).total_retail == 30000
    assert db_session.get(OrderLineItem, created[1].id).cancellation_reason == "Client dropped"


def test_list_line_items_summary(db_session, seed_order, account_user):
    order = seed_order(prices=(10000, 20000, None))

    items, summary = LineItemService(db=db_session).list_line_items(order.id, account_user)

    assert len(items) == 3
    assert summary["total"] == 3
    assert summary["totalValue"] == 30000
    assert summary["pendingCount"] == 3
    assert summary["byClient"] == {"10": 3}
