from __future__ import annotations

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.auth.session import SessionUser
from app.core.enums import LineItemStatus, OrderStatus
from app.models import (
    Base,
    BulkAnalysisDomain,
    Order,
    OrderGroup,
    OrderLineItem,
    PublisherOffering,
    User,
    Website,
)
from app.orchestration.state_machine import DEFAULT_STATE_FOR_STATUS

ACCOUNT_ID = 100
OTHER_ACCOUNT_ID = 200
PUBLISHER_ID = 300


@pytest.fixture
def db_session():
    engine = create_engine("sqlite:///:memory:")
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    session.add(User(id=1, email="ops@example.com", full_name="Ops User", user_type="internal"))
    session.commit()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def internal_user():
    return SessionUser(user_id=1, user_type="internal", email="ops@example.com")


@pytest.fixture
def account_user():
    return SessionUser(user_id=ACCOUNT_ID, user_type="account", email="buyer@example.com")


@pytest.fixture
def other_account_user():
    return SessionUser(user_id=OTHER_ACCOUNT_ID, user_type="account", email="other@example.com")


@pytest.fixture
def publisher_user():
    return SessionUser(user_id=PUBLISHER_ID, user_type="publisher", email="pub@example.com")


@pytest.fixture
def system_user(db_session):
    user = User(email="system@internal.local", full_name="System", user_type="internal")
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def seed_order(db_session):
    """Factory creating an order with one group and one line item per price."""

    def _seed(
        status: str = OrderStatus.PENDING_CONFIRMATION.value,
        prices=(None,),
        client_id: int = 10,
        account_id: int = ACCOUNT_ID,
        internal_notes: str | None = None,
    ) -> Order:
        order = Order(
            account_id=account_id,
            status=status,
            state=DEFAULT_STATE_FOR_STATUS[status],
            internal_notes=internal_notes,
        )
        db_session.add(order)
        db_session.flush()
        db_session.add(
            OrderGroup(
                order_id=order.id,
                client_id=client_id,
                link_count=len(prices),
                target_pages=[],
                requirement_overrides={},
                suggestion_round=1,
            )
        )
        for index, price in enumerate(prices):
            db_session.add(
                OrderLineItem(
                    order_id=order.id,
                    client_id=client_id,
                    target_page_url="https://client.example/landing",
                    status=LineItemStatus.PENDING.value,
                    estimated_price=price,
                    item_metadata={},
                    display_order=index,
                    version=1,
                )
            )
        db_session.commit()
        db_session.refresh(order)
        return order

    return _seed


@pytest.fixture
def seed_domain(db_session):
    """Factory creating a qualified domain with an optional catalog website and offering."""

    def _seed(
        domain: str = "example.com",
        website_domain: str | None = "example.com",
        base_price: int | None = 20000,
        guest_post_cost: int | None = None,
        domain_rating: int | None = 55,
        total_traffic: int | None = 12000,
    ) -> BulkAnalysisDomain:
        qualified = BulkAnalysisDomain(
            domain=domain,
            client_id=10,
            qualification_status="high_quality",
            qualification_data={"topicalFit": "strong"},
        )
        db_session.add(qualified)
        if website_domain is not None:
            website = Website(
                domain=website_domain,
                domain_rating=domain_rating,
                total_traffic=total_traffic,
                guest_post_cost=guest_post_cost,
                pricing_strategy="min_price",
            )
            db_session.add(website)
            db_session.flush()
            if base_price is not None:
                db_session.add(
                    PublisherOffering(
                        website_id=website.id,
                        publisher_id=PUBLISHER_ID,
                        offering_type="guest_post",
                        base_price=base_price,
                        is_active=True,
                        current_availability="available",
                    )
                )
        db_session.commit()
        db_session.refresh(qualified)
        return qualified

    return _seed
