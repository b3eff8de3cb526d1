from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.api.v1 import health
from app.auth.jwt import create_session_token
from app.core.config import get_config
from app.core.dependencies import get_db_session
from app.main import create_app
from app.models import Base, BulkAnalysisDomain, PublisherOffering, User, Website

PREFIX = get_config().API_PREFIX


def _headers(user_id: int, user_type: str) -> dict:
    token = create_session_token(user_id=user_id, user_type=user_type, secret=get_config().JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


INTERNAL = _headers(1, "internal")
ACCOUNT = _headers(100, "account")
OTHER_ACCOUNT = _headers(200, "account")


@pytest.fixture
def api():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    with TestingSessionLocal() as seed:
        seed.add(User(id=1, email="ops@example.com", full_name="Ops User", user_type="internal"))
        seed.add(User(email="system@internal.local", full_name="System", user_type="internal"))
        seed.add(BulkAnalysisDomain(id=1, domain="www.techblog.io", qualification_status="high_quality", qualification_data={}))
        website = Website(domain="techblog.io", domain_rating=61, total_traffic=45000, pricing_strategy="min_price")
        seed.add(website)
        seed.flush()
        seed.add(PublisherOffering(website_id=website.id, publisher_id=300, base_price=20000))
        seed.commit()

    def _override_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app = create_app()
    app.dependency_overrides[get_db_session] = _override_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()
    engine.dispose()


def _create_order(client, link_count=2, price=None):
    response = client.post(
        f"{PREFIX}/orders",
        json={
            "groups": [
                {
                    "clientId": 10,
                    "linkCount": link_count,
                    "targetPages": ["https://client.example/landing"],
                    "estimatedPricePerLink": price,
                }
            ]
        },
        headers=ACCOUNT,
    )
    assert response.status_code == 201, response.text
    return response.json()


def test_health_endpoint_works(api, monkeypatch):
    monkeypatch.setattr(health, "verify_database_connection", lambda: True)
    response = api.get(f"{PREFIX}/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_requests_without_session_are_unauthorized(api):
    response = api.get(f"{PREFIX}/orders/1")
    assert response.status_code == 401
    assert "error" in response.json()


def test_create_and_fetch_order_uses_camel_case(api):
    order = _create_order(api, link_count=2, price=25000)

    assert order["status"] == "pending_confirmation"
    assert order["totalRetail"] == 50000
    assert len(order["lineItems"]) == 2
    assert order["groups"][0]["linkCount"] == 2

    fetched = api.get(f"{PREFIX}/orders/{order['id']}", headers=ACCOUNT)
    assert fetched.status_code == 200
    assert fetched.json()["id"] == order["id"]

    foreign = api.get(f"{PREFIX}/orders/{order['id']}", headers=OTHER_ACCOUNT)
    assert foreign.status_code == 403


def test_missing_order_returns_not_found(api):
    response = api.get(f"{PREFIX}/orders/999", headers=INTERNAL)
    assert response.status_code == 404
    assert response.json()["error"] == "Order not found: 999"


def test_invalid_body_returns_validation_error(api):
    response = api.post(f"{PREFIX}/orders", json={"groups": []}, headers=ACCOUNT)
    assert response.status_code == 422
    assert response.json()["error"] == "Invalid request body."


def test_resubmit_flow_and_invalid_state(api):
    order = _create_order(api)

    response = api.post(f"{PREFIX}/orders/{order['id']}/resubmit", json={"notes": "Updated targets"}, headers=ACCOUNT)
    assert response.status_code == 200, response.text
    body = response.json()
    assert body["resubmissionCount"] == 1
    assert body["benchmark"]["benchmarkType"] == "resubmission"

    cancel = api.post(f"{PREFIX}/orders/{order['id']}/transition", json={"status": "cancelled"}, headers=INTERNAL)
    assert cancel.status_code == 200

    again = api.post(f"{PREFIX}/orders/{order['id']}/resubmit", headers=ACCOUNT)
    assert again.status_code == 400


def test_assign_domain_and_conflict(api):
    order = _create_order(api, link_count=1)
    item_id = order["lineItems"][0]["id"]
    url = f"{PREFIX}/orders/{order['id']}/line-items/{item_id}/assign-domain"

    forbidden = api.post(url, json={"domainId": 1}, headers=ACCOUNT)
    assert forbidden.status_code == 403

    assigned = api.post(url, json={"domainId": 1}, headers=INTERNAL)
    assert assigned.status_code == 200, assigned.text
    line_item = assigned.json()["lineItem"]
    assert line_item["estimatedPrice"] == 27900
    assert line_item["wholesalePrice"] == 20000
    assert line_item["metadata"]["domainRating"] == 61

    conflict = api.post(url, json={"domainId": 1}, headers=INTERNAL)
    assert conflict.status_code == 409

    released = api.delete(url, headers=INTERNAL)
    assert released.status_code == 200
    assert released.json()["lineItem"]["assignedDomain"] is None


def test_line_item_crud_with_versions(api):
    order = _create_order(api, link_count=1, price=10000)
    base = f"{PREFIX}/orders/{order['id']}/line-items"

    added = api.post(base, json={"items": [{"clientId": 10, "estimatedPrice": 20000}]}, headers=ACCOUNT)
    assert added.status_code == 201, added.text
    new_id = added.json()["lineItems"][0]["id"]

    stale = api.patch(base, json={"updates": [{"id": new_id, "version": 7, "anchorText": "x"}]}, headers=ACCOUNT)
    assert stale.status_code == 409

    updated = api.patch(base, json={"updates": [{"id": new_id, "version": 1, "estimatedPrice": 22000}]}, headers=ACCOUNT)
    assert updated.status_code == 200
    assert updated.json()["lineItems"][0]["version"] == 2

    cancelled = api.request("DELETE", base, json={"lineItemIds": [new_id], "reason": "Not needed"}, headers=ACCOUNT)
    assert cancelled.status_code == 200

    listing = api.get(base, headers=ACCOUNT)
    summary = listing.json()["summary"]
    assert summary["total"] == 2
    assert summary["totalValue"] == 10000


def test_request_more_sites_endpoint(api):
    order = _create_order(api, link_count=3)
    group_id = order["groups"][0]["id"]
    url = f"{PREFIX}/orders/{order['id']}/groups/{group_id}/request-more-sites"

    response = api.post(url, json={"shortfallCount": 2, "requestedTotal": 3, "approvedCount": 1}, headers=ACCOUNT)
    assert response.status_code == 200, response.text
    assert response.json()["nextRound"] == 2
    assert response.json()["orderState"] == "analyzing"

    status = api.get(url, headers=ACCOUNT)
    assert status.json()["currentRound"] == 2
    assert status.json()["requestedLinks"] == 3


def test_benchmarks_and_outbox_endpoints(api):
    order = _create_order(api, link_count=1, price=15000)

    captured = api.post(f"{PREFIX}/orders/{order['id']}/benchmarks", json={"benchmarkType": "manual"}, headers=INTERNAL)
    assert captured.status_code == 201, captured.text
    assert captured.json()["version"] == 1

    listing = api.get(f"{PREFIX}/orders/{order['id']}/benchmarks", headers=ACCOUNT)
    assert listing.json()["latest"]["version"] == 1

    comparison = api.post(f"{PREFIX}/orders/{order['id']}/benchmarks/compare", headers=INTERNAL)
    assert comparison.json()["success"] is True

    assert api.get(f"{PREFIX}/internal/outbox/metrics", headers=ACCOUNT).status_code == 403
    processed = api.post(f"{PREFIX}/internal/outbox/process", headers=INTERNAL)
    assert processed.status_code == 200
    assert processed.json()["processed"] >= 1
