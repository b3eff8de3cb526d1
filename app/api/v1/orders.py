"""Order fulfillment routes: orders, negotiation, line items and benchmarks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.auth.session import SessionUser, ensure_order_access, require_internal
from app.core.dependencies import get_current_session, get_db_session
from app.core.exceptions import Forbidden
from app.schemas.common import ErrorResponse
from app.schemas.orders import (
    AssignDomainRequest,
    BenchmarkCreateRequest,
    BenchmarkResponse,
    LineItemListResponse,
    LineItemResponse,
    LineItemsCancelRequest,
    LineItemsCreateRequest,
    LineItemsMutationResponse,
    LineItemsUpdateRequest,
    OrderCreateRequest,
    OrderDetailResponse,
    ProposeSiteRequest,
    RequestMoreSitesRequest,
    RequestMoreSitesResponse,
    ResubmitRequest,
    ResubmitResponse,
    ReviewSubmissionRequest,
    SubmissionResponse,
    SuggestionStatusResponse,
    TotalsResponse,
    TransitionRequest,
    TransitionResponse,
)
from app.services.benchmark_service import BenchmarkService
from app.services.line_item_service import LineItemService
from app.services.negotiation_service import NegotiationService
from app.services.order_service import OrderService

router = APIRouter(
    prefix="/orders",
    tags=["orders"],
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
)


@router.post("", response_model=OrderDetailResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: OrderCreateRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    service = OrderService(db=db)
    order = service.create_order(
        session=session,
        groups=[group.model_dump() for group in payload.groups],
        account_id=payload.account_id,
        preferences=payload.preferences.model_dump() if payload.preferences else None,
        notes=payload.notes,
    )
    return service.get_order_for(order.id, session)


@router.get("/{order_id}", response_model=OrderDetailResponse)
def get_order(
    order_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return OrderService(db=db).get_order_for(order_id, session)


@router.post("/{order_id}/resubmit", response_model=ResubmitResponse)
def resubmit_order(
    order_id: int,
    payload: ResubmitRequest | None = None,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return OrderService(db=db).resubmit(order_id, session, notes=payload.notes if payload else None)


@router.post("/{order_id}/transition", response_model=TransitionResponse)
def transition_order(
    order_id: int,
    payload: TransitionRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    order = OrderService(db=db).transition(order_id, session, payload.status, notes=payload.notes)
    return {"success": True, "order": order}


@router.post("/{order_id}/recompute-totals", response_model=TotalsResponse)
def recompute_totals(
    order_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return OrderService(db=db).recompute_totals(order_id, session)


@router.get("/{order_id}/groups/{group_id}/request-more-sites", response_model=SuggestionStatusResponse)
def get_suggestion_status(
    order_id: int,
    group_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return NegotiationService(db=db).get_status(order_id, group_id, session)


@router.post("/{order_id}/groups/{group_id}/request-more-sites", response_model=RequestMoreSitesResponse)
def request_more_sites(
    order_id: int,
    group_id: int,
    payload: RequestMoreSitesRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return NegotiationService(db=db).request_more_sites(
        order_id,
        group_id,
        session,
        shortfall_count=payload.shortfall_count,
        rejection_reasons={key: value.model_dump() for key, value in payload.rejection_reasons.items()},
        approved_count=payload.approved_count,
        requested_total=payload.requested_total,
        general_feedback=payload.general_feedback,
    )


@router.post(
    "/{order_id}/groups/{group_id}/submissions",
    response_model=SubmissionResponse,
    status_code=status.HTTP_201_CREATED,
)
def propose_site(
    order_id: int,
    group_id: int,
    payload: ProposeSiteRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return NegotiationService(db=db).propose_site(
        order_id,
        group_id,
        session,
        domain_id=payload.domain_id,
        target_page_url=payload.target_page_url,
        anchor_text=payload.anchor_text,
    )


@router.post(
    "/{order_id}/groups/{group_id}/submissions/{submission_id}/review",
    response_model=SubmissionResponse,
)
def review_submission(
    order_id: int,
    group_id: int,
    submission_id: int,
    payload: ReviewSubmissionRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    return NegotiationService(db=db).review_submission(
        order_id,
        group_id,
        submission_id,
        session,
        decision=payload.decision,
        notes=payload.notes,
        reason=payload.reason,
        category=payload.category,
    )


@router.get("/{order_id}/line-items", response_model=LineItemListResponse)
def list_line_items(
    order_id: int,
    status_filter: str | None = Query(default=None, alias="status"),
    client_id: int | None = Query(default=None, alias="clientId"),
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    items, summary = LineItemService(db=db).list_line_items(
        order_id, session, status=status_filter, client_id=client_id
    )
    return {"lineItems": items, "summary": summary}


@router.post("/{order_id}/line-items", response_model=LineItemsMutationResponse, status_code=status.HTTP_201_CREATED)
def add_line_items(
    order_id: int,
    payload: LineItemsCreateRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    items = LineItemService(db=db).add_line_items(
        order_id,
        session,
        [item.model_dump() for item in payload.items],
        reason=payload.reason,
    )
    return {"success": True, "message": f"{len(items)} line items added", "lineItems": items}


@router.patch("/{order_id}/line-items", response_model=LineItemsMutationResponse)
def update_line_items(
    order_id: int,
    payload: LineItemsUpdateRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    items = LineItemService(db=db).update_line_items(
        order_id,
        session,
        [update.model_dump(exclude_unset=True) for update in payload.updates],
        reason=payload.reason,
    )
    return {"success": True, "message": f"{len(items)} line items updated", "lineItems": items}


@router.delete("/{order_id}/line-items", response_model=LineItemsMutationResponse)
def cancel_line_items(
    order_id: int,
    payload: LineItemsCancelRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    items = LineItemService(db=db).cancel_line_items(
        order_id,
        session,
        payload.line_item_ids,
        reason=payload.reason,
    )
    return {"success": True, "message": f"{len(items)} line items cancelled", "lineItems": items}


@router.post("/{order_id}/line-items/{line_item_id}/assign-domain")
def assign_domain(
    order_id: int,
    line_item_id: int,
    payload: AssignDomainRequest,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
) -> dict:
    item = LineItemService(db=db).assign_domain(
        order_id,
        line_item_id,
        payload.domain_id,
        session,
        submission_id=payload.submission_id,
    )
    return {
        "success": True,
        "message": f"Assigned {item.assigned_domain} to line item {item.id}",
        "lineItem": LineItemResponse.model_validate(item).model_dump(mode="json", by_alias=True),
    }


@router.delete("/{order_id}/line-items/{line_item_id}/assign-domain")
def unassign_domain(
    order_id: int,
    line_item_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
) -> dict:
    item = LineItemService(db=db).unassign_domain(order_id, line_item_id, session)
    return {
        "success": True,
        "message": f"Domain unassigned from line item {item.id}",
        "lineItem": LineItemResponse.model_validate(item).model_dump(mode="json", by_alias=True),
    }


@router.get("/{order_id}/benchmarks")
def list_benchmarks(
    order_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
) -> dict:
    service = BenchmarkService(db=db)
    order = service.get_order(order_id)
    ensure_order_access(session, order, order.line_items)
    latest = service.get_latest(order_id)
    history = service.get_history(order_id)
    return {
        "latest": BenchmarkResponse.model_validate(latest).model_dump(mode="json", by_alias=True) if latest else None,
        "history": [BenchmarkResponse.model_validate(row).model_dump(mode="json", by_alias=True) for row in history],
    }


@router.post("/{order_id}/benchmarks", response_model=BenchmarkResponse | None, status_code=status.HTTP_201_CREATED)
def create_benchmark(
    order_id: int,
    payload: BenchmarkCreateRequest | None = None,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
):
    service = BenchmarkService(db=db)
    order = service.get_order(order_id)
    if session.is_publisher:
        raise Forbidden("Publishers cannot capture benchmarks.")
    ensure_order_access(session, order)
    request = payload or BenchmarkCreateRequest()
    return service.create_benchmark(
        order_id=order_id,
        captured_by_user_id=session.user_id,
        benchmark_type=request.benchmark_type.value,
        actor_type=session.user_type,
        notes=request.notes,
    )


@router.post("/{order_id}/benchmarks/compare")
def compare_to_benchmark(
    order_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
) -> dict:
    service = BenchmarkService(db=db)
    order = service.get_order(order_id)
    ensure_order_access(session, order, order.line_items)
    comparison = service.compare_to_benchmark(order_id, compared_by=session.user_id)
    if comparison is None:
        return {"success": False, "message": "No benchmark captured for this order", "comparison": None}
    return {"success": True, "comparison": comparison}


@router.post("/{order_id}/benchmarks/{benchmark_id}/restore")
def restore_from_benchmark(
    order_id: int,
    benchmark_id: int,
    session: SessionUser = Depends(get_current_session),
    db: Session = Depends(get_db_session),
) -> dict:
    require_internal(session)
    result = BenchmarkService(db=db).restore_from_benchmark(order_id, benchmark_id, restored_by=session.user_id)
    return {"success": True, **result}
