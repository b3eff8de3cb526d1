"""Order, negotiation, line item and benchmark request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, Field

from app.core.enums import BenchmarkType
from app.schemas.common import CamelModel


class OrderPreferences(CamelModel):
    preferences_dr_min: int | None = Field(default=None, ge=0, le=100)
    preferences_dr_max: int | None = Field(default=None, ge=0, le=100)
    preferences_traffic_min: int | None = Field(default=None, ge=0)
    estimated_budget_min: int | None = Field(default=None, ge=0)
    estimated_budget_max: int | None = Field(default=None, ge=0)


class OrderGroupRequest(CamelModel):
    client_id: int = Field(ge=1)
    link_count: int = Field(ge=1, le=500)
    target_pages: list[str] = Field(default_factory=list)
    anchor_text: str | None = Field(default=None, max_length=500)
    estimated_price_per_link: int | None = Field(default=None, ge=0)


class OrderCreateRequest(CamelModel):
    account_id: int | None = Field(default=None, ge=1)
    groups: list[OrderGroupRequest] = Field(min_length=1)
    preferences: OrderPreferences | None = None
    notes: str | None = Field(default=None, max_length=10000)


class ResubmitRequest(CamelModel):
    notes: str | None = Field(default=None, max_length=10000)


class TransitionRequest(CamelModel):
    status: str = Field(min_length=2, max_length=32)
    notes: str | None = Field(default=None, max_length=10000)


class RejectionReason(CamelModel):
    reason: str = Field(min_length=1, max_length=2000)
    category: str | None = Field(default=None, max_length=64)


class RequestMoreSitesRequest(CamelModel):
    shortfall_count: int = Field(ge=0)
    rejection_reasons: dict[int, RejectionReason] = Field(default_factory=dict)
    requested_total: int = Field(default=0, ge=0)
    approved_count: int = Field(default=0, ge=0)
    general_feedback: str | None = Field(default=None, max_length=10000)


class ProposeSiteRequest(CamelModel):
    domain_id: int = Field(ge=1)
    target_page_url: str | None = Field(default=None, max_length=2048)
    anchor_text: str | None = Field(default=None, max_length=500)


class ReviewSubmissionRequest(CamelModel):
    decision: Literal["approve", "reject"]
    notes: str | None = Field(default=None, max_length=10000)
    reason: str | None = Field(default=None, max_length=2000)
    category: str | None = Field(default=None, max_length=64)


class LineItemCreate(CamelModel):
    client_id: int = Field(ge=1)
    target_page_url: str | None = Field(default=None, max_length=2048)
    anchor_text: str | None = Field(default=None, max_length=500)
    estimated_price: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)


class LineItemsCreateRequest(CamelModel):
    items: list[LineItemCreate] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class LineItemUpdate(CamelModel):
    id: int = Field(ge=1)
    version: int | None = Field(default=None, ge=1)
    status: str | None = None
    client_id: int | None = Field(default=None, ge=1)
    target_page_url: str | None = Field(default=None, max_length=2048)
    anchor_text: str | None = Field(default=None, max_length=500)
    estimated_price: int | None = Field(default=None, ge=0)
    wholesale_price: int | None = Field(default=None, ge=0)
    approved_price: int | None = Field(default=None, ge=0)
    metadata: dict[str, Any] | None = None
    reason: str | None = Field(default=None, max_length=2000)


class LineItemsUpdateRequest(CamelModel):
    updates: list[LineItemUpdate] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class LineItemsCancelRequest(CamelModel):
    line_item_ids: list[int] = Field(min_length=1)
    reason: str | None = Field(default=None, max_length=2000)


class AssignDomainRequest(CamelModel):
    domain_id: int = Field(ge=1)
    submission_id: int | None = Field(default=None, ge=1)


class BenchmarkCreateRequest(CamelModel):
    benchmark_type: BenchmarkType = BenchmarkType.MANUAL
    notes: str | None = Field(default=None, max_length=10000)


class LineItemResponse(CamelModel):
    id: int
    order_id: int
    client_id: int
    target_page_url: str | None = None
    anchor_text: str | None = None
    status: str
    assigned_domain_id: int | None = None
    assigned_domain: str | None = None
    assigned_at: datetime | None = None
    publisher_id: int | None = None
    wholesale_price: int | None = None
    estimated_price: int | None = None
    approved_price: int | None = None
    service_fee: int | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("item_metadata", "metadata"),
    )
    display_order: int
    version: int
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None


class OrderGroupResponse(CamelModel):
    id: int
    client_id: int
    link_count: int
    target_pages: list[dict[str, Any]] = Field(default_factory=list)
    requirement_overrides: dict[str, Any] = Field(default_factory=dict)
    suggestion_round: int


class OrderResponse(CamelModel):
    id: int
    account_id: int
    status: str
    state: str
    resubmission_count: int
    subtotal_retail: int
    total_retail: int
    total_wholesale: int
    profit_margin: int
    estimated_price_per_link: int | None = None
    estimated_links_count: int | None = None
    submitted_at: datetime | None = None
    confirmed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    last_resubmitted_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class OrderDetailResponse(OrderResponse):
    groups: list[OrderGroupResponse] = Field(default_factory=list)
    line_items: list[LineItemResponse] = Field(default_factory=list)


class SubmissionResponse(CamelModel):
    id: int
    order_group_id: int
    domain_id: int
    submission_status: str
    inclusion_status: str
    exclusion_reason: str | None = None
    client_review_notes: str | None = None
    client_reviewed_at: datetime | None = None
    wholesale_price_snapshot: int | None = None
    retail_price_snapshot: int | None = None
    assigned_to_line_item_id: int | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("submission_metadata", "metadata"),
    )


class BenchmarkResponse(CamelModel):
    id: int
    order_id: int
    captured_by: int
    benchmark_type: str
    version: int
    is_latest: bool
    benchmark_data: dict[str, Any]
    notes: str | None = None
    created_at: datetime | None = None


class TotalsResponse(CamelModel):
    subtotal_retail: int
    total_retail: int
    total_wholesale: int
    profit_margin: int
    estimated_price_per_link: int | None = None
    priced_item_count: int


class ResubmitResponse(CamelModel):
    success: bool = True
    order: OrderResponse
    resubmission_count: int
    benchmark: BenchmarkResponse | None = None


class TransitionResponse(CamelModel):
    success: bool = True
    order: OrderResponse


class RequestMoreSitesResponse(CamelModel):
    success: bool = True
    message: str
    next_round: int
    order_state: str


class SuggestionStatusResponse(CamelModel):
    requested_links: int
    total_suggestions: int
    approved_count: int
    rejected_count: int
    shortfall: int
    suggestion_rounds: list[dict[str, Any]] = Field(default_factory=list)
    current_round: int


class LineItemListResponse(CamelModel):
    line_items: list[LineItemResponse]
    summary: dict[str, Any]


class LineItemsMutationResponse(CamelModel):
    success: bool = True
    message: str
    line_items: list[LineItemResponse] = Field(default_factory=list)
