"""Site submission negotiation: proposals, client review and suggestion rounds."""

from __future__ import annotations

import copy
import logging
from typing import Any

from app.auth.session import SessionUser, ensure_order_access, require_internal
from app.core.enums import (
    TERMINAL_ORDER_STATUSES,
    InclusionStatus,
    OrderState,
    OrderStatus,
    SubmissionStatus,
)
from app.core.exceptions import Forbidden, InvalidStateTransition, NotFound, ValidationError
from app.models import BulkAnalysisDomain, Order, OrderGroup, OrderSiteSubmission, OrderStatusHistory
from app.services.base_service import BaseService, utcnow
from app.services.outbox_service import OutboxService
from app.services.pricing_service import PricingResolver, find_website, get_pricing_resolver, price_with_fallback

logger = logging.getLogger(__name__)

REVIEW_DECISIONS = {"approve", "reject"}


def _non_negative(name: str, value: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer.", {"field": name})


class NegotiationService(BaseService):
    """Proposal/approval/rejection rounds per order group.

    A group's round starts at 1 and only ``request_more_sites`` advances it.
    Rejection reasons are stored on the submission they describe.
    """

    def __init__(self, db=None, config=None, pricing_resolver: PricingResolver | None = None) -> None:
        super().__init__(db=db, config=config)
        self._pricing_resolver = pricing_resolver

    @property
    def pricing_resolver(self) -> PricingResolver:
        if self._pricing_resolver is None:
            self._pricing_resolver = get_pricing_resolver(self.db, self.config)
        return self._pricing_resolver

    def get_group(self, order_id: int, group_id: int) -> OrderGroup:
        group = (
            self.db.query(OrderGroup)
            .filter(OrderGroup.id == group_id, OrderGroup.order_id == order_id)
            .first()
        )
        if group is None:
            raise NotFound(f"Order group not found: {group_id}")
        return group

    def _get_submission(self, group: OrderGroup, submission_id: int) -> OrderSiteSubmission:
        submission = (
            self.db.query(OrderSiteSubmission)
            .filter(OrderSiteSubmission.id == submission_id, OrderSiteSubmission.order_group_id == group.id)
            .first()
        )
        if submission is None:
            raise NotFound(f"Submission not found in group {group.id}: {submission_id}")
        return submission

    def _ensure_reviewer(self, session: SessionUser, order: Order) -> None:
        if session.is_publisher:
            raise Forbidden("Publishers cannot review site suggestions.")
        ensure_order_access(session, order)

    def get_status(self, order_id: int, group_id: int, session: SessionUser | None = None) -> dict[str, Any]:
        order = self.get_order(order_id)
        if session is not None:
            ensure_order_access(session, order, order.line_items)
        group = self.get_group(order_id, group_id)
        submissions = self.db.query(OrderSiteSubmission).filter(OrderSiteSubmission.order_group_id == group.id).all()

        approved = sum(1 for sub in submissions if sub.submission_status == SubmissionStatus.CLIENT_APPROVED.value)
        rejected = sum(1 for sub in submissions if sub.submission_status == SubmissionStatus.CLIENT_REJECTED.value)
        requested = group.link_count or 0
        return {
            "requestedLinks": requested,
            "totalSuggestions": len(submissions),
            "approvedCount": approved,
            "rejectedCount": rejected,
            "shortfall": max(0, requested - approved),
            "suggestionRounds": copy.deepcopy((group.requirement_overrides or {}).get("suggestionRounds", [])),
            "currentRound": group.suggestion_round or 1,
        }

    def _store_rejection(self, submission: OrderSiteSubmission, reason: dict[str, Any], round_number: int) -> None:
        metadata = copy.deepcopy(submission.submission_metadata or {})
        metadata["rejectionReason"] = reason.get("reason")
        metadata["feedbackRound"] = round_number
        if reason.get("category") is not None:
            metadata["rejectionCategory"] = reason["category"]
        submission.submission_metadata = metadata
        submission.submission_status = SubmissionStatus.CLIENT_REJECTED.value
        submission.client_reviewed_at = utcnow()

    def request_more_sites(
        self,
        order_id: int,
        group_id: int,
        session: SessionUser,
        shortfall_count: int,
        rejection_reasons: dict[int, dict[str, Any]] | None = None,
        approved_count: int = 0,
        requested_total: int = 0,
        general_feedback: str | None = None,
    ) -> dict[str, Any]:
        """Record a suggestion round and send the order back to analysis.

        Valid at any order status. Everything happens in one transaction: the
        round entry, the per-submission reasons, the group round counter and
        the order status either all land or none do.
        """
        _non_negative("shortfallCount", shortfall_count)
        _non_negative("approvedCount", approved_count)
        _non_negative("requestedTotal", requested_total)

        with self.transaction():
            order = self.get_order(order_id, for_update=True)
            self._ensure_reviewer(session, order)
            group = self.get_group(order_id, group_id)
            round_number = group.suggestion_round or 1

            overrides = copy.deepcopy(group.requirement_overrides or {})
            rounds = list(overrides.get("suggestionRounds", []))
            rounds.append(
                {
                    "round": round_number,
                    "timestamp": utcnow().isoformat(),
                    "requestedTotal": requested_total,
                    "approvedCount": approved_count,
                    "shortfallCount": shortfall_count,
                    "requestedBy": session.user_id,
                    "generalFeedback": general_feedback,
                }
            )
            overrides["suggestionRounds"] = rounds
            overrides["needsMoreSuggestions"] = True
            overrides["totalRequestedLinks"] = requested_total
            overrides["totalApprovedLinks"] = approved_count
            group.requirement_overrides = overrides
            group.suggestion_round = round_number + 1

            for submission_id, reason in (rejection_reasons or {}).items():
                submission = self._get_submission(group, int(submission_id))
                self._store_rejection(submission, reason or {}, round_number)

            old_status = order.status
            order.status = OrderStatus.ANALYZING.value
            order.state = OrderState.ANALYZING.value
            if old_status != order.status:
                self.db.add(
                    OrderStatusHistory(
                        order_id=order.id,
                        old_status=old_status,
                        new_status=order.status,
                        changed_by=session.user_id,
                        notes=f"More sites requested (round {round_number})",
                    )
                )
            OutboxService(db=self.db, config=self.config).record(
                "notification.internal.more_sites_requested",
                {
                    "orderId": order.id,
                    "groupId": group.id,
                    "round": round_number,
                    "shortfallCount": shortfall_count,
                },
            )
            self.db.flush()

        logger.info(
            "negotiation.more_sites.requested",
            extra={
                "event": "negotiation.more_sites.requested",
                "order_id": order_id,
                "group_id": group_id,
                "round": round_number,
            },
        )
        return {
            "success": True,
            "message": f"Requested {shortfall_count} more sites for round {round_number + 1}",
            "nextRound": round_number + 1,
            "orderState": order.state,
        }

    def propose_site(
        self,
        order_id: int,
        group_id: int,
        session: SessionUser,
        domain_id: int,
        target_page_url: str | None = None,
        anchor_text: str | None = None,
    ) -> OrderSiteSubmission:
        require_internal(session)
        with self.transaction():
            order = self.get_order(order_id)
            if order.status in TERMINAL_ORDER_STATUSES:
                raise InvalidStateTransition(f"Cannot propose sites in status: '{order.status}'")
            group = self.get_group(order_id, group_id)
            domain = self.db.get(BulkAnalysisDomain, domain_id)
            if domain is None:
                raise NotFound(f"Domain not found: {domain_id}")

            duplicate = (
                self.db.query(OrderSiteSubmission)
                .filter(
                    OrderSiteSubmission.order_group_id == group.id,
                    OrderSiteSubmission.domain_id == domain_id,
                    OrderSiteSubmission.submission_status != SubmissionStatus.CLIENT_REJECTED.value,
                )
                .first()
            )
            if duplicate is not None:
                raise ValidationError(
                    f"Domain {domain.domain} is already proposed for this group.",
                    {"submissionId": duplicate.id},
                )

            website = find_website(self.db, domain.domain)
            price, pricing_source = price_with_fallback(
                self.pricing_resolver, website, domain.domain, self.config.SERVICE_FEE_CENTS
            )
            submission = OrderSiteSubmission(
                order_group_id=group.id,
                domain_id=domain.id,
                submission_status=SubmissionStatus.PENDING.value,
                inclusion_status=InclusionStatus.INCLUDED.value,
                wholesale_price_snapshot=price.wholesale_price if price else None,
                retail_price_snapshot=price.retail_price if price else None,
                submission_metadata={
                    "domain": domain.domain,
                    "targetPageUrl": target_page_url,
                    "anchorText": anchor_text,
                    "suggestedInRound": group.suggestion_round or 1,
                    "dr": website.domain_rating if website is not None else None,
                    "traffic": website.total_traffic if website is not None else None,
                    "pricingSource": pricing_source,
                },
            )
            self.db.add(submission)
            self.db.flush()

        logger.info(
            "negotiation.site.proposed",
            extra={
                "event": "negotiation.site.proposed",
                "order_id": order_id,
                "group_id": group_id,
                "submission_id": submission.id,
            },
        )
        return submission

    def review_submission(
        self,
        order_id: int,
        group_id: int,
        submission_id: int,
        session: SessionUser,
        decision: str,
        notes: str | None = None,
        reason: str | None = None,
        category: str | None = None,
    ) -> OrderSiteSubmission:
        if decision not in REVIEW_DECISIONS:
            raise ValidationError(f"Unknown review decision: {decision}", {"allowed": sorted(REVIEW_DECISIONS)})

        with self.transaction():
            order = self.get_order(order_id)
            self._ensure_reviewer(session, order)
            if order.status in TERMINAL_ORDER_STATUSES:
                raise InvalidStateTransition(f"Cannot review sites in status: '{order.status}'")
            group = self.get_group(order_id, group_id)
            submission = self._get_submission(group, submission_id)

            if decision == "approve":
                submission.submission_status = SubmissionStatus.CLIENT_APPROVED.value
                submission.inclusion_status = InclusionStatus.INCLUDED.value
                submission.exclusion_reason = None
                submission.client_reviewed_at = utcnow()
            else:
                self._store_rejection(
                    submission,
                    {"reason": reason, "category": category},
                    group.suggestion_round or 1,
                )
                submission.inclusion_status = InclusionStatus.EXCLUDED.value
                submission.exclusion_reason = reason
            submission.client_review_notes = notes
            self.db.flush()

        logger.info(
            "negotiation.submission.reviewed",
            extra={
                "event": "negotiation.submission.reviewed",
                "order_id": order_id,
                "submission_id": submission_id,
            },
        )
        return submission
