"""
Request status graph.

Holds the forward transitions, the hold and cancel edges, and the rules that decide
where a request goes once its reviews are complete.
"""

from typing import Optional, get_args

from src.core.review_requests.errors import UnknownRequestStatusError
from src.core.review_requests.models import (
    TERMINAL_STATUSES,
    CompletionOutcome,
    RequestStatus,
    ReviewOutcome,
    ReviewRequest,
    ReviewStatus,
)

ALL_STATUSES: tuple[RequestStatus, ...] = get_args(RequestStatus)

HOLDABLE_STATUSES = {
    status for status in ALL_STATUSES if status not in TERMINAL_STATUSES and status != "ON_HOLD"
}

_FORWARD_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    "DRAFT": {"LEGAL_INTAKE"},
    "LEGAL_INTAKE": {"ASSIGN_ATTORNEY", "IN_REVIEW"},
    "ASSIGN_ATTORNEY": {"IN_REVIEW"},
    "IN_REVIEW": {"CLOSEOUT", "COMPLETED"},
    "CLOSEOUT": {"AWAITING_FORESIDE_DOCUMENTS", "COMPLETED"},
    "AWAITING_FORESIDE_DOCUMENTS": {"COMPLETED"},
    "ON_HOLD": set(HOLDABLE_STATUSES),
    "COMPLETED": set(),
    "CANCELLED": set(),
}


def _build_transition_table() -> dict[RequestStatus, frozenset[RequestStatus]]:
    table: dict[RequestStatus, frozenset[RequestStatus]] = {}
    for status, targets in _FORWARD_TRANSITIONS.items():
        allowed = set(targets)
        if status in HOLDABLE_STATUSES:
            allowed.add("ON_HOLD")
        if status not in TERMINAL_STATUSES:
            allowed.add("CANCELLED")
        table[status] = frozenset(allowed)
    return table


VALID_STATUS_TRANSITIONS = _build_transition_table()


def is_valid_transition(from_status: str, to_status: str) -> bool:
    allowed = VALID_STATUS_TRANSITIONS.get(from_status)
    if allowed is None:
        raise UnknownRequestStatusError(f"UNKNOWN_REQUEST_STATUS: {from_status}")
    return to_status in allowed


def legal_review_required(request: ReviewRequest) -> bool:
    return request.review_audience in {"LEGAL", "BOTH"}


def compliance_review_required(request: ReviewRequest) -> bool:
    return request.review_audience in {"COMPLIANCE", "BOTH"}


def completion_outcome(
    request: ReviewRequest,
    legal_status: Optional[ReviewStatus] = None,
    compliance_status: Optional[ReviewStatus] = None,
    *,
    legal_outcome: Optional[ReviewOutcome] = None,
    compliance_outcome: Optional[ReviewOutcome] = None,
) -> CompletionOutcome:
    """Decide whether every required review is complete and where the request goes next.

    The overrides describe review state that is about to be written but is not
    persisted yet.
    """
    reviews = []
    if legal_review_required(request):
        reviews.append(
            (
                legal_status or request.legal_review.status,
                legal_outcome or request.legal_review.outcome,
            )
        )
    if compliance_review_required(request):
        reviews.append(
            (
                compliance_status or request.compliance_review.status,
                compliance_outcome or request.compliance_review.outcome,
            )
        )
    if not all(status == "COMPLETED" for status, _ in reviews):
        return CompletionOutcome(complete=False)
    if any(outcome == "NOT_APPROVED" for _, outcome in reviews):
        return CompletionOutcome(complete=True, next_status="COMPLETED")
    return CompletionOutcome(complete=True, next_status="CLOSEOUT")


def requires_regulatory_document_phase(request: ReviewRequest) -> bool:
    """Closeout routing policy: a Foreside review sends the request to the document phase."""
    return compliance_review_required(request) and request.foreside_review_required
