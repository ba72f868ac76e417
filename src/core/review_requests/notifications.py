"""
Notification event selection for review requests.

The event is derived by comparing the request before and after a workflow action,
so every path that reaches a state announces it the same way. Request-level
changes win over review-level ones, and at most one event is chosen per action.
"""

from typing import Optional

from src.core.review_requests.models import (
    NotificationEvent,
    ReviewKind,
    ReviewRequest,
    ReviewState,
)

_REVIEW_EVENTS: dict[ReviewKind, dict[str, NotificationEvent]] = {
    "LEGAL": {
        "approved": "LEGAL_REVIEW_APPROVED",
        "not_approved": "LEGAL_REVIEW_NOT_APPROVED",
        "changes": "LEGAL_CHANGES_REQUESTED",
        "resubmitted": "RESUBMISSION_RECEIVED_LEGAL",
    },
    "COMPLIANCE": {
        "approved": "COMPLIANCE_REVIEW_APPROVED",
        "not_approved": "COMPLIANCE_REVIEW_NOT_APPROVED",
        "changes": "COMPLIANCE_CHANGES_REQUESTED",
        "resubmitted": "RESUBMISSION_RECEIVED_COMPLIANCE",
    },
}


def notification_event(
    before: ReviewRequest, after: ReviewRequest
) -> Optional[NotificationEvent]:
    """Event to announce for the change from ``before`` to ``after``, or ``None``."""
    previous, current = before.status, after.status
    if previous != "ON_HOLD" and current == "ON_HOLD":
        return "REQUEST_ON_HOLD"
    if previous != "CANCELLED" and current == "CANCELLED":
        return "REQUEST_CANCELLED"
    if previous == "ON_HOLD":
        return "REQUEST_RESUMED"
    if previous != "COMPLETED" and current == "COMPLETED":
        return "REQUEST_COMPLETED"
    if previous != "CLOSEOUT" and current == "CLOSEOUT":
        return "READY_FOR_CLOSEOUT"
    if previous == "DRAFT" and current == "LEGAL_INTAKE":
        return "REQUEST_SUBMITTED"
    if previous != "ASSIGN_ATTORNEY" and current == "ASSIGN_ATTORNEY":
        return "READY_FOR_ATTORNEY_ASSIGNMENT"
    if previous in {"LEGAL_INTAKE", "ASSIGN_ATTORNEY"} and current == "IN_REVIEW":
        if after.review_audience == "COMPLIANCE":
            return "COMPLIANCE_REVIEW_REQUIRED"
        return "ATTORNEY_ASSIGNED"
    return _review_event(
        "LEGAL", before.legal_review, after.legal_review
    ) or _review_event("COMPLIANCE", before.compliance_review, after.compliance_review)


def _review_event(
    review: ReviewKind, before: ReviewState, after: ReviewState
) -> Optional[NotificationEvent]:
    events = _REVIEW_EVENTS[review]
    if before.status != "COMPLETED" and after.status == "COMPLETED":
        if after.outcome == "NOT_APPROVED":
            return events["not_approved"]
        if after.outcome in {"APPROVED", "APPROVED_WITH_COMMENTS"}:
            return events["approved"]
    if before.status != "WAITING_ON_SUBMITTER" and after.status == "WAITING_ON_SUBMITTER":
        return events["changes"]
    if before.status == "WAITING_ON_SUBMITTER" and after.status == "WAITING_ON_REVIEWER":
        return events["resubmitted"]
    return None
