"""
Permission gate for review-request workflow actions.

Every predicate is pure and total: it takes the current request and the caller's
capability set and returns a ``PermissionDecision``. Wrong status and wrong role are
ordinary denials with a reason, never exceptions.
"""

from typing import Callable, Iterable

from src.core.review_requests.models import (
    TERMINAL_STATUSES,
    Caller,
    PermissionDecision,
    ReviewKind,
    ReviewRequest,
    ReviewState,
    ReviewStatus,
    Role,
    WorkflowAction,
)
from src.core.review_requests.status_machine import (
    compliance_review_required,
    legal_review_required,
)

PermissionPredicate = Callable[[ReviewRequest, Caller], PermissionDecision]

GROUP_ROLE_MAP: dict[str, Role] = {
    "LW - Submitters": "SUBMITTER",
    "LW - Legal Admin": "LEGAL_ADMIN",
    "LW - Attorney Assigner": "ATTORNEY_ASSIGNER",
    "LW - Attorneys": "ATTORNEY",
    "LW - Compliance Users": "COMPLIANCE_USER",
    "LW - Admin": "ADMIN",
}

_REVIEW_LABELS = {"LEGAL": "Legal", "COMPLIANCE": "Compliance"}
_REVIEWER_ROLES: dict[str, Role] = {"LEGAL": "ATTORNEY", "COMPLIANCE": "COMPLIANCE_USER"}
_REVIEWER_LABELS = {"LEGAL": "attorneys", "COMPLIANCE": "compliance reviewers"}


def roles_from_group_titles(titles: Iterable[str]) -> frozenset[Role]:
    return frozenset(GROUP_ROLE_MAP[title] for title in titles if title in GROUP_ROLE_MAP)


def can_submit_request(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status != "DRAFT":
        return _deny("Request must be in Draft status to submit")
    if _is_owner(request, caller) or _has_role(caller, "ADMIN"):
        return _allow()
    return _deny("Only the request owner or an admin can submit this request")


def can_save_draft(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status != "DRAFT":
        return _deny("Only Draft requests can be edited")
    if _is_owner(request, caller) or _has_role(caller, "ADMIN"):
        return _allow()
    return _deny("Only the request owner or an admin can edit this draft")


def can_assign_attorney(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status == "LEGAL_INTAKE":
        if _has_role(caller, "LEGAL_ADMIN"):
            return _allow()
        return _deny("Only Legal Admin can assign an attorney during Legal Intake")
    if request.status == "ASSIGN_ATTORNEY":
        if _has_role(caller, "ATTORNEY_ASSIGNER"):
            return _allow()
        return _deny("Only the attorney assignment committee can assign an attorney")
    return _deny("Attorneys can only be assigned during Legal Intake or Assign Attorney")


def can_send_to_committee(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status != "LEGAL_INTAKE":
        return _deny("Request must be in Legal Intake to send to the committee")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    return _deny("Only Legal Admin can send a request to the committee")


def can_save_review_progress(
    request: ReviewRequest, caller: Caller, review: ReviewKind
) -> PermissionDecision:
    return _reviewer_decision(
        request,
        caller,
        review,
        allowed_statuses={"NOT_STARTED", "IN_PROGRESS", "WAITING_ON_REVIEWER"},
        verb="update",
    )


def can_submit_review(
    request: ReviewRequest, caller: Caller, review: ReviewKind
) -> PermissionDecision:
    return _reviewer_decision(
        request,
        caller,
        review,
        allowed_statuses={"IN_PROGRESS", "WAITING_ON_REVIEWER"},
        verb="submit",
    )


def can_submit_legal_review(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    return can_submit_review(request, caller, "LEGAL")


def can_submit_compliance_review(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    return can_submit_review(request, caller, "COMPLIANCE")


def can_request_review_changes(
    request: ReviewRequest, caller: Caller, review: ReviewKind
) -> PermissionDecision:
    return _reviewer_decision(
        request,
        caller,
        review,
        allowed_statuses={"IN_PROGRESS", "WAITING_ON_REVIEWER"},
        verb="request changes on",
    )


def can_resubmit_for_review(
    request: ReviewRequest, caller: Caller, review: ReviewKind
) -> PermissionDecision:
    label = _REVIEW_LABELS[review]
    if request.status != "IN_REVIEW":
        return _deny(f"Request must be In Review to resubmit for {label.lower()} review")
    if not _review_required(request, review):
        return _deny(f"{label} review is not required for this request")
    state = _review_state(request, review)
    if state.status != "WAITING_ON_SUBMITTER":
        return _deny(f"{label} review is not waiting on the submitter")
    if _is_owner(request, caller) or _has_role(caller, "ADMIN"):
        return _allow()
    return _deny("Only the request owner or an admin can resubmit for review")


def can_closeout(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status != "CLOSEOUT":
        return _deny("Request must be in Closeout to close out")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    return _deny("Only Legal Admin can close out a request")


def can_complete_regulatory_documents(
    request: ReviewRequest, caller: Caller
) -> PermissionDecision:
    if request.status != "AWAITING_FORESIDE_DOCUMENTS":
        return _deny("Request is not awaiting Foreside documents")
    if _is_owner(request, caller) or _has_role(caller, "ADMIN"):
        return _allow()
    return _deny("Only the request owner or an admin can complete Foreside documents")


def can_cancel(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status in TERMINAL_STATUSES:
        return _deny("Completed or cancelled requests cannot be cancelled")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    if _is_owner(request, caller):
        if request.status == "DRAFT":
            return _allow()
        return _deny("Submitters can only cancel requests in Draft")
    return _deny("Only Legal Admin or an admin can cancel this request")


def can_hold(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status == "DRAFT":
        return _deny("Draft requests cannot be placed on hold")
    if request.status in TERMINAL_STATUSES:
        return _deny("Completed or cancelled requests cannot be placed on hold")
    if request.status == "ON_HOLD":
        return _deny("Request is already on hold")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    return _deny("Only Legal Admin or an admin can place a request on hold")


def can_resume(request: ReviewRequest, caller: Caller) -> PermissionDecision:
    if request.status != "ON_HOLD":
        return _deny("Request is not on hold")
    if request.previous_status is None:
        return _deny("No previous status recorded; cannot resume")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    return _deny("Only Legal Admin or an admin can resume a request")


PERMISSION_GATE: dict[WorkflowAction, PermissionPredicate] = {
    "SUBMIT_REQUEST": can_submit_request,
    "SAVE_DRAFT": can_save_draft,
    "ASSIGN_ATTORNEY": can_assign_attorney,
    "SEND_TO_COMMITTEE": can_send_to_committee,
    "SAVE_LEGAL_REVIEW_PROGRESS": lambda r, c: can_save_review_progress(r, c, "LEGAL"),
    "SAVE_COMPLIANCE_REVIEW_PROGRESS": lambda r, c: can_save_review_progress(r, c, "COMPLIANCE"),
    "SUBMIT_LEGAL_REVIEW": can_submit_legal_review,
    "SUBMIT_COMPLIANCE_REVIEW": can_submit_compliance_review,
    "REQUEST_LEGAL_REVIEW_CHANGES": lambda r, c: can_request_review_changes(r, c, "LEGAL"),
    "REQUEST_COMPLIANCE_REVIEW_CHANGES": lambda r, c: can_request_review_changes(
        r, c, "COMPLIANCE"
    ),
    "RESUBMIT_LEGAL_REVIEW": lambda r, c: can_resubmit_for_review(r, c, "LEGAL"),
    "RESUBMIT_COMPLIANCE_REVIEW": lambda r, c: can_resubmit_for_review(r, c, "COMPLIANCE"),
    "CLOSEOUT_REQUEST": can_closeout,
    "CANCEL_REQUEST": can_cancel,
    "HOLD_REQUEST": can_hold,
    "RESUME_REQUEST": can_resume,
    "COMPLETE_REGULATORY_DOCUMENTS": can_complete_regulatory_documents,
}


def evaluate(action: WorkflowAction, request: ReviewRequest, caller: Caller) -> PermissionDecision:
    return PERMISSION_GATE[action](request, caller)


def available_actions(
    request: ReviewRequest, caller: Caller
) -> dict[WorkflowAction, PermissionDecision]:
    return {action: predicate(request, caller) for action, predicate in PERMISSION_GATE.items()}


def _reviewer_decision(
    request: ReviewRequest,
    caller: Caller,
    review: ReviewKind,
    *,
    allowed_statuses: set[ReviewStatus],
    verb: str,
) -> PermissionDecision:
    label = _REVIEW_LABELS[review]
    if request.status != "IN_REVIEW":
        return _deny(f"Request must be In Review to {verb} the {label.lower()} review")
    if not _review_required(request, review):
        return _deny(f"{label} review is not required for this request")
    state = _review_state(request, review)
    if state.status == "COMPLETED":
        return _deny(f"{label} review has already been completed")
    if state.status not in allowed_statuses:
        return _deny(f"{label} review cannot be {_verb_past(verb)} while {state.status}")
    if _has_role(caller, "LEGAL_ADMIN"):
        return _allow()
    if not _has_role(caller, _REVIEWER_ROLES[review]):
        return _deny(f"Only {_REVIEWER_LABELS[review]} can {verb} the {label.lower()} review")
    if review == "LEGAL":
        if request.attorney is None:
            return _deny("No attorney has been assigned to this request")
        if request.attorney.principal_id != caller.principal_id:
            return _deny(f"Only the assigned attorney can {verb} the legal review")
        return _allow()
    assigned = state.assigned_reviewer
    if assigned is not None and assigned.principal_id != caller.principal_id:
        return _deny("Only the assigned compliance reviewer can act on this review")
    return _allow()


def _verb_past(verb: str) -> str:
    return {"submit": "submitted", "update": "updated"}.get(verb, "changed")


def _review_required(request: ReviewRequest, review: ReviewKind) -> bool:
    if review == "LEGAL":
        return legal_review_required(request)
    return compliance_review_required(request)


def _review_state(request: ReviewRequest, review: ReviewKind) -> ReviewState:
    return request.legal_review if review == "LEGAL" else request.compliance_review


def _is_owner(request: ReviewRequest, caller: Caller) -> bool:
    if request.created_by == caller.principal_id:
        return True
    return request.submitter is not None and request.submitter.principal_id == caller.principal_id


def _has_role(caller: Caller, role: Role) -> bool:
    return role in caller.roles or "ADMIN" in caller.roles


def _allow() -> PermissionDecision:
    return PermissionDecision(allowed=True)


def _deny(reason: str) -> PermissionDecision:
    return PermissionDecision(allowed=False, reason=reason)
