from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

RequestStatus = Literal[
    "DRAFT",
    "LEGAL_INTAKE",
    "ASSIGN_ATTORNEY",
    "IN_REVIEW",
    "CLOSEOUT",
    "AWAITING_FORESIDE_DOCUMENTS",
    "COMPLETED",
    "CANCELLED",
    "ON_HOLD",
]

ReviewStatus = Literal[
    "NOT_REQUIRED",
    "NOT_STARTED",
    "IN_PROGRESS",
    "WAITING_ON_SUBMITTER",
    "WAITING_ON_REVIEWER",
    "COMPLETED",
]

ReviewOutcome = Literal[
    "APPROVED",
    "APPROVED_WITH_COMMENTS",
    "RESPOND_TO_COMMENTS_AND_RESUBMIT",
    "NOT_APPROVED",
]

ReviewAudience = Literal["LEGAL", "COMPLIANCE", "BOTH"]
ReviewKind = Literal["LEGAL", "COMPLIANCE"]

Role = Literal[
    "SUBMITTER",
    "LEGAL_ADMIN",
    "ATTORNEY_ASSIGNER",
    "ATTORNEY",
    "COMPLIANCE_USER",
    "ADMIN",
]

WorkflowAction = Literal[
    "SUBMIT_REQUEST",
    "SAVE_DRAFT",
    "ASSIGN_ATTORNEY",
    "SEND_TO_COMMITTEE",
    "SAVE_LEGAL_REVIEW_PROGRESS",
    "SAVE_COMPLIANCE_REVIEW_PROGRESS",
    "SUBMIT_LEGAL_REVIEW",
    "SUBMIT_COMPLIANCE_REVIEW",
    "REQUEST_LEGAL_REVIEW_CHANGES",
    "REQUEST_COMPLIANCE_REVIEW_CHANGES",
    "RESUBMIT_LEGAL_REVIEW",
    "RESUBMIT_COMPLIANCE_REVIEW",
    "CLOSEOUT_REQUEST",
    "CANCEL_REQUEST",
    "HOLD_REQUEST",
    "RESUME_REQUEST",
    "COMPLETE_REGULATORY_DOCUMENTS",
]

NotificationEvent = Literal[
    "REQUEST_SUBMITTED",
    "READY_FOR_ATTORNEY_ASSIGNMENT",
    "ATTORNEY_ASSIGNED",
    "COMPLIANCE_REVIEW_REQUIRED",
    "LEGAL_REVIEW_APPROVED",
    "LEGAL_REVIEW_NOT_APPROVED",
    "LEGAL_CHANGES_REQUESTED",
    "RESUBMISSION_RECEIVED_LEGAL",
    "COMPLIANCE_REVIEW_APPROVED",
    "COMPLIANCE_REVIEW_NOT_APPROVED",
    "COMPLIANCE_CHANGES_REQUESTED",
    "RESUBMISSION_RECEIVED_COMPLIANCE",
    "REQUEST_ON_HOLD",
    "REQUEST_RESUMED",
    "REQUEST_CANCELLED",
    "READY_FOR_CLOSEOUT",
    "REQUEST_COMPLETED",
]

TERMINAL_STATUSES = {"COMPLETED", "CANCELLED"}
FINAL_REVIEW_OUTCOMES = {"APPROVED", "APPROVED_WITH_COMMENTS", "NOT_APPROVED"}
REVIEW_FIELDS: Dict[str, str] = {"LEGAL": "legal_review", "COMPLIANCE": "compliance_review"}


class PrincipalRef(BaseModel):
    principal_id: str = Field(description="Directory identity of the principal.", examples=["u_42"])
    display_name: Optional[str] = Field(
        default=None,
        description="Display metadata only; never used for authorization.",
        examples=["Dana Attorney"],
    )
    email: Optional[str] = Field(
        default=None, description="Optional contact email.", examples=["dana@example.com"]
    )


class ReviewNote(BaseModel):
    author_id: str = Field(description="Principal that recorded the note.", examples=["u_42"])
    text: str = Field(description="Note body.", examples=["Please update the disclosure."])
    recorded_at: datetime = Field(
        description="UTC timestamp the note was recorded.",
        examples=["2026-03-02T17:00:00+00:00"],
    )


class ReviewState(BaseModel):
    status: ReviewStatus = Field(
        default="NOT_REQUIRED",
        description="Review sub-state-machine status.",
        examples=["IN_PROGRESS"],
    )
    outcome: Optional[ReviewOutcome] = Field(
        default=None,
        description="Latest reviewer outcome, final or draft.",
        examples=["APPROVED"],
    )
    notes: List[ReviewNote] = Field(
        default_factory=list, description="Append-only review note history."
    )
    assigned_reviewer: Optional[PrincipalRef] = Field(
        default=None, description="Reviewer the review is assigned to, when assigned."
    )
    status_updated_at: Optional[datetime] = Field(
        default=None,
        description="Last status change; the business-hours reference for the current owner.",
        examples=["2026-03-02T16:00:00+00:00"],
    )
    status_updated_by: Optional[str] = Field(
        default=None, description="Principal that last changed status.", examples=["u_42"]
    )
    completed_at: Optional[datetime] = Field(
        default=None, description="Completion timestamp.", examples=["2026-03-03T18:00:00+00:00"]
    )
    completed_by: Optional[str] = Field(
        default=None, description="Principal that completed the review.", examples=["u_42"]
    )


class TimeTracking(BaseModel):
    legal_intake_legal_admin_hours: float = Field(default=0.0, examples=[1.5])
    legal_intake_submitter_hours: float = Field(default=0.0, examples=[0.0])
    legal_review_attorney_hours: float = Field(default=0.0, examples=[6.0])
    legal_review_submitter_hours: float = Field(default=0.0, examples=[2.5])
    compliance_review_reviewer_hours: float = Field(default=0.0, examples=[4.0])
    compliance_review_submitter_hours: float = Field(default=0.0, examples=[0.0])
    closeout_reviewer_hours: float = Field(default=0.0, examples=[0.5])
    closeout_submitter_hours: float = Field(default=0.0, examples=[0.0])
    total_reviewer_hours: float = Field(
        default=0.0,
        description="Legal admin, attorney, compliance reviewer and closeout reviewer hours.",
        examples=[12.0],
    )
    total_submitter_hours: float = Field(
        default=0.0, description="All submitter-side hours.", examples=[2.5]
    )


class ReviewRequest(BaseModel):
    request_id: str = Field(description="Review request identifier.", examples=["rr_001"])
    title: str = Field(description="Request title.", examples=["Q3 fund marketing brochure"])
    created_at: datetime = Field(
        description="Creation timestamp.", examples=["2026-03-02T15:00:00+00:00"]
    )
    created_by: str = Field(description="Creator principal id.", examples=["u_7"])
    status: RequestStatus = Field(default="DRAFT", examples=["IN_REVIEW"])
    previous_status: Optional[RequestStatus] = Field(
        default=None,
        description="Status immediately preceding ON_HOLD or CANCELLED.",
        examples=["IN_REVIEW"],
    )
    review_audience: ReviewAudience = Field(default="BOTH", examples=["BOTH"])
    legal_review: ReviewState = Field(default_factory=ReviewState)
    compliance_review: ReviewState = Field(default_factory=ReviewState)
    attorney: Optional[PrincipalRef] = None
    submitter: Optional[PrincipalRef] = None

    submitted_at: Optional[datetime] = None
    submitted_by: Optional[str] = None
    intake_started_at: Optional[datetime] = Field(
        default=None, description="Business-hours reference for the legal intake stage."
    )
    submitted_to_assign_attorney_at: Optional[datetime] = None
    submitted_to_assign_attorney_by: Optional[str] = None
    submitted_for_review_at: Optional[datetime] = None
    submitted_for_review_by: Optional[str] = None
    intake_notes: Optional[str] = None

    foreside_review_required: bool = Field(
        default=False, description="Compliance flagged an external Foreside review."
    )
    retail_use: bool = Field(default=False, description="Compliance flagged retail use.")

    closeout_started_at: Optional[datetime] = Field(
        default=None, description="Business-hours reference for the closeout stage."
    )
    closeout_at: Optional[datetime] = None
    closeout_by: Optional[str] = None
    tracking_id: Optional[str] = None
    closeout_notes: Optional[str] = None
    comments_acknowledged: bool = False
    comments_acknowledged_at: Optional[datetime] = None

    awaiting_foreside_since: Optional[datetime] = None
    foreside_completed_at: Optional[datetime] = None
    foreside_completed_by: Optional[str] = None
    foreside_notes: Optional[str] = None
    foreside_comments_received: bool = False

    hold_reason: Optional[str] = None
    held_at: Optional[datetime] = None
    held_by: Optional[str] = None

    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None

    time_tracking: TimeTracking = Field(default_factory=TimeTracking)
    approvals: List[Dict[str, Any]] = Field(
        default_factory=list, description="Opaque approval records owned externally."
    )


class Caller(BaseModel):
    principal_id: str = Field(description="Acting principal id.", examples=["u_42"])
    roles: frozenset[Role] = Field(
        default_factory=frozenset,
        description="Capability set of the acting principal.",
        examples=[["ATTORNEY"]],
    )


class PermissionDecision(BaseModel):
    allowed: bool = Field(description="Whether the caller may run the action.", examples=[False])
    reason: Optional[str] = Field(
        default=None,
        description="Human-readable denial reason.",
        examples=["Only the assigned attorney can submit the legal review"],
    )


class CompletionOutcome(BaseModel):
    complete: bool = Field(description="All required reviews are completed.", examples=[True])
    next_status: Optional[RequestStatus] = Field(default=None, examples=["CLOSEOUT"])


class CreateReviewRequest(BaseModel):
    title: str = Field(description="Request title.", examples=["Q3 fund marketing brochure"])
    review_audience: ReviewAudience = Field(default="BOTH", examples=["BOTH"])
    submitter: Optional[PrincipalRef] = Field(
        default=None, description="Submitter of record; defaults to the caller."
    )


class SaveDraftPayload(BaseModel):
    title: Optional[str] = None
    review_audience: Optional[ReviewAudience] = None


class AssignAttorneyPayload(BaseModel):
    attorney: Optional[PrincipalRef] = Field(
        default=None, description="Attorney to assign; omitted for compliance-only requests."
    )
    notes: Optional[str] = Field(default=None, examples=["Standard brochure, low risk."])


class SendToCommitteePayload(BaseModel):
    notes: Optional[str] = Field(default=None, examples=["Needs committee attorney pick."])


class ReviewProgressPayload(BaseModel):
    outcome: Optional[ReviewOutcome] = None
    notes: Optional[str] = None
    foreside_review_required: Optional[bool] = Field(
        default=None, description="Compliance only: Foreside review flag."
    )
    retail_use: Optional[bool] = Field(default=None, description="Compliance only: retail flag.")


class SubmitReviewPayload(BaseModel):
    outcome: ReviewOutcome = Field(examples=["APPROVED"])
    notes: Optional[str] = None
    foreside_review_required: Optional[bool] = Field(
        default=None, description="Compliance only: Foreside review flag."
    )
    retail_use: Optional[bool] = Field(default=None, description="Compliance only: retail flag.")


class RequestChangesPayload(BaseModel):
    notes: str = Field(examples=["Please revise the performance disclaimer."])


class ResubmitPayload(BaseModel):
    notes: Optional[str] = Field(default=None, examples=["Disclaimer updated on page 2."])


class CloseoutPayload(BaseModel):
    tracking_id: Optional[str] = Field(default=None, examples=["TRK-2026-0042"])
    comments_acknowledged: bool = False
    closeout_notes: Optional[str] = None


class CancelPayload(BaseModel):
    reason: str = Field(examples=["Campaign withdrawn."])


class HoldPayload(BaseModel):
    reason: str = Field(examples=["Waiting on updated fund data."])


class CompleteRegulatoryDocumentsPayload(BaseModel):
    notes: Optional[str] = None
    comments_received: bool = False


class PermissionSyncResult(BaseModel):
    success: bool
    status_code: Optional[int] = None
    message: Optional[str] = None


class NotificationResult(BaseModel):
    event: NotificationEvent = Field(examples=["READY_FOR_CLOSEOUT"])
    sent: bool = Field(description="Whether the notification service queued an email.")
    notification_id: Optional[str] = Field(default=None, examples=["ntf_9f2c"])
    status_code: Optional[int] = None
    reason: Optional[str] = Field(
        default=None,
        description="Why no email was sent, as reported by the notification service.",
        examples=["No recipients configured"],
    )


class WorkflowDiagnostics(BaseModel):
    time_tracking_warnings: List[str] = Field(default_factory=list)
    permission_sync: Optional[PermissionSyncResult] = None
    permission_sync_error: Optional[str] = None
    notification: Optional[NotificationResult] = None
    notification_error: Optional[str] = None
    request_reload_error: Optional[str] = Field(
        default=None,
        description=(
            "Set when the stored request could not be re-read after the write; "
            "the returned request is the written state projected from the delta."
        ),
    )


class WorkflowActionResult(BaseModel):
    request_id: str = Field(examples=["rr_001"])
    action: WorkflowAction = Field(examples=["SUBMIT_LEGAL_REVIEW"])
    new_status: RequestStatus = Field(examples=["CLOSEOUT"])
    request: ReviewRequest
    fields_changed: List[str] = Field(
        default_factory=list,
        description="Dotted field paths written by the action, sorted.",
        examples=[["legal_review.outcome", "legal_review.status", "status"]],
    )
    correlation_id: str = Field(examples=["corr_1a2b3c4d5e6f"])
    replayed: bool = Field(default=False, description="Result replayed from an idempotency key.")
    diagnostics: WorkflowDiagnostics = Field(default_factory=WorkflowDiagnostics)


class ActionReceipt(BaseModel):
    idempotency_key: str
    request_hash: str
    request_id: str
    action: WorkflowAction
    new_status: RequestStatus
    fields_changed: List[str] = Field(default_factory=list)
    correlation_id: str
    recorded_at: datetime


class ActionContext(BaseModel):
    expected_status: Optional[RequestStatus] = Field(
        default=None,
        description="Optimistic concurrency guard; the action fails when the status differs.",
        examples=["IN_REVIEW"],
    )
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Replays the recorded result when the same action is retried.",
        examples=["action-001"],
    )
    correlation_id: Optional[str] = Field(default=None, examples=["corr_1a2b3c4d5e6f"])


class AvailableActionsResponse(BaseModel):
    request_id: str = Field(examples=["rr_001"])
    status: RequestStatus = Field(examples=["IN_REVIEW"])
    actions: Dict[WorkflowAction, PermissionDecision] = Field(
        description="Gate decision for every workflow action and the calling principal."
    )
