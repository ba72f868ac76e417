"""
Workflow action orchestration for review requests.

Every action is checked against fresh state and then written as one sparse delta.
Once that write has landed the caller always gets a result. Anything that goes
wrong afterwards is reported through ``WorkflowDiagnostics`` instead of raised.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel

from src.core.common.canonical import hash_canonical_payload
from src.core.common.retry import RetryPolicy
from src.core.review_requests import permissions, review_machine
from src.core.review_requests.business_hours import WorkingHoursConfig
from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.errors import (
    IdempotencyConflictError,
    InvalidStateTransition,
    PersistenceFailure,
    PreconditionViolation,
    ReviewRequestNotFoundError,
    ReviewRequestWorkflowError,
    StateConflictError,
    is_transient_downstream_error,
)
from src.core.review_requests.models import (
    REVIEW_FIELDS,
    ActionContext,
    ActionReceipt,
    AssignAttorneyPayload,
    CancelPayload,
    Caller,
    CloseoutPayload,
    CompleteRegulatoryDocumentsPayload,
    CreateReviewRequest,
    HoldPayload,
    NotificationEvent,
    PermissionDecision,
    PrincipalRef,
    RequestChangesPayload,
    RequestStatus,
    ResubmitPayload,
    ReviewKind,
    ReviewProgressPayload,
    ReviewRequest,
    ReviewState,
    SaveDraftPayload,
    SendToCommitteePayload,
    SubmitReviewPayload,
    WorkflowAction,
    WorkflowActionResult,
    WorkflowDiagnostics,
)
from src.core.review_requests.notifications import notification_event
from src.core.review_requests.repository import (
    NotificationClient,
    PermissionSyncClient,
    ReviewRequestRepository,
    WorkingHoursConfigProvider,
)
from src.core.review_requests.status_machine import (
    completion_outcome,
    compliance_review_required,
    is_valid_transition,
    legal_review_required,
    requires_regulatory_document_phase,
)
from src.core.review_requests.time_tracking import (
    TimeTrackingDelta,
    TimeTrackingStage,
    calculate_and_update_stage_time,
    pause_time_tracking,
    resume_time_tracking,
)

logger = logging.getLogger(__name__)

_REVIEW_STAGES: dict[str, TimeTrackingStage] = {
    "LEGAL": "LEGAL_REVIEW",
    "COMPLIANCE": "COMPLIANCE_REVIEW",
}

_REVIEW_ACTIONS: dict[tuple[str, str], WorkflowAction] = {
    ("SAVE", "LEGAL"): "SAVE_LEGAL_REVIEW_PROGRESS",
    ("SAVE", "COMPLIANCE"): "SAVE_COMPLIANCE_REVIEW_PROGRESS",
    ("SUBMIT", "LEGAL"): "SUBMIT_LEGAL_REVIEW",
    ("SUBMIT", "COMPLIANCE"): "SUBMIT_COMPLIANCE_REVIEW",
    ("REQUEST_CHANGES", "LEGAL"): "REQUEST_LEGAL_REVIEW_CHANGES",
    ("REQUEST_CHANGES", "COMPLIANCE"): "REQUEST_COMPLIANCE_REVIEW_CHANGES",
    ("RESUBMIT", "LEGAL"): "RESUBMIT_LEGAL_REVIEW",
    ("RESUBMIT", "COMPLIANCE"): "RESUBMIT_COMPLIANCE_REVIEW",
}


@dataclass
class _ActionPlan:
    delta: RequestDelta
    warnings: list[str] = field(default_factory=list)


PlanBuilder = Callable[[ReviewRequest, datetime, WorkingHoursConfig], _ActionPlan]


class WorkflowActionOrchestrator:
    """Runs review-request workflow actions.

    Every action loads fresh state, checks the permission gate and state-machine
    preconditions, folds time tracking and any automatic status advance into one
    sparse delta and writes it once. After the write, permission sync and the
    notification for the change run on a best-effort basis and never fail the action.
    """

    def __init__(
        self,
        *,
        repository: ReviewRequestRepository,
        permission_sync: PermissionSyncClient,
        working_hours: WorkingHoursConfigProvider,
        permission_sync_retry: Optional[RetryPolicy] = None,
        notifications: Optional[NotificationClient] = None,
        notification_retry: Optional[RetryPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None,
        require_expected_status: bool = False,
    ) -> None:
        self._repository = repository
        self._permission_sync = permission_sync
        self._working_hours = working_hours
        self._permission_sync_retry = permission_sync_retry or RetryPolicy(
            is_retryable=is_transient_downstream_error
        )
        self._notifications = notifications
        self._notification_retry = notification_retry or RetryPolicy(
            is_retryable=is_transient_downstream_error
        )
        self._clock = clock or _utc_now
        self._require_expected_status = require_expected_status

    async def create_request(
        self, *, payload: CreateReviewRequest, caller: Caller
    ) -> ReviewRequest:
        if not caller.roles & {"SUBMITTER", "ADMIN"}:
            raise PreconditionViolation(
                "PERMISSION_DENIED", "Only submitters can create review requests"
            )
        request = ReviewRequest(
            request_id=f"rr_{uuid.uuid4().hex[:12]}",
            title=payload.title,
            created_at=self._clock(),
            created_by=caller.principal_id,
            review_audience=payload.review_audience,
            submitter=payload.submitter or PrincipalRef(principal_id=caller.principal_id),
        )
        await self._call_store(self._repository.create_request, request)
        logger.info(
            "review_request.created",
            extra={
                "extra_fields": {
                    "request_id": request.request_id,
                    "review_audience": request.review_audience,
                    "created_by": caller.principal_id,
                }
            },
        )
        return request

    async def get_request(self, *, request_id: str) -> ReviewRequest:
        return await self._load(request_id)

    async def get_available_actions(
        self, *, request_id: str, caller: Caller
    ) -> dict[WorkflowAction, PermissionDecision]:
        request = await self._load(request_id)
        return permissions.available_actions(request, caller)

    async def submit_request(
        self, *, request_id: str, caller: Caller, context: Optional[ActionContext] = None
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, _config: WorkingHoursConfig):
            delta = RequestDelta(
                {
                    "status": "LEGAL_INTAKE",
                    "submitted_at": now,
                    "submitted_by": caller.principal_id,
                    "intake_started_at": now,
                }
            )
            if request.submitter is None:
                delta.set("submitter", PrincipalRef(principal_id=request.created_by))
            return _ActionPlan(delta=delta)

        return await self._run_action(
            "SUBMIT_REQUEST", request_id, caller, payload=None, plan=plan, context=context
        )

    async def save_draft(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: SaveDraftPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, _now: datetime, _config: WorkingHoursConfig):
            delta = RequestDelta()
            if payload.title is not None and payload.title != request.title:
                delta.set("title", payload.title)
            audience = payload.review_audience
            if audience is not None and audience != request.review_audience:
                delta.set("review_audience", audience)
            return _ActionPlan(delta=delta)

        return await self._run_action(
            "SAVE_DRAFT", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def assign_attorney(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: AssignAttorneyPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            legal_required = legal_review_required(request)
            if legal_required and payload.attorney is None:
                raise PreconditionViolation(
                    "ATTORNEY_REQUIRED",
                    "An attorney must be assigned when legal review is required",
                )
            if not legal_required and payload.attorney is not None:
                raise PreconditionViolation(
                    "ATTORNEY_NOT_APPLICABLE", "Legal review is not required for this request"
                )
            tracking = calculate_and_update_stage_time(
                request, "LEGAL_INTAKE", "REVIEWER", now=now, config=config
            )
            delta = tracking.delta
            delta.set("status", "IN_REVIEW")
            delta.set("submitted_for_review_at", now)
            delta.set("submitted_for_review_by", caller.principal_id)
            if payload.notes:
                delta.set("intake_notes", payload.notes)
            if legal_required:
                delta.set("attorney", payload.attorney)
                started = review_machine.start(
                    request.legal_review, actor_id=caller.principal_id, now=now
                ).model_copy(update={"assigned_reviewer": payload.attorney})
                delta.set_model_changes("legal_review", request.legal_review, started)
            if compliance_review_required(request):
                started = review_machine.start(
                    request.compliance_review, actor_id=caller.principal_id, now=now
                )
                delta.set_model_changes("compliance_review", request.compliance_review, started)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            "ASSIGN_ATTORNEY", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def send_to_committee(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: SendToCommitteePayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(_request: ReviewRequest, now: datetime, _config: WorkingHoursConfig):
            delta = RequestDelta(
                {
                    "status": "ASSIGN_ATTORNEY",
                    "submitted_to_assign_attorney_at": now,
                    "submitted_to_assign_attorney_by": caller.principal_id,
                }
            )
            if payload.notes:
                delta.set("intake_notes", payload.notes)
            return _ActionPlan(delta=delta)

        return await self._run_action(
            "SEND_TO_COMMITTEE", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def save_review_progress(
        self,
        *,
        request_id: str,
        caller: Caller,
        review: ReviewKind,
        payload: ReviewProgressPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            before = _review(request, review)
            tracking = TimeTrackingDelta()
            if before.status != "IN_PROGRESS":
                # the reference timestamp moves; credit the owner first
                tracking = calculate_and_update_stage_time(
                    request, _REVIEW_STAGES[review], "REVIEWER", now=now, config=config
                )
            after = review_machine.save_progress(
                before, payload.outcome, payload.notes, actor_id=caller.principal_id, now=now
            )
            delta = tracking.delta
            delta.set_model_changes(REVIEW_FIELDS[review], before, after)
            _apply_compliance_flags(
                delta, review, payload.foreside_review_required, payload.retail_use
            )
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            _REVIEW_ACTIONS[("SAVE", review)],
            request_id,
            caller,
            payload=payload,
            plan=plan,
            context=context,
        )

    async def submit_legal_review(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: SubmitReviewPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        return await self._submit_review("LEGAL", request_id, caller, payload, context)

    async def submit_compliance_review(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: SubmitReviewPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        return await self._submit_review("COMPLIANCE", request_id, caller, payload, context)

    async def request_review_changes(
        self,
        *,
        request_id: str,
        caller: Caller,
        review: ReviewKind,
        payload: RequestChangesPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            before = _review(request, review)
            tracking = calculate_and_update_stage_time(
                request, _REVIEW_STAGES[review], "SUBMITTER", now=now, config=config
            )
            after = review_machine.request_changes(
                before, payload.notes, actor_id=caller.principal_id, now=now
            )
            delta = tracking.delta
            delta.set_model_changes(REVIEW_FIELDS[review], before, after)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            _REVIEW_ACTIONS[("REQUEST_CHANGES", review)],
            request_id,
            caller,
            payload=payload,
            plan=plan,
            context=context,
        )

    async def resubmit_for_review(
        self,
        *,
        request_id: str,
        caller: Caller,
        review: ReviewKind,
        payload: ResubmitPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            before = _review(request, review)
            after = review_machine.resubmit(
                before, payload.notes, actor_id=caller.principal_id, now=now
            )
            tracking = calculate_and_update_stage_time(
                request, _REVIEW_STAGES[review], "REVIEWER", now=now, config=config
            )
            delta = tracking.delta
            delta.set_model_changes(REVIEW_FIELDS[review], before, after)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            _REVIEW_ACTIONS[("RESUBMIT", review)],
            request_id,
            caller,
            payload=payload,
            plan=plan,
            context=context,
        )

    async def closeout_request(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: CloseoutPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            _validate_closeout(request, payload)
            tracking = calculate_and_update_stage_time(
                request, "CLOSEOUT", None, now=now, config=config
            )
            awaiting_documents = requires_regulatory_document_phase(request)
            delta = tracking.delta
            delta.set(
                "status", "AWAITING_FORESIDE_DOCUMENTS" if awaiting_documents else "COMPLETED"
            )
            delta.set("closeout_at", now)
            delta.set("closeout_by", caller.principal_id)
            if payload.tracking_id:
                delta.set("tracking_id", payload.tracking_id)
            if payload.closeout_notes:
                delta.set("closeout_notes", payload.closeout_notes)
            if payload.comments_acknowledged:
                delta.set("comments_acknowledged", True)
                delta.set("comments_acknowledged_at", now)
            if awaiting_documents:
                delta.set("awaiting_foreside_since", now)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            "CLOSEOUT_REQUEST", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def cancel_request(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: CancelPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            tracking = pause_time_tracking(request, now=now, config=config)
            delta = tracking.delta
            delta.set("status", "CANCELLED")
            delta.set("previous_status", request.status)
            delta.set("cancel_reason", payload.reason)
            delta.set("cancelled_at", now)
            delta.set("cancelled_by", caller.principal_id)
            if request.status == "ON_HOLD":
                _clear_hold(delta)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            "CANCEL_REQUEST", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def hold_request(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: HoldPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            tracking = pause_time_tracking(request, now=now, config=config)
            delta = tracking.delta
            delta.set("status", "ON_HOLD")
            delta.set("previous_status", request.status)
            delta.set("hold_reason", payload.reason)
            delta.set("held_at", now)
            delta.set("held_by", caller.principal_id)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            "HOLD_REQUEST", request_id, caller, payload=payload, plan=plan, context=context
        )

    async def resume_request(
        self, *, request_id: str, caller: Caller, context: Optional[ActionContext] = None
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, _config: WorkingHoursConfig):
            resumed_status = request.previous_status
            tracking = resume_time_tracking(request, resumed_status, now=now)
            delta = tracking.delta
            delta.set("status", resumed_status)
            delta.set("previous_status", None)
            _clear_hold(delta)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            "RESUME_REQUEST", request_id, caller, payload=None, plan=plan, context=context
        )

    async def complete_regulatory_documents(
        self,
        *,
        request_id: str,
        caller: Caller,
        payload: CompleteRegulatoryDocumentsPayload,
        context: Optional[ActionContext] = None,
    ) -> WorkflowActionResult:
        def plan(_request: ReviewRequest, now: datetime, _config: WorkingHoursConfig):
            delta = RequestDelta(
                {
                    "status": "COMPLETED",
                    "foreside_completed_at": now,
                    "foreside_completed_by": caller.principal_id,
                    "foreside_comments_received": payload.comments_received,
                }
            )
            if payload.notes:
                delta.set("foreside_notes", payload.notes)
            return _ActionPlan(delta=delta)

        return await self._run_action(
            "COMPLETE_REGULATORY_DOCUMENTS",
            request_id,
            caller,
            payload=payload,
            plan=plan,
            context=context,
        )

    async def _submit_review(
        self,
        review: ReviewKind,
        request_id: str,
        caller: Caller,
        payload: SubmitReviewPayload,
        context: Optional[ActionContext],
    ) -> WorkflowActionResult:
        def plan(request: ReviewRequest, now: datetime, config: WorkingHoursConfig):
            before = _review(request, review)
            handoff = "SUBMITTER" if payload.outcome == review_machine.RESPOND else None
            tracking = calculate_and_update_stage_time(
                request, _REVIEW_STAGES[review], handoff, now=now, config=config
            )
            after = review_machine.submit(
                before, payload.outcome, payload.notes, actor_id=caller.principal_id, now=now
            )
            delta = tracking.delta
            delta.set_model_changes(REVIEW_FIELDS[review], before, after)
            _apply_compliance_flags(
                delta, review, payload.foreside_review_required, payload.retail_use
            )
            if after.status == "COMPLETED":
                if review == "LEGAL":
                    outcome = completion_outcome(
                        request, legal_status=after.status, legal_outcome=after.outcome
                    )
                else:
                    outcome = completion_outcome(
                        request, compliance_status=after.status, compliance_outcome=after.outcome
                    )
                if outcome.complete and outcome.next_status is not None:
                    delta.set("status", outcome.next_status)
                    if outcome.next_status == "CLOSEOUT":
                        delta.set("closeout_started_at", now)
            return _ActionPlan(delta=delta, warnings=tracking.warnings)

        return await self._run_action(
            _REVIEW_ACTIONS[("SUBMIT", review)],
            request_id,
            caller,
            payload=payload,
            plan=plan,
            context=context,
        )

    async def _run_action(
        self,
        action: WorkflowAction,
        request_id: str,
        caller: Caller,
        *,
        payload: Optional[BaseModel],
        plan: PlanBuilder,
        context: Optional[ActionContext],
    ) -> WorkflowActionResult:
        context = context or ActionContext()
        correlation_id = context.correlation_id or f"corr_{uuid.uuid4().hex[:12]}"
        request_hash = hash_canonical_payload(
            {
                "action": action,
                "request_id": request_id,
                "caller_id": caller.principal_id,
                "payload": payload.model_dump(mode="json") if payload is not None else None,
            }
        )
        if context.idempotency_key is not None:
            receipt = await self._call_store(
                self._repository.get_action_receipt, idempotency_key=context.idempotency_key
            )
            if receipt is not None:
                if receipt.request_hash != request_hash:
                    raise IdempotencyConflictError(
                        "IDEMPOTENCY_KEY_CONFLICT: request hash mismatch"
                    )
                return await self._replay(receipt)

        request = await self._load(request_id)
        self._validate_expected_status(request.status, context.expected_status)
        decision = permissions.evaluate(action, request, caller)
        if not decision.allowed:
            raise PreconditionViolation("PERMISSION_DENIED", decision.reason or action)

        now = self._clock()
        config = await self._working_hours.get_working_hours_config()
        action_plan = plan(request, now, config)
        delta = action_plan.delta
        new_status: RequestStatus = delta.get("status", request.status)
        if new_status != request.status and not is_valid_transition(request.status, new_status):
            raise InvalidStateTransition(f"INVALID_TRANSITION: {request.status} -> {new_status}")

        if len(delta):
            await self._call_store(
                self._repository.apply_delta, request_id=request_id, delta=delta
            )

        # the write is durable from here on; nothing below may raise
        fields_changed = delta.fields_changed()
        if context.idempotency_key is not None:
            await self._save_receipt(
                ActionReceipt(
                    idempotency_key=context.idempotency_key,
                    request_hash=request_hash,
                    request_id=request_id,
                    action=action,
                    new_status=new_status,
                    fields_changed=fields_changed,
                    correlation_id=correlation_id,
                    recorded_at=now,
                )
            )

        diagnostics = WorkflowDiagnostics(time_tracking_warnings=list(action_plan.warnings))
        if new_status != request.status:
            await self._sync_permissions(
                request_id=request_id,
                new_status=new_status,
                previous_status=request.status,
                correlation_id=correlation_id,
                diagnostics=diagnostics,
            )

        written = delta.apply_to(request)
        event = notification_event(request, written)
        if event is not None:
            await self._notify(
                request_id=request_id,
                event=event,
                correlation_id=correlation_id,
                diagnostics=diagnostics,
            )

        updated = await self._reload_after_write(request_id, written, diagnostics)
        logger.info(
            "review_request.action.applied",
            extra={
                "extra_fields": {
                    "request_id": request_id,
                    "action": action,
                    "from_status": request.status,
                    "to_status": new_status,
                    "actor_id": caller.principal_id,
                    "fields_changed": fields_changed,
                    "correlation_id": correlation_id,
                }
            },
        )
        return WorkflowActionResult(
            request_id=request_id,
            action=action,
            new_status=new_status,
            request=updated,
            fields_changed=fields_changed,
            correlation_id=correlation_id,
            diagnostics=diagnostics,
        )

    async def _sync_permissions(
        self,
        *,
        request_id: str,
        new_status: RequestStatus,
        previous_status: RequestStatus,
        correlation_id: str,
        diagnostics: WorkflowDiagnostics,
    ) -> None:
        async def _call():
            return await self._permission_sync.sync_permissions(
                request_id=request_id,
                new_status=new_status,
                previous_status=previous_status,
            )

        log_fields = {
            "request_id": request_id,
            "new_status": new_status,
            "previous_status": previous_status,
            "correlation_id": correlation_id,
        }
        try:
            result = await self._permission_sync_retry.run(_call, name="permission_sync")
        except Exception as exc:
            diagnostics.permission_sync_error = f"PERMISSION_SYNC_FAILED: {exc}"
            logger.warning(
                "review_request.permission_sync.failed",
                extra={
                    "extra_fields": {
                        **log_fields,
                        "error": type(exc).__name__,
                        "detail": str(exc),
                    }
                },
            )
            return
        diagnostics.permission_sync = result
        if not result.success:
            logger.warning(
                "review_request.permission_sync.rejected",
                extra={
                    "extra_fields": {
                        **log_fields,
                        "status_code": result.status_code,
                        "detail": result.message,
                    }
                },
            )

    async def _notify(
        self,
        *,
        request_id: str,
        event: NotificationEvent,
        correlation_id: str,
        diagnostics: WorkflowDiagnostics,
    ) -> None:
        if self._notifications is None:
            return
        notifications = self._notifications

        async def _call():
            return await notifications.send_notification(request_id=request_id, event=event)

        log_fields = {"request_id": request_id, "event": event, "correlation_id": correlation_id}
        try:
            result = await self._notification_retry.run(_call, name="notification")
        except Exception as exc:
            diagnostics.notification_error = f"NOTIFICATION_FAILED: {exc}"
            logger.warning(
                "review_request.notification.failed",
                extra={
                    "extra_fields": {
                        **log_fields,
                        "error": type(exc).__name__,
                        "detail": str(exc),
                    }
                },
            )
            return
        diagnostics.notification = result
        logger.info(
            "review_request.notification.dispatched",
            extra={
                "extra_fields": {
                    **log_fields,
                    "sent": result.sent,
                    "notification_id": result.notification_id,
                    "reason": result.reason,
                }
            },
        )

    async def _reload_after_write(
        self, request_id: str, written: ReviewRequest, diagnostics: WorkflowDiagnostics
    ) -> ReviewRequest:
        try:
            return await self._load(request_id)
        except (PersistenceFailure, ReviewRequestNotFoundError) as exc:
            diagnostics.request_reload_error = str(exc)
            logger.warning(
                "review_request.reload_failed",
                extra={"extra_fields": {"request_id": request_id, "detail": str(exc)}},
            )
            return written

    async def _replay(self, receipt: ActionReceipt) -> WorkflowActionResult:
        request = await self._load(receipt.request_id)
        return WorkflowActionResult(
            request_id=receipt.request_id,
            action=receipt.action,
            new_status=receipt.new_status,
            request=request,
            fields_changed=receipt.fields_changed,
            correlation_id=receipt.correlation_id,
            replayed=True,
        )

    async def _save_receipt(self, receipt: ActionReceipt) -> None:
        try:
            await self._call_store(self._repository.save_action_receipt, receipt)
        except PersistenceFailure:
            # the transition itself is already durable
            logger.warning(
                "review_request.idempotency.receipt_not_saved",
                extra={
                    "extra_fields": {
                        "request_id": receipt.request_id,
                        "idempotency_key": receipt.idempotency_key,
                    }
                },
            )

    async def _load(self, request_id: str) -> ReviewRequest:
        request = await self._call_store(self._repository.get_request, request_id=request_id)
        if request is None:
            raise ReviewRequestNotFoundError("REVIEW_REQUEST_NOT_FOUND")
        return request

    async def _call_store(self, method: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(method, *args, **kwargs)
        except ReviewRequestWorkflowError:
            raise
        except Exception as exc:
            raise PersistenceFailure(f"PERSISTENCE_FAILURE: {method.__name__}") from exc

    def _validate_expected_status(
        self, current_status: RequestStatus, expected_status: Optional[RequestStatus]
    ) -> None:
        if expected_status is None and self._require_expected_status:
            raise StateConflictError("STATE_CONFLICT: expected_status is required")
        if expected_status is not None and expected_status != current_status:
            raise StateConflictError("STATE_CONFLICT: expected_status mismatch")


def _review(request: ReviewRequest, review: ReviewKind) -> ReviewState:
    return request.legal_review if review == "LEGAL" else request.compliance_review


def _apply_compliance_flags(
    delta: RequestDelta,
    review: ReviewKind,
    foreside_review_required: Optional[bool],
    retail_use: Optional[bool],
) -> None:
    if review != "COMPLIANCE":
        return
    if foreside_review_required is not None:
        delta.set("foreside_review_required", foreside_review_required)
    if retail_use is not None:
        delta.set("retail_use", retail_use)


def _validate_closeout(request: ReviewRequest, payload: CloseoutPayload) -> None:
    flagged = request.foreside_review_required or request.retail_use
    if compliance_review_required(request) and flagged and not payload.tracking_id:
        raise PreconditionViolation(
            "TRACKING_ID_REQUIRED",
            "A tracking id is required when compliance flagged Foreside review or retail use",
        )
    outcomes = []
    if legal_review_required(request):
        outcomes.append(request.legal_review.outcome)
    if compliance_review_required(request):
        outcomes.append(request.compliance_review.outcome)
    if "APPROVED_WITH_COMMENTS" in outcomes and not payload.comments_acknowledged:
        raise PreconditionViolation(
            "COMMENTS_ACKNOWLEDGEMENT_REQUIRED",
            "Reviewer comments must be acknowledged before closeout",
        )


def _clear_hold(delta: RequestDelta) -> None:
    delta.set("hold_reason", None)
    delta.set("held_at", None)
    delta.set("held_by", None)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)
