import asyncio
import logging

import pytest

from src.core.review_requests.errors import (
    TIME_TRACKING_DEGRADED,
    IdempotencyConflictError,
    NotificationFailure,
    PermissionSyncFailure,
    PersistenceFailure,
    PreconditionViolation,
    ReviewRequestNotFoundError,
    StateConflictError,
)
from src.core.review_requests.models import (
    ActionContext,
    AssignAttorneyPayload,
    CancelPayload,
    CloseoutPayload,
    CompleteRegulatoryDocumentsPayload,
    CreateReviewRequest,
    HoldPayload,
    PermissionSyncResult,
    PrincipalRef,
    RequestChangesPayload,
    ResubmitPayload,
    ReviewProgressPayload,
    SaveDraftPayload,
    SendToCommitteePayload,
    SubmitReviewPayload,
)
from src.core.review_requests.orchestrator import WorkflowActionOrchestrator
from src.core.review_requests.working_hours import StaticWorkingHoursConfigProvider
from src.infrastructure.review_requests import InMemoryReviewRequestRepository
from tests.factories import (
    ATTORNEY_ID,
    RecordingPermissionSyncClient,
    admin,
    assigner,
    attorney,
    compliance_user,
    legal_admin,
    pacific,
    review,
    review_request,
    submitter,
)


def run(coro):
    return asyncio.run(coro)


def _create(orchestrator, audience="BOTH"):
    return run(
        orchestrator.create_request(
            payload=CreateReviewRequest(title="Brochure", review_audience=audience),
            caller=submitter(),
        )
    )


def _to_in_review(orchestrator, clock, audience="BOTH"):
    request = _create(orchestrator, audience)
    run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))
    clock.advance(hours=2)
    attorney_ref = PrincipalRef(principal_id=ATTORNEY_ID) if audience != "COMPLIANCE" else None
    run(
        orchestrator.assign_attorney(
            request_id=request.request_id,
            caller=legal_admin(),
            payload=AssignAttorneyPayload(attorney=attorney_ref),
        )
    )
    return request.request_id


def _start_review(orchestrator, request_id, review_kind):
    reviewer = attorney() if review_kind == "LEGAL" else compliance_user()
    return run(
        orchestrator.save_review_progress(
            request_id=request_id,
            caller=reviewer,
            review=review_kind,
            payload=ReviewProgressPayload(),
        )
    )


def test_create_request_starts_in_draft(orchestrator, clock):
    request = _create(orchestrator)
    assert request.status == "DRAFT"
    assert request.request_id.startswith("rr_")
    assert request.created_at == clock.now
    assert request.submitter.principal_id == submitter().principal_id


def test_create_request_requires_submitter_role(orchestrator):
    with pytest.raises(PreconditionViolation) as exc_info:
        run(
            orchestrator.create_request(
                payload=CreateReviewRequest(title="x"), caller=attorney()
            )
        )
    assert exc_info.value.code == "PERMISSION_DENIED"


def test_full_workflow_through_regulatory_documents(orchestrator, clock, permission_sync):
    request_id = _to_in_review(orchestrator, clock)

    clock.advance(hours=1)
    _start_review(orchestrator, request_id, "LEGAL")
    clock.advance(hours=2)
    legal = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED", notes="Fine"),
        )
    )
    assert legal.new_status == "IN_REVIEW"
    assert legal.request.legal_review.status == "COMPLETED"

    _start_review(orchestrator, request_id, "COMPLIANCE")
    clock.advance(hours=1)
    compliance = run(
        orchestrator.submit_compliance_review(
            request_id=request_id,
            caller=compliance_user(),
            payload=SubmitReviewPayload(
                outcome="APPROVED_WITH_COMMENTS",
                notes="Add disclosure",
                foreside_review_required=True,
            ),
        )
    )
    assert compliance.new_status == "CLOSEOUT"
    assert compliance.request.foreside_review_required is True
    assert compliance.request.closeout_started_at == clock.now

    clock.advance(hours=1)
    closeout = run(
        orchestrator.closeout_request(
            request_id=request_id,
            caller=legal_admin(),
            payload=CloseoutPayload(tracking_id="TRK-1", comments_acknowledged=True),
        )
    )
    assert closeout.new_status == "AWAITING_FORESIDE_DOCUMENTS"
    assert closeout.request.tracking_id == "TRK-1"
    assert closeout.request.awaiting_foreside_since == clock.now

    done = run(
        orchestrator.complete_regulatory_documents(
            request_id=request_id,
            caller=submitter(),
            payload=CompleteRegulatoryDocumentsPayload(comments_received=True),
        )
    )
    assert done.new_status == "COMPLETED"
    assert done.request.foreside_comments_received is True

    tracking = done.request.time_tracking
    assert tracking.legal_intake_legal_admin_hours == 2.0
    assert tracking.legal_review_attorney_hours == 3.0
    assert tracking.compliance_review_reviewer_hours == 4.0
    assert tracking.closeout_reviewer_hours == 1.0
    assert tracking.total_reviewer_hours == 10.0
    assert tracking.total_submitter_hours == 0.0

    assert [(call["previous_status"], call["new_status"]) for call in permission_sync.calls] == [
        ("DRAFT", "LEGAL_INTAKE"),
        ("LEGAL_INTAKE", "IN_REVIEW"),
        ("IN_REVIEW", "CLOSEOUT"),
        ("CLOSEOUT", "AWAITING_FORESIDE_DOCUMENTS"),
        ("AWAITING_FORESIDE_DOCUMENTS", "COMPLETED"),
    ]


def test_assign_attorney_starts_required_reviews(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock)
    request = run(orchestrator.get_request(request_id=request_id))
    assert request.status == "IN_REVIEW"
    assert request.attorney.principal_id == ATTORNEY_ID
    assert request.legal_review.status == "NOT_STARTED"
    assert request.legal_review.assigned_reviewer.principal_id == ATTORNEY_ID
    assert request.compliance_review.status == "NOT_STARTED"
    assert request.submitted_for_review_by == legal_admin().principal_id


def test_compliance_only_request_leaves_legal_review_not_required(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="COMPLIANCE")
    request = run(orchestrator.get_request(request_id=request_id))
    assert request.legal_review.status == "NOT_REQUIRED"
    assert request.attorney is None


def test_assign_attorney_requires_attorney_for_legal_review(orchestrator):
    request = _create(orchestrator)
    run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))
    with pytest.raises(PreconditionViolation) as exc_info:
        run(
            orchestrator.assign_attorney(
                request_id=request.request_id,
                caller=legal_admin(),
                payload=AssignAttorneyPayload(),
            )
        )
    assert exc_info.value.code == "ATTORNEY_REQUIRED"
    assert run(orchestrator.get_request(request_id=request.request_id)).status == "LEGAL_INTAKE"


def test_committee_path_assigns_from_assign_attorney(orchestrator, clock):
    request = _create(orchestrator, audience="LEGAL")
    run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))
    sent = run(
        orchestrator.send_to_committee(
            request_id=request.request_id,
            caller=legal_admin(),
            payload=SendToCommitteePayload(notes="Needs specialist"),
        )
    )
    assert sent.new_status == "ASSIGN_ATTORNEY"
    assert sent.request.intake_notes == "Needs specialist"

    clock.advance(hours=3)
    assigned = run(
        orchestrator.assign_attorney(
            request_id=request.request_id,
            caller=assigner(),
            payload=AssignAttorneyPayload(attorney=PrincipalRef(principal_id=ATTORNEY_ID)),
        )
    )
    assert assigned.new_status == "IN_REVIEW"
    assert assigned.request.time_tracking.legal_intake_legal_admin_hours == 3.0


def test_gate_denial_has_no_side_effects(orchestrator, clock, permission_sync, repository):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")
    before = repository.get_request(request_id=request_id)
    calls_before = len(permission_sync.calls)

    with pytest.raises(PreconditionViolation) as exc_info:
        run(
            orchestrator.submit_legal_review(
                request_id=request_id,
                caller=attorney("u_other_attorney"),
                payload=SubmitReviewPayload(outcome="APPROVED"),
            )
        )

    assert exc_info.value.code == "PERMISSION_DENIED"
    assert exc_info.value.reason == "Only the assigned attorney can submit the legal review"
    assert repository.get_request(request_id=request_id) == before
    assert len(permission_sync.calls) == calls_before


def test_legal_only_not_approved_completes_without_closeout(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")
    result = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="NOT_APPROVED"),
        )
    )
    assert result.new_status == "COMPLETED"
    assert result.request.closeout_started_at is None


def test_request_changes_and_resubmit_cycle_tracks_submitter_time(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")

    clock.advance(hours=1)
    changes = run(
        orchestrator.request_review_changes(
            request_id=request_id,
            caller=attorney(),
            review="LEGAL",
            payload=RequestChangesPayload(notes="Update page 2"),
        )
    )
    assert changes.request.legal_review.status == "WAITING_ON_SUBMITTER"
    assert changes.new_status == "IN_REVIEW"

    clock.advance(hours=2)
    resubmitted = run(
        orchestrator.resubmit_for_review(
            request_id=request_id,
            caller=submitter(),
            review="LEGAL",
            payload=ResubmitPayload(notes="Updated"),
        )
    )
    assert resubmitted.request.legal_review.status == "WAITING_ON_REVIEWER"
    assert resubmitted.request.time_tracking.legal_review_submitter_hours == 2.0

    clock.advance(hours=1)
    _start_review(orchestrator, request_id, "LEGAL")
    final = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED"),
        )
    )
    assert final.new_status == "CLOSEOUT"
    tracking = final.request.time_tracking
    assert tracking.legal_review_attorney_hours == 2.0
    assert tracking.total_submitter_hours == 2.0
    assert [note.text for note in final.request.legal_review.notes] == [
        "Update page 2",
        "Updated",
    ]


def test_resubmitted_review_is_submitted_without_saving_progress(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")
    clock.advance(hours=1)
    run(
        orchestrator.request_review_changes(
            request_id=request_id,
            caller=attorney(),
            review="LEGAL",
            payload=RequestChangesPayload(notes="Update page 2"),
        )
    )
    clock.advance(hours=2)
    run(
        orchestrator.resubmit_for_review(
            request_id=request_id, caller=submitter(), review="LEGAL", payload=ResubmitPayload()
        )
    )

    clock.advance(hours=1)
    final = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED"),
        )
    )

    assert final.new_status == "CLOSEOUT"
    assert final.request.legal_review.status == "COMPLETED"
    assert final.request.time_tracking.legal_review_attorney_hours == 2.0
    assert final.request.time_tracking.legal_review_submitter_hours == 2.0


def test_hold_and_resume_exclude_time_on_hold(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")

    clock.advance(hours=1)
    held = run(
        orchestrator.hold_request(
            request_id=request_id, caller=legal_admin(), payload=HoldPayload(reason="Data")
        )
    )
    assert held.new_status == "ON_HOLD"
    assert held.request.previous_status == "IN_REVIEW"
    assert held.request.hold_reason == "Data"
    assert held.request.time_tracking.legal_review_attorney_hours == 1.0

    clock.set(pacific(2026, 5, 6, 9))
    resumed = run(orchestrator.resume_request(request_id=request_id, caller=legal_admin()))
    assert resumed.new_status == "IN_REVIEW"
    assert resumed.request.previous_status is None
    assert resumed.request.hold_reason is None
    assert resumed.request.held_at is None

    clock.advance(hours=2)
    submitted = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED"),
        )
    )
    assert submitted.request.time_tracking.legal_review_attorney_hours == 3.0


def test_cancel_from_hold_clears_hold_fields(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock)
    run(
        orchestrator.hold_request(
            request_id=request_id, caller=legal_admin(), payload=HoldPayload(reason="Paused")
        )
    )
    cancelled = run(
        orchestrator.cancel_request(
            request_id=request_id, caller=admin(), payload=CancelPayload(reason="Withdrawn")
        )
    )
    assert cancelled.new_status == "CANCELLED"
    assert cancelled.request.previous_status == "ON_HOLD"
    assert cancelled.request.cancel_reason == "Withdrawn"
    assert cancelled.request.hold_reason is None


def test_closeout_requires_tracking_id_when_flagged(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="COMPLIANCE")
    _start_review(orchestrator, request_id, "COMPLIANCE")
    run(
        orchestrator.submit_compliance_review(
            request_id=request_id,
            caller=compliance_user(),
            payload=SubmitReviewPayload(outcome="APPROVED", retail_use=True),
        )
    )
    with pytest.raises(PreconditionViolation) as exc_info:
        run(
            orchestrator.closeout_request(
                request_id=request_id, caller=legal_admin(), payload=CloseoutPayload()
            )
        )
    assert exc_info.value.code == "TRACKING_ID_REQUIRED"

    result = run(
        orchestrator.closeout_request(
            request_id=request_id,
            caller=legal_admin(),
            payload=CloseoutPayload(tracking_id="TRK-9"),
        )
    )
    assert result.new_status == "COMPLETED"


def test_closeout_requires_acknowledging_reviewer_comments(orchestrator, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")
    run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED_WITH_COMMENTS"),
        )
    )
    with pytest.raises(PreconditionViolation) as exc_info:
        run(
            orchestrator.closeout_request(
                request_id=request_id, caller=legal_admin(), payload=CloseoutPayload()
            )
        )
    assert exc_info.value.code == "COMMENTS_ACKNOWLEDGEMENT_REQUIRED"


def test_save_draft_updates_fields_without_permission_sync(orchestrator, permission_sync):
    request = _create(orchestrator)
    result = run(
        orchestrator.save_draft(
            request_id=request.request_id,
            caller=submitter(),
            payload=SaveDraftPayload(title="Renamed", review_audience="LEGAL"),
        )
    )
    assert result.new_status == "DRAFT"
    assert result.fields_changed == ["review_audience", "title"]
    assert result.request.title == "Renamed"
    assert permission_sync.calls == []


def test_expected_status_mismatch_is_a_conflict(orchestrator):
    request = _create(orchestrator)
    with pytest.raises(StateConflictError, match="STATE_CONFLICT"):
        run(
            orchestrator.submit_request(
                request_id=request.request_id,
                caller=submitter(),
                context=ActionContext(expected_status="IN_REVIEW"),
            )
        )


def test_expected_status_can_be_required(repository, permission_sync, clock):
    strict = WorkflowActionOrchestrator(
        repository=repository,
        permission_sync=permission_sync,
        working_hours=StaticWorkingHoursConfigProvider(),
        clock=clock,
        require_expected_status=True,
    )
    request = _create(strict)
    with pytest.raises(StateConflictError, match="expected_status is required"):
        run(strict.submit_request(request_id=request.request_id, caller=submitter()))
    result = run(
        strict.submit_request(
            request_id=request.request_id,
            caller=submitter(),
            context=ActionContext(expected_status="DRAFT"),
        )
    )
    assert result.new_status == "LEGAL_INTAKE"


def test_idempotency_key_replays_result(orchestrator, permission_sync):
    request = _create(orchestrator)
    context = ActionContext(idempotency_key="submit-1", correlation_id="corr-1")
    first = run(
        orchestrator.submit_request(
            request_id=request.request_id, caller=submitter(), context=context
        )
    )
    second = run(
        orchestrator.submit_request(
            request_id=request.request_id, caller=submitter(), context=context
        )
    )
    assert first.replayed is False
    assert second.replayed is True
    assert second.new_status == first.new_status
    assert second.fields_changed == first.fields_changed
    assert second.correlation_id == "corr-1"
    assert len(permission_sync.calls) == 1


def test_idempotency_key_reuse_with_different_payload_conflicts(orchestrator):
    request = _create(orchestrator)
    context = ActionContext(idempotency_key="draft-1")
    run(
        orchestrator.save_draft(
            request_id=request.request_id,
            caller=submitter(),
            payload=SaveDraftPayload(title="A"),
            context=context,
        )
    )
    with pytest.raises(IdempotencyConflictError, match="IDEMPOTENCY_KEY_CONFLICT"):
        run(
            orchestrator.save_draft(
                request_id=request.request_id,
                caller=submitter(),
                payload=SaveDraftPayload(title="B"),
                context=context,
            )
        )


def test_permission_sync_failure_does_not_fail_committed_transition(
    repository, clock, orchestrator, caplog
):
    failing = RecordingPermissionSyncClient(
        [PermissionSyncFailure("HTTP 503", status_code=503, transient=True)] * 3
    )
    orchestrator._permission_sync = failing
    request = _create(orchestrator)

    with caplog.at_level(logging.WARNING):
        result = run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))

    assert result.new_status == "LEGAL_INTAKE"
    assert repository.get_request(request_id=request.request_id).status == "LEGAL_INTAKE"
    assert result.diagnostics.permission_sync_error.startswith("PERMISSION_SYNC_FAILED")
    assert len(failing.calls) == 3
    assert "review_request.permission_sync.failed" in caplog.text


def test_permission_sync_rejection_is_reported_without_retry(orchestrator):
    rejecting = RecordingPermissionSyncClient(
        [PermissionSyncResult(success=False, status_code=400, message="bad item")]
    )
    orchestrator._permission_sync = rejecting
    request = _create(orchestrator)
    result = run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))
    assert result.diagnostics.permission_sync.success is False
    assert result.diagnostics.permission_sync_error is None
    assert len(rejecting.calls) == 1


class _BrokenRepository(InMemoryReviewRequestRepository):
    def apply_delta(self, *, request_id, delta):
        raise OSError("connection reset")


def test_store_failure_surfaces_as_persistence_failure(permission_sync, clock):
    repository = _BrokenRepository()
    orchestrator = WorkflowActionOrchestrator(
        repository=repository,
        permission_sync=permission_sync,
        working_hours=StaticWorkingHoursConfigProvider(),
        clock=clock,
    )
    request = _create(orchestrator)
    with pytest.raises(PersistenceFailure, match="PERSISTENCE_FAILURE: apply_delta"):
        run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))
    assert permission_sync.calls == []


class _ReloadFailsAfterWrite(InMemoryReviewRequestRepository):
    def __init__(self):
        super().__init__()
        self.fail_next_read = False

    def apply_delta(self, *, request_id, delta):
        super().apply_delta(request_id=request_id, delta=delta)
        self.fail_next_read = True

    def get_request(self, *, request_id):
        if self.fail_next_read:
            self.fail_next_read = False
            raise OSError("connection reset")
        return super().get_request(request_id=request_id)


def test_failed_reload_after_write_still_returns_the_committed_result(
    permission_sync, notifications, clock, caplog
):
    repository = _ReloadFailsAfterWrite()
    orchestrator = WorkflowActionOrchestrator(
        repository=repository,
        permission_sync=permission_sync,
        working_hours=StaticWorkingHoursConfigProvider(),
        notifications=notifications,
        clock=clock,
    )
    request = _create(orchestrator)
    context = ActionContext(idempotency_key="submit-flaky")

    with caplog.at_level(logging.WARNING):
        result = run(
            orchestrator.submit_request(
                request_id=request.request_id, caller=submitter(), context=context
            )
        )

    assert result.new_status == "LEGAL_INTAKE"
    assert result.request.status == "LEGAL_INTAKE"
    assert result.request.submitted_by == submitter().principal_id
    assert result.diagnostics.request_reload_error == "PERSISTENCE_FAILURE: get_request"
    assert "review_request.reload_failed" in caplog.text
    assert repository.get_request(request_id=request.request_id).status == "LEGAL_INTAKE"
    assert len(permission_sync.calls) == 1
    assert notifications.events == [(request.request_id, "REQUEST_SUBMITTED")]

    replay = run(
        orchestrator.submit_request(
            request_id=request.request_id, caller=submitter(), context=context
        )
    )
    assert replay.replayed is True
    assert replay.new_status == "LEGAL_INTAKE"
    assert len(permission_sync.calls) == 1


def test_notifications_follow_the_workflow(orchestrator, notifications, clock):
    request_id = _to_in_review(orchestrator, clock, audience="LEGAL")
    _start_review(orchestrator, request_id, "LEGAL")
    run(
        orchestrator.request_review_changes(
            request_id=request_id,
            caller=attorney(),
            review="LEGAL",
            payload=RequestChangesPayload(notes="Update page 2"),
        )
    )
    run(
        orchestrator.resubmit_for_review(
            request_id=request_id, caller=submitter(), review="LEGAL", payload=ResubmitPayload()
        )
    )
    result = run(
        orchestrator.submit_legal_review(
            request_id=request_id,
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED"),
        )
    )

    assert [event for _, event in notifications.events] == [
        "REQUEST_SUBMITTED",
        "ATTORNEY_ASSIGNED",
        "LEGAL_CHANGES_REQUESTED",
        "RESUBMISSION_RECEIVED_LEGAL",
        "READY_FOR_CLOSEOUT",
    ]
    assert result.diagnostics.notification.event == "READY_FOR_CLOSEOUT"
    assert result.diagnostics.notification.sent is True


def test_actions_without_a_visible_change_send_no_notification(orchestrator, notifications):
    request = _create(orchestrator)
    result = run(
        orchestrator.save_draft(
            request_id=request.request_id,
            caller=submitter(),
            payload=SaveDraftPayload(title="Renamed"),
        )
    )
    assert notifications.events == []
    assert result.diagnostics.notification is None


def test_notification_failure_is_reported_in_diagnostics(
    repository, orchestrator, notifications, caplog
):
    notifications._outcomes = [NotificationFailure("NOTIFICATION_TIMEOUT", transient=True)] * 2
    request = _create(orchestrator)

    with caplog.at_level(logging.WARNING):
        result = run(orchestrator.submit_request(request_id=request.request_id, caller=submitter()))

    assert result.new_status == "LEGAL_INTAKE"
    assert repository.get_request(request_id=request.request_id).status == "LEGAL_INTAKE"
    assert result.diagnostics.notification is None
    assert result.diagnostics.notification_error == "NOTIFICATION_FAILED: NOTIFICATION_TIMEOUT"
    assert len(notifications.events) == 2
    assert "review_request.notification.failed" in caplog.text


def test_missing_request_raises_not_found(orchestrator):
    with pytest.raises(ReviewRequestNotFoundError):
        run(orchestrator.submit_request(request_id="rr_missing", caller=submitter()))


def test_degraded_time_tracking_never_blocks_the_action(orchestrator, repository):
    request = review_request(
        request_id="rr_degraded",
        status="IN_REVIEW",
        review_audience="LEGAL",
        legal_review=review("IN_PROGRESS"),
        attorney_id=ATTORNEY_ID,
    )
    repository.create_request(request)
    result = run(
        orchestrator.submit_legal_review(
            request_id="rr_degraded",
            caller=attorney(),
            payload=SubmitReviewPayload(outcome="APPROVED"),
        )
    )
    assert result.new_status == "CLOSEOUT"
    assert result.diagnostics.time_tracking_warnings[0].startswith(TIME_TRACKING_DEGRADED)
    assert result.request.time_tracking.total_reviewer_hours == 0.0


def test_available_actions_for_caller(orchestrator):
    request = _create(orchestrator)
    actions = run(
        orchestrator.get_available_actions(request_id=request.request_id, caller=submitter())
    )
    allowed = sorted(action for action, decision in actions.items() if decision.allowed)
    assert allowed == ["CANCEL_REQUEST", "SAVE_DRAFT", "SUBMIT_REQUEST"]
