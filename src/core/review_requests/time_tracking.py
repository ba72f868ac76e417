"""
Business-hours time tracking per workflow stage.

Every stage has an owner (reviewer or submitter) and a reference timestamp. When
ownership changes, the elapsed business hours since the reference are credited to
the previous owner. Hold and cancel pause tracking, resume restarts the reference.
Problems with timestamps degrade to zero hours plus a warning and never raise.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal, Optional

from src.core.review_requests.business_hours import (
    WorkingHoursConfig,
    as_utc,
    elapsed_business_hours,
)
from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.errors import TIME_TRACKING_DEGRADED
from src.core.review_requests.models import RequestStatus, ReviewRequest, TimeTracking

logger = logging.getLogger(__name__)

TimeTrackingStage = Literal["LEGAL_INTAKE", "LEGAL_REVIEW", "COMPLIANCE_REVIEW", "CLOSEOUT"]
StageOwner = Literal["REVIEWER", "SUBMITTER"]

_STAGE_BUCKETS: dict[tuple[TimeTrackingStage, StageOwner], str] = {
    ("LEGAL_INTAKE", "REVIEWER"): "legal_intake_legal_admin_hours",
    ("LEGAL_INTAKE", "SUBMITTER"): "legal_intake_submitter_hours",
    ("LEGAL_REVIEW", "REVIEWER"): "legal_review_attorney_hours",
    ("LEGAL_REVIEW", "SUBMITTER"): "legal_review_submitter_hours",
    ("COMPLIANCE_REVIEW", "REVIEWER"): "compliance_review_reviewer_hours",
    ("COMPLIANCE_REVIEW", "SUBMITTER"): "compliance_review_submitter_hours",
    ("CLOSEOUT", "REVIEWER"): "closeout_reviewer_hours",
    ("CLOSEOUT", "SUBMITTER"): "closeout_submitter_hours",
}

_REFERENCE_FIELDS: dict[TimeTrackingStage, str] = {
    "LEGAL_INTAKE": "intake_started_at",
    "LEGAL_REVIEW": "legal_review.status_updated_at",
    "COMPLIANCE_REVIEW": "compliance_review.status_updated_at",
    "CLOSEOUT": "closeout_started_at",
}

_REVIEWER_OWNED_STATUSES = {"NOT_STARTED", "IN_PROGRESS", "WAITING_ON_REVIEWER"}


@dataclass(frozen=True)
class TimeTrackingDelta:
    delta: RequestDelta = field(default_factory=RequestDelta)
    hours_added: float = 0.0
    warnings: list[str] = field(default_factory=list)

    def combine(self, other: "TimeTrackingDelta") -> "TimeTrackingDelta":
        return TimeTrackingDelta(
            delta=self.delta.merge(other.delta),
            hours_added=round(self.hours_added + other.hours_added, 1),
            warnings=[*self.warnings, *other.warnings],
        )


def stage_owner(request: ReviewRequest, stage: TimeTrackingStage) -> Optional[StageOwner]:
    if stage == "LEGAL_INTAKE":
        return "REVIEWER" if request.status in {"LEGAL_INTAKE", "ASSIGN_ATTORNEY"} else None
    if stage == "CLOSEOUT":
        return "REVIEWER" if request.status == "CLOSEOUT" else None
    review = request.legal_review if stage == "LEGAL_REVIEW" else request.compliance_review
    if review.status in _REVIEWER_OWNED_STATUSES:
        return "REVIEWER"
    if review.status == "WAITING_ON_SUBMITTER":
        return "SUBMITTER"
    return None


def stage_reference_time(request: ReviewRequest, stage: TimeTrackingStage) -> Optional[datetime]:
    if stage == "LEGAL_INTAKE":
        return request.intake_started_at or request.submitted_at
    if stage == "LEGAL_REVIEW":
        return request.legal_review.status_updated_at
    if stage == "COMPLIANCE_REVIEW":
        return request.compliance_review.status_updated_at
    if request.closeout_started_at is not None:
        return request.closeout_started_at
    completions = [
        stamp
        for stamp in (request.legal_review.completed_at, request.compliance_review.completed_at)
        if stamp is not None
    ]
    return max(completions) if completions else None


def active_stages(
    request: ReviewRequest, status: Optional[RequestStatus] = None
) -> list[TimeTrackingStage]:
    effective_status = status or request.status
    if effective_status in {"LEGAL_INTAKE", "ASSIGN_ATTORNEY"}:
        return ["LEGAL_INTAKE"]
    if effective_status == "CLOSEOUT":
        return ["CLOSEOUT"]
    if effective_status != "IN_REVIEW":
        return []
    review_stages: list[TimeTrackingStage] = ["LEGAL_REVIEW", "COMPLIANCE_REVIEW"]
    return [stage for stage in review_stages if stage_owner(request, stage) is not None]


def calculate_and_update_stage_time(
    request: ReviewRequest,
    stage: TimeTrackingStage,
    handoff_target: Optional[StageOwner],
    *,
    now: datetime,
    config: WorkingHoursConfig,
) -> TimeTrackingDelta:
    """Credit the current stage owner with business hours since the stage reference.

    Never raises: a missing reference or a reference in the future contributes zero
    hours and is reported through ``warnings``.
    """
    owner = stage_owner(request, stage)
    if owner is None:
        return TimeTrackingDelta()

    reference = stage_reference_time(request, stage)
    if reference is None:
        return _degraded(request, stage, "reference timestamp missing")
    if as_utc(reference) > as_utc(now):
        return _degraded(request, stage, "reference timestamp is after now")

    hours = elapsed_business_hours(reference, now, config)
    if hours <= 0:
        return TimeTrackingDelta()

    bucket = _STAGE_BUCKETS[(stage, owner)]
    updated = request.time_tracking.model_copy(
        update={bucket: round(getattr(request.time_tracking, bucket) + hours, 1)}
    )
    updated = _with_totals(updated)
    delta = RequestDelta().set_model_changes("time_tracking", request.time_tracking, updated)
    logger.debug(
        "review_request.time_tracking.stage_credited",
        extra={
            "extra_fields": {
                "request_id": request.request_id,
                "stage": stage,
                "owner": owner,
                "handoff_target": handoff_target,
                "hours": hours,
            }
        },
    )
    return TimeTrackingDelta(delta=delta, hours_added=hours)


def pause_time_tracking(
    request: ReviewRequest, *, now: datetime, config: WorkingHoursConfig
) -> TimeTrackingDelta:
    result = TimeTrackingDelta()
    working = request
    for stage in active_stages(request):
        stage_result = calculate_and_update_stage_time(
            working, stage, None, now=now, config=config
        )
        if len(stage_result.delta):
            working = stage_result.delta.apply_to(working)
        result = result.combine(stage_result)
    return result


def resume_time_tracking(
    request: ReviewRequest, resumed_status: RequestStatus, *, now: datetime
) -> TimeTrackingDelta:
    """Move every owned stage reference of ``resumed_status`` to ``now``.

    Wall-clock time spent on hold is therefore never credited to anyone.
    """
    delta = RequestDelta()
    for stage in active_stages(request, status=resumed_status):
        delta.set(_REFERENCE_FIELDS[stage], now)
    return TimeTrackingDelta(delta=delta)


def _with_totals(tracking: TimeTracking) -> TimeTracking:
    reviewer = sum(
        getattr(tracking, bucket)
        for (_, owner), bucket in _STAGE_BUCKETS.items()
        if owner == "REVIEWER"
    )
    submitter = sum(
        getattr(tracking, bucket)
        for (_, owner), bucket in _STAGE_BUCKETS.items()
        if owner == "SUBMITTER"
    )
    return tracking.model_copy(
        update={
            "total_reviewer_hours": max(round(reviewer, 1), tracking.total_reviewer_hours),
            "total_submitter_hours": max(round(submitter, 1), tracking.total_submitter_hours),
        }
    )


def _degraded(request: ReviewRequest, stage: TimeTrackingStage, detail: str) -> TimeTrackingDelta:
    warning = f"{TIME_TRACKING_DEGRADED}: {stage} {detail}"
    logger.warning(
        "review_request.time_tracking.degraded",
        extra={
            "extra_fields": {
                "request_id": request.request_id,
                "stage": stage,
                "detail": detail,
            }
        },
    )
    return TimeTrackingDelta(warnings=[warning])
