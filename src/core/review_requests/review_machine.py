"""
Review sub-state-machine shared by the legal and compliance reviews.

Functions are pure: they return a new ``ReviewState`` and never touch the request.
Role and request-status checks belong to the permission gate.
"""

from datetime import datetime
from typing import Optional

from src.core.review_requests.errors import InvalidStateTransition
from src.core.review_requests.models import ReviewNote, ReviewOutcome, ReviewState

RESPOND = "RESPOND_TO_COMMENTS_AND_RESUBMIT"


def submit(
    review: ReviewState,
    outcome: ReviewOutcome,
    notes: Optional[str],
    *,
    actor_id: str,
    now: datetime,
) -> ReviewState:
    update = {
        "outcome": outcome,
        "notes": _append_note(review, notes, actor_id=actor_id, now=now),
        "status_updated_at": now,
        "status_updated_by": actor_id,
    }
    if outcome == RESPOND:
        update["status"] = "WAITING_ON_SUBMITTER"
    else:
        update.update(status="COMPLETED", completed_at=now, completed_by=actor_id)
    return review.model_copy(update=update)


def resubmit(
    review: ReviewState,
    notes: Optional[str] = None,
    *,
    actor_id: str,
    now: datetime,
) -> ReviewState:
    if review.status != "WAITING_ON_SUBMITTER" or review.outcome != RESPOND:
        raise InvalidStateTransition(
            "INVALID_TRANSITION: resubmit requires WAITING_ON_SUBMITTER with "
            f"{RESPOND} (status={review.status}, outcome={review.outcome})"
        )
    return review.model_copy(
        update={
            "status": "WAITING_ON_REVIEWER",
            "notes": _append_note(review, notes, actor_id=actor_id, now=now),
            "status_updated_at": now,
            "status_updated_by": actor_id,
        }
    )


def request_changes(
    review: ReviewState, notes: str, *, actor_id: str, now: datetime
) -> ReviewState:
    return submit(review, RESPOND, notes, actor_id=actor_id, now=now)


def save_progress(
    review: ReviewState,
    partial_outcome: Optional[ReviewOutcome] = None,
    notes: Optional[str] = None,
    *,
    actor_id: str,
    now: datetime,
) -> ReviewState:
    update: dict = {"status": "IN_PROGRESS"}
    # repeated saves keep the business-hours reference point
    if review.status != "IN_PROGRESS":
        update.update(status_updated_at=now, status_updated_by=actor_id)
    if partial_outcome is not None:
        update["outcome"] = partial_outcome
    if notes:
        update["notes"] = _append_note(review, notes, actor_id=actor_id, now=now)
    return review.model_copy(update=update)


def start(review: ReviewState, *, actor_id: str, now: datetime) -> ReviewState:
    """Open a required review for work (NOT_REQUIRED/NOT_STARTED -> NOT_STARTED)."""
    return review.model_copy(
        update={
            "status": "NOT_STARTED",
            "outcome": None,
            "status_updated_at": now,
            "status_updated_by": actor_id,
            "completed_at": None,
            "completed_by": None,
        }
    )


def _append_note(
    review: ReviewState, text: Optional[str], *, actor_id: str, now: datetime
) -> list[ReviewNote]:
    if not text:
        return list(review.notes)
    return [*review.notes, ReviewNote(author_id=actor_id, text=text, recorded_at=now)]
