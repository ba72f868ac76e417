import asyncio
from typing import Optional


class ReviewRequestWorkflowError(Exception):
    pass


class ReviewRequestNotFoundError(ReviewRequestWorkflowError):
    pass


class PreconditionViolation(ReviewRequestWorkflowError):
    """Caller role or request state does not permit the action.

    ``code`` is a stable upper-snake identifier; ``reason`` is the human-readable
    denial text produced by the permission gate.
    """

    def __init__(self, code: str, reason: str) -> None:
        super().__init__(f"{code}: {reason}")
        self.code = code
        self.reason = reason


class InvalidStateTransition(ReviewRequestWorkflowError):
    pass


class UnknownRequestStatusError(ReviewRequestWorkflowError):
    pass


class StateConflictError(ReviewRequestWorkflowError):
    pass


class IdempotencyConflictError(ReviewRequestWorkflowError):
    pass


class PersistenceFailure(ReviewRequestWorkflowError):
    pass


class DownstreamCallFailure(ReviewRequestWorkflowError):
    """A best-effort call to a downstream service failed.

    ``transient`` failures (timeouts, throttling, 5xx) are retried; ``retry_after_seconds``
    carries the server hint when one was sent.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        transient: bool = False,
        retry_after_seconds: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.transient = transient
        self.retry_after_seconds = retry_after_seconds


class PermissionSyncFailure(DownstreamCallFailure):
    pass


class NotificationFailure(DownstreamCallFailure):
    pass


def is_transient_downstream_error(exc: BaseException) -> bool:
    if isinstance(exc, DownstreamCallFailure):
        return exc.transient
    return isinstance(exc, (TimeoutError, asyncio.TimeoutError, ConnectionError))


TIME_TRACKING_DEGRADED = "TIME_TRACKING_DEGRADED"
