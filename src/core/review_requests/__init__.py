from src.core.review_requests.business_hours import (
    DEFAULT_WORKING_HOURS,
    WorkingHoursConfig,
    elapsed_business_hours,
)
from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.errors import (
    IdempotencyConflictError,
    InvalidStateTransition,
    NotificationFailure,
    PermissionSyncFailure,
    PersistenceFailure,
    PreconditionViolation,
    ReviewRequestNotFoundError,
    ReviewRequestWorkflowError,
    StateConflictError,
    UnknownRequestStatusError,
)
from src.core.review_requests.models import (
    ActionContext,
    ActionReceipt,
    Caller,
    CreateReviewRequest,
    NotificationResult,
    PermissionDecision,
    PermissionSyncResult,
    PrincipalRef,
    ReviewRequest,
    ReviewState,
    TimeTracking,
    WorkflowActionResult,
)
from src.core.review_requests.orchestrator import WorkflowActionOrchestrator
from src.core.review_requests.repository import (
    NotificationClient,
    PermissionSyncClient,
    ReviewRequestRepository,
    WorkingHoursConfigProvider,
)

__all__ = [
    "ActionContext",
    "ActionReceipt",
    "Caller",
    "CreateReviewRequest",
    "DEFAULT_WORKING_HOURS",
    "IdempotencyConflictError",
    "InvalidStateTransition",
    "NotificationClient",
    "NotificationFailure",
    "NotificationResult",
    "PermissionDecision",
    "PermissionSyncClient",
    "PermissionSyncFailure",
    "PermissionSyncResult",
    "PersistenceFailure",
    "PreconditionViolation",
    "PrincipalRef",
    "RequestDelta",
    "ReviewRequest",
    "ReviewRequestNotFoundError",
    "ReviewRequestRepository",
    "ReviewRequestWorkflowError",
    "ReviewState",
    "StateConflictError",
    "TimeTracking",
    "UnknownRequestStatusError",
    "WorkflowActionOrchestrator",
    "WorkflowActionResult",
    "WorkingHoursConfig",
    "WorkingHoursConfigProvider",
    "elapsed_business_hours",
]
