from typing import Optional, Protocol

from src.core.review_requests.business_hours import WorkingHoursConfig
from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.models import (
    ActionReceipt,
    NotificationEvent,
    NotificationResult,
    PermissionSyncResult,
    RequestStatus,
    ReviewRequest,
)


class ReviewRequestRepository(Protocol):
    def create_request(self, request: ReviewRequest) -> None: ...

    def get_request(self, *, request_id: str) -> Optional[ReviewRequest]: ...

    def apply_delta(self, *, request_id: str, delta: RequestDelta) -> None: ...

    def get_action_receipt(self, *, idempotency_key: str) -> Optional[ActionReceipt]: ...

    def save_action_receipt(self, receipt: ActionReceipt) -> None: ...


class PermissionSyncClient(Protocol):
    async def sync_permissions(
        self,
        *,
        request_id: str,
        new_status: RequestStatus,
        previous_status: Optional[RequestStatus] = None,
    ) -> PermissionSyncResult: ...


class NotificationClient(Protocol):
    async def send_notification(
        self, *, request_id: str, event: NotificationEvent
    ) -> NotificationResult: ...


class WorkingHoursConfigProvider(Protocol):
    async def get_working_hours_config(self) -> WorkingHoursConfig: ...
