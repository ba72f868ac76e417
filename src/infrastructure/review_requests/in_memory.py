from copy import deepcopy
from threading import Lock
from typing import Optional

from src.core.review_requests.delta import RequestDelta
from src.core.review_requests.errors import ReviewRequestNotFoundError
from src.core.review_requests.models import ActionReceipt, ReviewRequest
from src.core.review_requests.repository import ReviewRequestRepository


class InMemoryReviewRequestRepository(ReviewRequestRepository):
    def __init__(self) -> None:
        self._lock = Lock()
        self._requests: dict[str, ReviewRequest] = {}
        self._receipts: dict[str, ActionReceipt] = {}

    def create_request(self, request: ReviewRequest) -> None:
        with self._lock:
            self._requests[request.request_id] = deepcopy(request)

    def get_request(self, *, request_id: str) -> Optional[ReviewRequest]:
        with self._lock:
            request = self._requests.get(request_id)
            return deepcopy(request) if request is not None else None

    def apply_delta(self, *, request_id: str, delta: RequestDelta) -> None:
        with self._lock:
            current = self._requests.get(request_id)
            if current is None:
                raise ReviewRequestNotFoundError("REVIEW_REQUEST_NOT_FOUND")
            self._requests[request_id] = delta.apply_to(current)

    def get_action_receipt(self, *, idempotency_key: str) -> Optional[ActionReceipt]:
        with self._lock:
            receipt = self._receipts.get(idempotency_key)
            return deepcopy(receipt) if receipt is not None else None

    def save_action_receipt(self, receipt: ActionReceipt) -> None:
        with self._lock:
            self._receipts[receipt.idempotency_key] = deepcopy(receipt)
