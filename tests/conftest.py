"""
FILE: tests/conftest.py
Shared fixtures for review request workflow tests.
"""

from pathlib import Path

import pytest

from src.api.routers.review_requests_config import reset_workflow_orchestrator_for_tests
from src.core.common.retry import RetryPolicy
from src.core.review_requests.errors import is_transient_downstream_error
from src.core.review_requests.orchestrator import WorkflowActionOrchestrator
from src.core.review_requests.working_hours import StaticWorkingHoursConfigProvider
from src.infrastructure.review_requests import InMemoryReviewRequestRepository
from tests.factories import (
    MutableClock,
    RecordingNotificationClient,
    RecordingPermissionSyncClient,
    pacific,
)


def _has_marker(item: pytest.Item, name: str) -> bool:
    return item.get_closest_marker(name) is not None


def pytest_collection_modifyitems(items: list[pytest.Item]) -> None:
    for item in items:
        if _has_marker(item, "unit") or _has_marker(item, "integration"):
            continue

        path = Path(str(item.fspath)).as_posix().lower()
        if "/tests/integration/" in path or "_integration.py" in path:
            item.add_marker(pytest.mark.integration)
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture(autouse=True)
def review_request_runtime_harness(monkeypatch: pytest.MonkeyPatch):
    """Run every test against the in-memory store with outbound calls switched off."""

    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", "IN_MEMORY")
    monkeypatch.setenv("PERMISSION_SYNC_ENABLED", "false")
    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "false")
    monkeypatch.delenv("APP_PERSISTENCE_PROFILE", raising=False)
    reset_workflow_orchestrator_for_tests()
    yield
    reset_workflow_orchestrator_for_tests()


async def _no_sleep(_delay: float) -> None:
    return None


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(pacific(2026, 5, 4, 9))


@pytest.fixture
def repository() -> InMemoryReviewRequestRepository:
    return InMemoryReviewRequestRepository()


@pytest.fixture
def permission_sync() -> RecordingPermissionSyncClient:
    return RecordingPermissionSyncClient()


@pytest.fixture
def notifications() -> RecordingNotificationClient:
    return RecordingNotificationClient()


@pytest.fixture
def orchestrator(
    repository, permission_sync, notifications, clock
) -> WorkflowActionOrchestrator:
    return WorkflowActionOrchestrator(
        repository=repository,
        permission_sync=permission_sync,
        working_hours=StaticWorkingHoursConfigProvider(),
        permission_sync_retry=RetryPolicy(
            max_attempts=3,
            backoff=lambda _attempt: 0.0,
            is_retryable=is_transient_downstream_error,
            sleep=_no_sleep,
        ),
        notifications=notifications,
        notification_retry=RetryPolicy(
            max_attempts=2,
            backoff=lambda _attempt: 0.0,
            is_retryable=is_transient_downstream_error,
            sleep=_no_sleep,
        ),
        clock=clock,
    )
