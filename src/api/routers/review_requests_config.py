import os
from typing import Optional, cast

from src.core.common.retry import RetryPolicy, exponential_backoff
from src.core.common.ttl_cache import ReadThroughCache
from src.core.review_requests.business_hours import (
    WorkingHoursConfig,
    parse_working_hours_config,
)
from src.core.review_requests.errors import is_transient_downstream_error
from src.core.review_requests.orchestrator import WorkflowActionOrchestrator
from src.core.review_requests.repository import (
    NotificationClient,
    PermissionSyncClient,
    ReviewRequestRepository,
    WorkingHoursConfigProvider,
)
from src.core.review_requests.working_hours import CachedWorkingHoursConfigProvider
from src.infrastructure.notifications import (
    DisabledNotificationClient,
    HttpNotificationClient,
)
from src.infrastructure.permission_sync import (
    DisabledPermissionSyncClient,
    HttpPermissionSyncClient,
)
from src.infrastructure.review_requests import (
    InMemoryReviewRequestRepository,
    PostgresReviewRequestRepository,
)

_ORCHESTRATOR: Optional[WorkflowActionOrchestrator] = None


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        parsed = float(value)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def review_request_store_backend_name() -> str:
    backend = os.getenv("REVIEW_REQUEST_STORE_BACKEND", "IN_MEMORY").strip().upper()
    if backend not in {"IN_MEMORY", "POSTGRES"}:
        raise RuntimeError("REVIEW_REQUEST_STORE_BACKEND_UNSUPPORTED")
    return backend


def review_request_postgres_dsn() -> str:
    return os.getenv("REVIEW_REQUEST_POSTGRES_DSN", "").strip()


def permission_sync_enabled() -> bool:
    return _env_flag("PERMISSION_SYNC_ENABLED", False)


def permission_sync_base_url() -> str:
    return os.getenv("PERMISSION_SYNC_BASE_URL", "").strip()


def permission_sync_api_key() -> Optional[str]:
    return os.getenv("PERMISSION_SYNC_API_KEY", "").strip() or None


def permission_sync_timeout_seconds() -> float:
    return _env_float("PERMISSION_SYNC_TIMEOUT_SECONDS", 30.0)


def permission_sync_max_attempts() -> int:
    return int(_env_float("PERMISSION_SYNC_MAX_ATTEMPTS", 3))


def permission_sync_max_delay_seconds() -> float:
    return _env_float("PERMISSION_SYNC_MAX_DELAY_SECONDS", 30.0)


def notifications_enabled() -> bool:
    return _env_flag("NOTIFICATIONS_ENABLED", False)


def notifications_base_url() -> str:
    return os.getenv("NOTIFICATIONS_BASE_URL", "").strip()


def notifications_api_key() -> Optional[str]:
    return os.getenv("NOTIFICATIONS_API_KEY", "").strip() or None


def notifications_timeout_seconds() -> float:
    return _env_float("NOTIFICATIONS_TIMEOUT_SECONDS", 10.0)


def notifications_max_attempts() -> int:
    return int(_env_float("NOTIFICATIONS_MAX_ATTEMPTS", 2))


def working_hours_cache_ttl_seconds() -> float:
    return _env_float("WORKING_HOURS_CACHE_TTL_SECONDS", 300.0)


def _postgres_connection_exception_types() -> tuple[type[BaseException], ...]:
    types: list[type[BaseException]] = [
        ConnectionError,
        OSError,
        TimeoutError,
        TypeError,
        ValueError,
    ]
    try:
        import psycopg
    except ImportError:
        pass
    else:
        types.append(psycopg.Error)
    return tuple(types)


class EnvWorkingHoursConfigProvider:
    """Reads ``WORKING_HOURS_*`` settings on every call; invalid values fall back per field."""

    async def get_working_hours_config(self) -> WorkingHoursConfig:
        return parse_working_hours_config(
            os.getenv("WORKING_HOURS_START"),
            os.getenv("WORKING_HOURS_END"),
            os.getenv("WORKING_HOURS_DAYS"),
            os.getenv("WORKING_HOURS_TIMEZONE"),
        )


def build_repository() -> ReviewRequestRepository:
    backend = review_request_store_backend_name()
    if backend == "POSTGRES":
        dsn = review_request_postgres_dsn()
        if not dsn:
            raise RuntimeError("REVIEW_REQUEST_POSTGRES_DSN_REQUIRED")
        try:
            return cast(ReviewRequestRepository, PostgresReviewRequestRepository(dsn=dsn))
        except RuntimeError:
            raise
        except _postgres_connection_exception_types() as exc:
            raise RuntimeError("REVIEW_REQUEST_POSTGRES_CONNECTION_FAILED") from exc
    return cast(ReviewRequestRepository, InMemoryReviewRequestRepository())


def build_permission_sync_client() -> PermissionSyncClient:
    if not permission_sync_enabled():
        return DisabledPermissionSyncClient()
    base_url = permission_sync_base_url()
    if not base_url:
        raise RuntimeError("PERMISSION_SYNC_BASE_URL_REQUIRED")
    return HttpPermissionSyncClient(
        base_url=base_url,
        api_key=permission_sync_api_key(),
        timeout=permission_sync_timeout_seconds(),
    )


def build_permission_sync_retry() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=permission_sync_max_attempts(),
        backoff=exponential_backoff(base_seconds=1.0, max_seconds=30.0),
        is_retryable=is_transient_downstream_error,
        attempt_timeout_seconds=permission_sync_timeout_seconds(),
        max_delay_seconds=permission_sync_max_delay_seconds(),
    )


def build_notification_client() -> NotificationClient:
    if not notifications_enabled():
        return DisabledNotificationClient()
    base_url = notifications_base_url()
    if not base_url:
        raise RuntimeError("NOTIFICATIONS_BASE_URL_REQUIRED")
    return HttpNotificationClient(
        base_url=base_url,
        api_key=notifications_api_key(),
        timeout=notifications_timeout_seconds(),
    )


def build_notification_retry() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=notifications_max_attempts(),
        backoff=exponential_backoff(base_seconds=0.5, max_seconds=5.0),
        is_retryable=is_transient_downstream_error,
        attempt_timeout_seconds=notifications_timeout_seconds(),
        max_delay_seconds=5.0,
    )


def build_working_hours_provider() -> WorkingHoursConfigProvider:
    return CachedWorkingHoursConfigProvider(
        source=EnvWorkingHoursConfigProvider(),
        cache=ReadThroughCache(ttl_seconds=working_hours_cache_ttl_seconds()),
    )


def build_orchestrator() -> WorkflowActionOrchestrator:
    return WorkflowActionOrchestrator(
        repository=build_repository(),
        permission_sync=build_permission_sync_client(),
        working_hours=build_working_hours_provider(),
        permission_sync_retry=build_permission_sync_retry(),
        notifications=build_notification_client(),
        notification_retry=build_notification_retry(),
        require_expected_status=_env_flag("REVIEW_REQUEST_REQUIRE_EXPECTED_STATUS", False),
    )


def get_workflow_orchestrator() -> WorkflowActionOrchestrator:
    global _ORCHESTRATOR
    if _ORCHESTRATOR is None:
        _ORCHESTRATOR = build_orchestrator()
    return _ORCHESTRATOR


def reset_workflow_orchestrator_for_tests() -> None:
    global _ORCHESTRATOR
    _ORCHESTRATOR = None
