import asyncio

import pytest

from src.api import persistence_profile
from src.api.routers import review_requests_config
from src.infrastructure.notifications import (
    DisabledNotificationClient,
    HttpNotificationClient,
)
from src.infrastructure.permission_sync import (
    DisabledPermissionSyncClient,
    HttpPermissionSyncClient,
)
from src.infrastructure.review_requests import InMemoryReviewRequestRepository


def test_store_backend_defaults_to_in_memory(monkeypatch):
    monkeypatch.delenv("REVIEW_REQUEST_STORE_BACKEND", raising=False)
    assert review_requests_config.review_request_store_backend_name() == "IN_MEMORY"

    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", " postgres ")
    assert review_requests_config.review_request_store_backend_name() == "POSTGRES"


def test_unknown_store_backend_is_rejected(monkeypatch):
    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", "SQLITE")
    with pytest.raises(RuntimeError, match="REVIEW_REQUEST_STORE_BACKEND_UNSUPPORTED"):
        review_requests_config.review_request_store_backend_name()


def test_build_repository_in_memory():
    repository = review_requests_config.build_repository()
    assert isinstance(repository, InMemoryReviewRequestRepository)


def test_build_repository_postgres_requires_dsn(monkeypatch):
    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", "POSTGRES")
    monkeypatch.delenv("REVIEW_REQUEST_POSTGRES_DSN", raising=False)
    with pytest.raises(RuntimeError, match="REVIEW_REQUEST_POSTGRES_DSN_REQUIRED"):
        review_requests_config.build_repository()


def test_build_repository_postgres_wraps_connection_errors(monkeypatch):
    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", "POSTGRES")
    monkeypatch.setenv("REVIEW_REQUEST_POSTGRES_DSN", "postgresql://u:p@localhost:5432/rr")

    def _refuse(**_kwargs):
        raise ConnectionError("refused")

    monkeypatch.setattr(review_requests_config, "PostgresReviewRequestRepository", _refuse)
    with pytest.raises(RuntimeError, match="REVIEW_REQUEST_POSTGRES_CONNECTION_FAILED"):
        review_requests_config.build_repository()


def test_permission_sync_client_follows_enabled_flag(monkeypatch):
    assert isinstance(
        review_requests_config.build_permission_sync_client(), DisabledPermissionSyncClient
    )

    monkeypatch.setenv("PERMISSION_SYNC_ENABLED", "true")
    monkeypatch.delenv("PERMISSION_SYNC_BASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="PERMISSION_SYNC_BASE_URL_REQUIRED"):
        review_requests_config.build_permission_sync_client()

    monkeypatch.setenv("PERMISSION_SYNC_BASE_URL", "https://apim.example.com/lw/")
    client = review_requests_config.build_permission_sync_client()
    assert isinstance(client, HttpPermissionSyncClient)
    assert client.base_url == "https://apim.example.com/lw"
    asyncio.run(client.close())


def test_numeric_settings_fall_back_on_invalid_values(monkeypatch):
    monkeypatch.setenv("PERMISSION_SYNC_TIMEOUT_SECONDS", "abc")
    monkeypatch.setenv("PERMISSION_SYNC_MAX_ATTEMPTS", "-2")
    monkeypatch.setenv("WORKING_HOURS_CACHE_TTL_SECONDS", "60")
    assert review_requests_config.permission_sync_timeout_seconds() == 30.0
    assert review_requests_config.permission_sync_max_attempts() == 3
    assert review_requests_config.working_hours_cache_ttl_seconds() == 60.0

    retry = review_requests_config.build_permission_sync_retry()
    assert retry.max_attempts == 3
    assert retry.attempt_timeout_seconds == 30.0
    assert retry.max_delay_seconds == 30.0


def test_permission_sync_retry_delay_cap_is_configurable(monkeypatch):
    monkeypatch.setenv("PERMISSION_SYNC_MAX_DELAY_SECONDS", "8")
    assert review_requests_config.build_permission_sync_retry().max_delay_seconds == 8.0


def test_notification_client_follows_enabled_flag(monkeypatch):
    assert isinstance(
        review_requests_config.build_notification_client(), DisabledNotificationClient
    )

    monkeypatch.setenv("NOTIFICATIONS_ENABLED", "true")
    monkeypatch.delenv("NOTIFICATIONS_BASE_URL", raising=False)
    with pytest.raises(RuntimeError, match="NOTIFICATIONS_BASE_URL_REQUIRED"):
        review_requests_config.build_notification_client()

    monkeypatch.setenv("NOTIFICATIONS_BASE_URL", "https://apim.example.com/lw")
    client = review_requests_config.build_notification_client()
    assert isinstance(client, HttpNotificationClient)
    asyncio.run(client.close())

    retry = review_requests_config.build_notification_retry()
    assert retry.max_attempts == 2
    assert retry.max_delay_seconds == 5.0


def test_env_working_hours_provider_reads_settings(monkeypatch):
    monkeypatch.setenv("WORKING_HOURS_START", "9")
    monkeypatch.setenv("WORKING_HOURS_END", "18")
    monkeypatch.setenv("WORKING_HOURS_DAYS", "1,2,3,4")
    monkeypatch.setenv("WORKING_HOURS_TIMEZONE", "America/New_York")

    provider = review_requests_config.build_working_hours_provider()
    config = asyncio.run(provider.get_working_hours_config())

    assert (config.start_hour, config.end_hour) == (9, 18)
    assert config.working_days == (1, 2, 3, 4)
    assert config.timezone_name == "America/New_York"


def test_orchestrator_is_built_once_and_reset_for_tests(monkeypatch):
    monkeypatch.setenv("REVIEW_REQUEST_REQUIRE_EXPECTED_STATUS", "yes")
    first = review_requests_config.get_workflow_orchestrator()
    assert review_requests_config.get_workflow_orchestrator() is first
    assert first._require_expected_status is True

    review_requests_config.reset_workflow_orchestrator_for_tests()
    assert review_requests_config.get_workflow_orchestrator() is not first


def test_local_profile_has_no_guardrails(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "something-else")
    assert persistence_profile.app_persistence_profile_name() == "LOCAL"
    persistence_profile.validate_persistence_profile_guardrails()


def test_production_profile_requires_postgres_and_permission_sync(monkeypatch):
    monkeypatch.setenv("APP_PERSISTENCE_PROFILE", "production")
    with pytest.raises(RuntimeError, match="PERSISTENCE_PROFILE_REQUIRES_REVIEW_REQUEST_POSTGRES"):
        persistence_profile.validate_persistence_profile_guardrails()

    monkeypatch.setenv("REVIEW_REQUEST_STORE_BACKEND", "POSTGRES")
    monkeypatch.delenv("REVIEW_REQUEST_POSTGRES_DSN", raising=False)
    with pytest.raises(RuntimeError, match="REQUIRES_REVIEW_REQUEST_POSTGRES_DSN"):
        persistence_profile.validate_persistence_profile_guardrails()

    monkeypatch.setenv("REVIEW_REQUEST_POSTGRES_DSN", "postgresql://u:p@localhost:5432/rr")
    with pytest.raises(RuntimeError, match="PERSISTENCE_PROFILE_REQUIRES_PERMISSION_SYNC"):
        persistence_profile.validate_persistence_profile_guardrails()

    monkeypatch.setenv("PERMISSION_SYNC_ENABLED", "1")
    persistence_profile.validate_persistence_profile_guardrails()
