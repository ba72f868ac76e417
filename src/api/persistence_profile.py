import os

from src.api.routers.review_requests_config import (
    permission_sync_enabled,
    review_request_postgres_dsn,
    review_request_store_backend_name,
)

_PRODUCTION_PROFILE = "PRODUCTION"
_LOCAL_PROFILE = "LOCAL"


def app_persistence_profile_name() -> str:
    profile = os.getenv("APP_PERSISTENCE_PROFILE", _LOCAL_PROFILE).strip().upper()
    return _PRODUCTION_PROFILE if profile == _PRODUCTION_PROFILE else _LOCAL_PROFILE


def validate_persistence_profile_guardrails() -> None:
    if app_persistence_profile_name() != _PRODUCTION_PROFILE:
        return
    if review_request_store_backend_name() != "POSTGRES":
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_REVIEW_REQUEST_POSTGRES")
    if not review_request_postgres_dsn():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_REVIEW_REQUEST_POSTGRES_DSN")
    if not permission_sync_enabled():
        raise RuntimeError("PERSISTENCE_PROFILE_REQUIRES_PERMISSION_SYNC")
