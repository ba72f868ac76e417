from src.infrastructure.permission_sync.http import (
    DisabledPermissionSyncClient,
    HttpPermissionSyncClient,
)

__all__ = ["DisabledPermissionSyncClient", "HttpPermissionSyncClient"]
