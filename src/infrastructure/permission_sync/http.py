import logging
from typing import Optional

import httpx

from src.core.review_requests.errors import PermissionSyncFailure
from src.core.review_requests.models import PermissionSyncResult, RequestStatus
from src.infrastructure.http_responses import json_body, retry_after_seconds

logger = logging.getLogger(__name__)

INITIALIZE_PATH = "/api/permissions/initialize"
MANAGE_PATH = "/api/permissions/manage"


class HttpPermissionSyncClient:
    """
    Pushes request visibility changes to the permission service after a status change.

    The first transition out of Draft breaks inheritance through the initialize
    endpoint; every later transition goes to the manage endpoint. Transport errors,
    timeouts, 429 and 5xx raise a transient ``PermissionSyncFailure`` so the caller
    can retry. Other 4xx responses are returned as an unsuccessful result.

    Example:
        ```python
        async with HttpPermissionSyncClient(
            base_url="https://apim.example.com/legal-workflow",
            api_key="key",
        ) as client:
            result = await client.sync_permissions(
                request_id="rr_001", new_status="LEGAL_INTAKE", previous_status="DRAFT"
            )
        ```
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise RuntimeError("PERMISSION_SYNC_BASE_URL_REQUIRED")
        self.base_url = base_url.rstrip("/")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def sync_permissions(
        self,
        *,
        request_id: str,
        new_status: RequestStatus,
        previous_status: Optional[RequestStatus] = None,
    ) -> PermissionSyncResult:
        path = INITIALIZE_PATH if previous_status == "DRAFT" else MANAGE_PATH
        payload = {"requestId": request_id, "status": new_status}
        try:
            response = await self._client.post(path, json=payload)
        except httpx.TimeoutException as exc:
            raise PermissionSyncFailure(
                f"PERMISSION_SYNC_TIMEOUT: {path}", transient=True
            ) from exc
        except httpx.TransportError as exc:
            raise PermissionSyncFailure(
                f"PERMISSION_SYNC_UNREACHABLE: {type(exc).__name__}", transient=True
            ) from exc
        return self._handle_response(response, request_id=request_id, path=path)

    def _handle_response(
        self, response: httpx.Response, *, request_id: str, path: str
    ) -> PermissionSyncResult:
        status_code = response.status_code
        if status_code == 429 or status_code >= 500:
            raise PermissionSyncFailure(
                f"PERMISSION_SYNC_UNAVAILABLE: HTTP {status_code}",
                status_code=status_code,
                transient=True,
                retry_after_seconds=retry_after_seconds(response),
            )
        data = json_body(response)
        if status_code >= 400:
            return PermissionSyncResult(
                success=False,
                status_code=status_code,
                message=data.get("error") or data.get("message") or f"HTTP {status_code}",
            )
        success = bool(data.get("success", True))
        logger.info(
            "review_request.permission_sync.completed",
            extra={
                "extra_fields": {
                    "request_id": request_id,
                    "path": path,
                    "status_code": status_code,
                    "success": success,
                }
            },
        )
        return PermissionSyncResult(
            success=success,
            status_code=status_code,
            message=data.get("error") or data.get("message"),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpPermissionSyncClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


class DisabledPermissionSyncClient:
    """Used when permission sync is switched off; every call is a logged no-op."""

    async def sync_permissions(
        self,
        *,
        request_id: str,
        new_status: RequestStatus,
        previous_status: Optional[RequestStatus] = None,
    ) -> PermissionSyncResult:
        logger.info(
            "review_request.permission_sync.skipped",
            extra={"extra_fields": {"request_id": request_id, "new_status": new_status}},
        )
        return PermissionSyncResult(success=True, message="PERMISSION_SYNC_DISABLED")

    async def close(self) -> None:
        return None

