import logging
from typing import Optional

import httpx

from src.core.review_requests.errors import NotificationFailure
from src.core.review_requests.models import NotificationEvent, NotificationResult
from src.infrastructure.http_responses import json_body, retry_after_seconds

logger = logging.getLogger(__name__)

SEND_PATH = "/api/notifications/send"


class HttpNotificationClient:
    """
    Asks the notification service to email the people affected by a workflow change.

    The service resolves recipients and the template for ``event`` and answers whether
    an email was queued. Timeouts, transport errors, 429 and 5xx raise a transient
    ``NotificationFailure``; other 4xx responses come back as an unsent result.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        if not base_url:
            raise RuntimeError("NOTIFICATIONS_BASE_URL_REQUIRED")
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["X-API-Key"] = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def send_notification(
        self, *, request_id: str, event: NotificationEvent
    ) -> NotificationResult:
        try:
            response = await self._client.post(
                SEND_PATH, json={"requestId": request_id, "event": event}
            )
        except httpx.TimeoutException as exc:
            raise NotificationFailure("NOTIFICATION_TIMEOUT", transient=True) from exc
        except httpx.TransportError as exc:
            raise NotificationFailure(
                f"NOTIFICATION_UNREACHABLE: {type(exc).__name__}", transient=True
            ) from exc

        status_code = response.status_code
        if status_code == 429 or status_code >= 500:
            raise NotificationFailure(
                f"NOTIFICATION_UNAVAILABLE: HTTP {status_code}",
                status_code=status_code,
                transient=True,
                retry_after_seconds=retry_after_seconds(response),
            )
        data = json_body(response)
        if status_code >= 400:
            return NotificationResult(
                event=event,
                sent=False,
                status_code=status_code,
                reason=data.get("reason") or data.get("message") or f"HTTP {status_code}",
            )
        email = data.get("email") or {}
        return NotificationResult(
            event=event,
            sent=bool(data.get("shouldSendNotification", False)),
            notification_id=email.get("notificationId") if isinstance(email, dict) else None,
            status_code=status_code,
            reason=data.get("reason"),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpNotificationClient":
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()


class DisabledNotificationClient:
    async def send_notification(
        self, *, request_id: str, event: NotificationEvent
    ) -> NotificationResult:
        logger.info(
            "review_request.notification.skipped",
            extra={"extra_fields": {"request_id": request_id, "event": event}},
        )
        return NotificationResult(event=event, sent=False, reason="NOTIFICATIONS_DISABLED")

    async def close(self) -> None:
        return None
