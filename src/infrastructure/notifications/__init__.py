from src.infrastructure.notifications.http import (
    DisabledNotificationClient,
    HttpNotificationClient,
)

__all__ = ["DisabledNotificationClient", "HttpNotificationClient"]
