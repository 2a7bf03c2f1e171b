from __future__ import annotations

from modules.core.exceptions import ExternalServiceError


class NotificationDeliveryFailed(ExternalServiceError):
    """Email or SMS delivery failed."""

    default_code = "notification_delivery_failed"
    default_message = "Notification could not be delivered."
