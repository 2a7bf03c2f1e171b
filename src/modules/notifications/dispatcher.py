"""Email + SMS notification dispatcher.

Email goes through Django's mail framework (``EMAIL_BACKEND``); SMS is a
JSON POST to ``SMS_API_URL`` and is skipped when no URL is configured or
the customer has no phone number.  Any delivery error is raised as
``NotificationDeliveryFailed``: deciding whether to swallow it is the
caller's job.
"""

from __future__ import annotations

import smtplib
from typing import TYPE_CHECKING, Any, Optional

import httpx
import structlog
from django.conf import settings
from django.core.mail import send_mail

from modules.notifications.exceptions import NotificationDeliveryFailed
from modules.notifications.interfaces import INotificationDispatcher
from modules.notifications.templates import RenderedMessage, render

if TYPE_CHECKING:
    from modules.customers.models import Customer
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

NEPAL_COUNTRY_CODE = "+977"


def normalize_phone(phone: str) -> str:
    phone = phone.strip().replace(" ", "")
    if not phone.startswith("+"):
        phone = NEPAL_COUNTRY_CODE + phone
    return phone


class NotificationDispatcher(INotificationDispatcher):
    def __init__(self, http_client: Optional[httpx.Client] = None) -> None:
        self._http_client = http_client

    def send(self, kind: str, order: Order, customer: Customer, **context: Any) -> None:
        message = render(kind, order, customer, **context)
        log = logger.bind(kind=kind, order_id=str(order.id), customer_id=str(customer.id))

        self._send_email(customer.email, message)
        channels = ["email"]

        if getattr(settings, "SMS_API_URL", "") and customer.phone:
            self._send_sms(customer.phone, message)
            channels.append("sms")

        log.info("notification.sent", channels=channels)

    def _send_email(self, to: str, message: RenderedMessage) -> None:
        try:
            send_mail(
                subject=message.subject,
                message=message.body,
                from_email=settings.DEFAULT_FROM_EMAIL,
                recipient_list=[to],
                fail_silently=False,
            )
        except (smtplib.SMTPException, OSError, ValueError) as exc:
            raise NotificationDeliveryFailed(f"Failed to send email: {exc}") from exc

    def _send_sms(self, phone: str, message: RenderedMessage) -> None:
        payload = {
            "to": normalize_phone(phone),
            "from": settings.SMS_SENDER_ID,
            "message": message.sms,
        }
        headers = {"Authorization": f"Bearer {settings.SMS_API_KEY}"}
        try:
            if self._http_client is not None:
                response = self._http_client.post(
                    settings.SMS_API_URL, json=payload, headers=headers
                )
            else:
                with httpx.Client(timeout=settings.NOTIFICATION_TIMEOUT) as client:
                    response = client.post(settings.SMS_API_URL, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationDeliveryFailed(
                f"Failed to send SMS: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.RequestError as exc:
            raise NotificationDeliveryFailed(f"Failed to send SMS: {exc}") from exc
