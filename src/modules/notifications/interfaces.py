"""Notification dispatcher interface.

Services depend on this contract; tests inject a recording fake.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any

from django.db import models

if TYPE_CHECKING:
    from modules.customers.models import Customer
    from modules.orders.models import Order


class NotificationKind(models.TextChoices):
    ORDER_CONFIRMATION = "order_confirmation", "Order confirmation"
    ORDER_STATUS = "order_status", "Order status"
    REFUND = "refund", "Refund"


class INotificationDispatcher(ABC):
    @abstractmethod
    def send(self, kind: str, order: Order, customer: Customer, **context: Any) -> None:
        """Deliver a *kind* notification about *order* to *customer*.

        Raises ``NotificationDeliveryFailed`` on any delivery error.
        """
