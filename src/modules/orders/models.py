"""Order, OrderItem, OrderStatusHistory and Counter models.

Business rules implemented:
- Status is only mutated through ``OrderStateMachine`` (history written
  explicitly on every transition, never by a signal).
- OrderItem snapshots variant pricing and stock at purchase time.
- ``business_rules`` is copied onto the order at creation, so later
  configuration changes never alter existing orders.
- Customer / product / variant FKs use PROTECT to preserve financial history.
- Orders are never deleted: cancellation and refund are terminal states.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

import structlog
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    CANCELLABLE_STATES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    WorkflowKind,
)
from modules.orders.workflows import (
    CancellationRecord,
    ExchangeRecord,
    ReturnRecord,
    WorkflowRecord,
    dump_workflow,
    load_workflow,
)

logger = structlog.get_logger(__name__)

ZERO = Decimal("0.00")


def _money(**kwargs: Any) -> models.DecimalField:
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=ZERO,
        **kwargs,
    )


class Order(BaseModel):
    """Order aggregate root.

    ``order_number`` is an opaque UUID4 string; ``short_order_id`` is the
    human-readable ``PREFIX-YEAR-NNN`` identifier.  The UUIDv7 ``id`` is
    used for all internal references and API lookups.

    ``total_amount = subtotal + tax_total + shipping_cost`` where
    ``subtotal`` is already sale-priced; ``discount_total`` is informational.
    """

    order_number: models.CharField = models.CharField(
        max_length=36, unique=True, editable=False
    )
    short_order_id: models.CharField = models.CharField(max_length=32, unique=True)
    customer: models.ForeignKey = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    parent_order: models.ForeignKey = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="exchange_orders",
    )

    status: models.CharField = models.CharField(
        max_length=24,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    payment_status: models.CharField = models.CharField(
        max_length=24,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_method: models.CharField = models.CharField(
        max_length=24,
        choices=PaymentMethod.choices,
    )

    subtotal: models.DecimalField = _money()
    discount_total: models.DecimalField = _money()
    tax_total: models.DecimalField = _money()
    shipping_cost: models.DecimalField = _money()
    total_amount: models.DecimalField = _money()
    amount_paid: models.DecimalField = _money()
    amount_refunded: models.DecimalField = _money()

    transaction_id: models.CharField = models.CharField(
        max_length=128, blank=True, default="", db_index=True
    )
    payment_details: models.JSONField = models.JSONField(
        default=dict, blank=True, encoder=DjangoJSONEncoder
    )

    shipping_address: models.JSONField = models.JSONField(encoder=DjangoJSONEncoder)
    billing_address: models.JSONField = models.JSONField(encoder=DjangoJSONEncoder)

    workflow_kind: models.CharField = models.CharField(
        max_length=20, choices=WorkflowKind.choices, blank=True, default=""
    )
    workflow: models.JSONField = models.JSONField(
        null=True, blank=True, default=None, encoder=DjangoJSONEncoder
    )
    cod_details: models.JSONField = models.JSONField(
        null=True, blank=True, default=None, encoder=DjangoJSONEncoder
    )
    business_rules: models.JSONField = models.JSONField(
        default=dict, blank=True, encoder=DjangoJSONEncoder
    )
    shipping: models.JSONField = models.JSONField(
        default=dict, blank=True, encoder=DjangoJSONEncoder
    )
    metadata: models.JSONField = models.JSONField(
        default=dict, blank=True, encoder=DjangoJSONEncoder
    )

    customer_notes: models.TextField = models.TextField(blank=True, default="")
    internal_notes: models.TextField = models.TextField(blank=True, default="")

    confirmed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    processed_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    shipped_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["customer", "-created_at"], name="orders_customer_created_idx"),
            models.Index(fields=["status", "-created_at"], name="orders_status_created_idx"),
            models.Index(
                fields=["payment_status", "-created_at"],
                name="orders_payment_created_idx",
            ),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]

    # ------------------------------------------------------------------
    # Business rules
    # ------------------------------------------------------------------

    def rule(self, name: str, default: Any = None) -> Any:
        return (self.business_rules or {}).get(name, default)

    @property
    def cod_limit(self) -> Optional[Decimal]:
        limit = self.rule("cod_limit")
        return Decimal(str(limit)) if limit is not None else None

    def days_since_delivery(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole days elapsed since delivery, ``None`` if never delivered."""
        if self.delivered_at is None:
            return None
        elapsed = (now or timezone.now()) - self.delivered_at
        return math.floor(elapsed.total_seconds() / 86400)

    def _within_window(self, window_days: int, now: Optional[datetime] = None) -> bool:
        days = self.days_since_delivery(now)
        return days is not None and days <= window_days

    def can_be_cancelled(self) -> bool:
        return self.status in CANCELLABLE_STATES and bool(
            self.rule("allow_cancellation", True)
        )

    def can_be_returned(self, now: Optional[datetime] = None) -> bool:
        if not self.rule("allow_return", True) or self.status != OrderStatus.DELIVERED:
            return False
        return self._within_window(int(self.rule("return_window_days", 7)), now)

    def can_be_exchanged(self, now: Optional[datetime] = None) -> bool:
        if not self.rule("allow_exchange", True) or self.status != OrderStatus.DELIVERED:
            return False
        return self._within_window(int(self.rule("exchange_window_days", 7) or 7), now)

    # ------------------------------------------------------------------
    # Workflow record (cancellation | return | exchange)
    # ------------------------------------------------------------------

    def get_workflow(self) -> Optional[WorkflowRecord]:
        return load_workflow(self.workflow)

    def set_workflow(self, record: WorkflowRecord) -> None:
        """Replace the active workflow record; history keeps the audit trail."""
        self.workflow_kind = record.kind
        self.workflow = dump_workflow(record)

    @property
    def cancellation(self) -> Optional[CancellationRecord]:
        record = self.get_workflow()
        return record if isinstance(record, CancellationRecord) else None

    @property
    def return_record(self) -> Optional[ReturnRecord]:
        record = self.get_workflow()
        return record if isinstance(record, ReturnRecord) else None

    @property
    def exchange(self) -> Optional[ExchangeRecord]:
        record = self.get_workflow()
        return record if isinstance(record, ExchangeRecord) else None

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def order_summary(self) -> Dict[str, Any]:
        items = list(self.items.all())
        return {
            "total_items": sum(item.quantity for item in items),
            "unique_products": len(items),
            "is_fully_paid": self.amount_paid >= self.total_amount,
            "is_fully_refunded": self.amount_refunded >= self.total_amount,
            "remaining_amount": self.total_amount - self.amount_paid,
        }

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.short_order_id} ({self.status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a catalog Variant.

    Pricing fields are a **snapshot** taken at purchase time; they never
    change even if the variant is repriced later.  ``original_stock`` records
    the variant stock level seen when the line was reserved.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "catalog.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    variant: models.ForeignKey = models.ForeignKey(
        "catalog.Variant",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)
    sale_price: models.DecimalField = models.DecimalField(
        max_digits=12, decimal_places=2, null=True, blank=True
    )
    total_price: models.DecimalField = models.DecimalField(max_digits=12, decimal_places=2)
    discount_amount: models.DecimalField = _money()
    tax_amount: models.DecimalField = _money()
    original_stock: models.PositiveIntegerField = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.variant_id} x{self.quantity} ({self.total_price})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Exactly one record is written on creation and one per subsequent status
    change, in the same transaction as the status write.  ``actor`` is the
    identifier of whoever triggered the change; empty means the system.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=24,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=24,
        choices=OrderStatus.choices,
    )
    actor: models.CharField = models.CharField(max_length=64, blank=True, default="")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    @property
    def timestamp(self) -> datetime:
        return self.created_at

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"


class Counter(BaseModel):
    """Named monotonic sequence (one row per ``PREFIX-YEAR`` key)."""

    key: models.CharField = models.CharField(max_length=64, unique=True)
    seq: models.PositiveBigIntegerField = models.PositiveBigIntegerField(default=0)

    class Meta:
        db_table = "counters"

    @classmethod
    def next_value(cls, key: str) -> int:
        """Atomically increment the counter for *key* and return the new value."""
        with transaction.atomic():
            counter, _ = cls.objects.select_for_update().get_or_create(key=key)
            cls.objects.filter(pk=counter.pk).update(
                seq=F("seq") + 1, updated_at=timezone.now()
            )
            counter.refresh_from_db(fields=["seq"])
        logger.debug("counter.incremented", key=key, seq=counter.seq)
        return counter.seq

    def __str__(self) -> str:
        return f"{self.key}={self.seq}"
