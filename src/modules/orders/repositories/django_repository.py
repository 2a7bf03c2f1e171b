"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Creation is wrapped in ``transaction.atomic()`` so the Order aggregate
(Order + OrderItems) is persisted atomically.

Concurrency control on status updates uses ``select_for_update()``
to prevent race conditions (no ``version`` field exists on the model).
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Q, QuerySet, Sum
from django.db.models.functions import TruncDate

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def _queryset(self) -> QuerySet:
        return Order.objects.select_related("customer", "parent_order").prefetch_related(
            "items__product", "items__variant", "status_history"
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any], items: Sequence[Dict[str, Any]]) -> Order:
        order = Order(**data)
        order.save()

        OrderItem.objects.bulk_create(
            [OrderItem(order=order, **item_data) for item_data in items]
        )

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            short_order_id=order.short_order_id,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with eager-loaded relations.

        Uses ``select_related`` for the customer FK and ``prefetch_related``
        for items (with product and variant) and status history.  Prevents
        N+1.  Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Only the order row is locked (``of=("self",)``); items are
        prefetched so the caller can iterate over them while holding the
        lock.  Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return (
                Order.objects.select_for_update(of=("self",))
                .select_related("customer")
                .prefetch_related("items__product", "items__variant")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        if not transaction_id:
            return None
        return (
            Order.objects.select_for_update(of=("self",))
            .select_related("customer")
            .prefetch_related("items__product", "items__variant")
            .filter(transaction_id=transaction_id)
            .first()
        )

    def short_order_id_exists(self, short_order_id: str) -> bool:
        return Order.objects.filter(short_order_id=short_order_id).exists()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters and eager-loaded relations.

        Supported filter keys are any ``Order`` lookups, e.g.
        ``status``, ``customer_id``, ``created_at__range``.
        """
        queryset = Order.objects.select_related("customer").prefetch_related("items")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_stats(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        queryset = Order.objects.filter(**(filters or {})).order_by()

        overview = queryset.aggregate(
            total_orders=Count("id"),
            confirmed_orders=Count("id", filter=Q(status=OrderStatus.CONFIRMED)),
            pending_orders=Count("id", filter=Q(status=OrderStatus.PENDING)),
            delivered_orders=Count("id", filter=Q(status=OrderStatus.DELIVERED)),
            cancelled_orders=Count("id", filter=Q(status=OrderStatus.CANCELLED)),
            total_revenue=Sum("total_amount"),
            cod_orders=Count("id", filter=Q(payment_method=PaymentMethod.COD)),
            online_orders=Count("id", filter=~Q(payment_method=PaymentMethod.COD)),
        )
        status_breakdown = list(
            queryset.values("status").annotate(count=Count("id")).order_by("status")
        )
        latest_days = (
            queryset.annotate(day=TruncDate("created_at"))
            .values("day")
            .annotate(count=Count("id"), revenue=Sum("total_amount"))
            .order_by("-day")[:30]
        )
        return {
            **overview,
            "status_breakdown": status_breakdown,
            "daily_stats": list(reversed(list(latest_days))),
        }

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    def save(self, order: Order, update_fields: Optional[Sequence[str]] = None) -> Order:
        if update_fields is not None:
            order.save(update_fields=list(update_fields))
        else:
            order.save()
        return order

    # ------------------------------------------------------------------
    # Status history
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        new_status: str,
        old_status: Optional[str] = None,
        actor: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor or "",
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
            actor=actor or "system",
        )
        return history
