"""Order repository interface.

Extends ``IRepository[Order]`` with methods required by the Order
aggregate: atomic creation with items, row-level locking, gateway
reference look-up and status history tracking.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional, Sequence

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any], items: Sequence[Dict[str, Any]]) -> Order:
        """Create an order with its items atomically.

        ``data`` holds the Order field values; each entry of ``items`` holds
        the OrderItem field values (``product``, ``variant``, ``quantity``
        and the pricing snapshot).
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items and status history."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order under a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def get_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        """Retrieve (and lock) the order carrying a gateway reference."""

    @abstractmethod
    def short_order_id_exists(self, short_order_id: str) -> bool:
        """``True`` when an order already uses *short_order_id*."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters."""

    @abstractmethod
    def get_stats(self, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Aggregate counts and revenue over the orders matching *filters*.

        Returns the overview counters plus ``status_breakdown`` (one row per
        status) and ``daily_stats`` (the latest 30 days that have orders,
        oldest first).
        """

    @abstractmethod
    def save(self, order: Order, update_fields: Optional[Sequence[str]] = None) -> Order:
        """Persist changes to an existing order."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        new_status: str,
        old_status: Optional[str] = None,
        actor: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
