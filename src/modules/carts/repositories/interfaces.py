"""Cart repository interface consumed by order creation."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.carts.models import Cart, CartItem


class ICartRepository(IRepository["Cart"]):
    """Repository contract for a customer's cart."""

    @abstractmethod
    def get_items(self, customer_id: str) -> List[CartItem]:
        """Return the customer's cart lines (empty list if no cart)."""

    @abstractmethod
    def clear(self, customer_id: str) -> int:
        """Remove every line from the customer's cart; returns lines removed."""
