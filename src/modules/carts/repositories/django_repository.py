"""Django ORM implementation of the cart repository."""

from __future__ import annotations

from typing import List, Optional

import structlog
from django.core.exceptions import ValidationError

from modules.carts.models import Cart, CartItem
from modules.carts.repositories.interfaces import ICartRepository

logger = structlog.get_logger(__name__)


class CartDjangoRepository(ICartRepository):
    """Concrete cart repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Cart]:
        try:
            return Cart.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_items(self, customer_id: str) -> List[CartItem]:
        return list(
            CartItem.objects.select_related("product", "variant")
            .filter(cart__customer_id=customer_id)
            .order_by("created_at")
        )

    def clear(self, customer_id: str) -> int:
        deleted, _ = CartItem.objects.filter(cart__customer_id=customer_id).delete()
        logger.info("cart.cleared", customer_id=str(customer_id), items=deleted)
        return deleted
