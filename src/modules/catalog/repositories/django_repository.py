"""Django ORM implementation of the catalog accessor.

Stock movements never read-modify-write in Python: they issue a single
``UPDATE variants SET stock = stock + delta WHERE id = ... AND stock >= -delta``
so concurrent orders against the same variant cannot lose updates.
"""

from __future__ import annotations

from typing import Optional

import structlog
from django.core.exceptions import ValidationError
from django.db.models import F

from modules.catalog.exceptions import InsufficientStock, VariantNotFound
from modules.catalog.models import Variant
from modules.catalog.repositories.interfaces import ICatalogRepository

logger = structlog.get_logger(__name__)


class CatalogDjangoRepository(ICatalogRepository):
    """Concrete catalog accessor backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Variant]:
        try:
            return (
                Variant.objects.alive().select_related("product").filter(id=id).first()
            )
        except (ValueError, ValidationError):
            return None

    def get_variant_for_update(self, id: str) -> Optional[Variant]:
        """Retrieve a variant with a row-level lock (SELECT FOR UPDATE).

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return (
                Variant.objects.alive()
                .select_for_update()
                .select_related("product")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def adjust_stock(self, variant_id: str, delta: int) -> int:
        queryset = Variant.objects.filter(id=variant_id)
        if delta < 0:
            queryset = queryset.filter(stock__gte=-delta)

        updated = queryset.update(stock=F("stock") + delta)
        if not updated:
            variant = Variant.objects.filter(id=variant_id).first()
            if variant is None:
                raise VariantNotFound(f"Variant {variant_id} not found.")
            raise InsufficientStock(
                f"Insufficient stock for {variant.sku}. Available: {variant.stock}"
            )

        stock = Variant.objects.filter(id=variant_id).values_list("stock", flat=True).get()
        logger.info(
            "catalog.stock_adjusted",
            variant_id=str(variant_id),
            delta=delta,
            stock=stock,
        )
        return stock
