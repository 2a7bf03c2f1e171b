"""Catalog accessor interface.

The order core reads variants (price, sale price, status, stock) and
mutates exactly one thing: ``stock``, through ``adjust_stock``.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.catalog.models import Variant


class ICatalogRepository(IRepository["Variant"]):
    """Repository contract for variant look-ups and stock movements."""

    @abstractmethod
    def get_variant_for_update(self, id: str) -> Optional[Variant]:
        """Retrieve a variant (with its product) under a row-level lock."""

    @abstractmethod
    def adjust_stock(self, variant_id: str, delta: int) -> int:
        """Atomically add ``delta`` (may be negative) to the variant stock.

        Returns the resulting stock level.  Raises ``InsufficientStock``
        when a decrement would take stock below zero and ``VariantNotFound``
        when the variant does not exist.
        """
