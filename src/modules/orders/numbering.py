"""Order identifier generation.

Every order gets two identifiers:

- ``order_number``: opaque ``uuid4`` string.
- ``short_order_id``: human-readable ``PREFIX-YEAR-NNN`` built from the
  ``Counter`` sequence for ``PREFIX-YEAR`` (zero-padded to 3 digits, wider
  once the sequence passes 999).
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

import structlog
from django.utils import timezone

from modules.orders.constants import ORDER_NUMBER_MAX_RETRIES, ORDER_PREFIX
from modules.orders.exceptions import OrderNumberGenerationFailed
from modules.orders.models import Counter

if TYPE_CHECKING:
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class OrderIdentifiers:
    short_order_id: str
    order_number: str


class OrderNumberGenerator:
    def __init__(
        self,
        order_repository: IOrderRepository,
        max_retries: int = ORDER_NUMBER_MAX_RETRIES,
    ) -> None:
        self._order_repo = order_repository
        self._max_retries = max_retries

    def generate(self, prefix: str = ORDER_PREFIX, year: Optional[int] = None) -> OrderIdentifiers:
        """Return fresh identifiers for a new order.

        The short id is re-checked against persisted orders; a collision
        (e.g. an order imported with an explicit id) draws the next
        sequence value.

        Raises:
            OrderNumberGenerationFailed: no free short id within the retry budget.
        """
        year = year or timezone.now().year
        key = f"{prefix}-{year}"

        for attempt in range(1, self._max_retries + 1):
            seq = Counter.next_value(key)
            short_order_id = f"{prefix}-{year}-{seq:03d}"
            if not self._order_repo.short_order_id_exists(short_order_id):
                return OrderIdentifiers(
                    short_order_id=short_order_id,
                    order_number=str(uuid.uuid4()),
                )
            logger.warning(
                "order.short_id_collision",
                short_order_id=short_order_id,
                attempt=attempt,
            )

        raise OrderNumberGenerationFailed(
            f"Failed to generate a unique order id for {key} after "
            f"{self._max_retries} attempts."
        )
