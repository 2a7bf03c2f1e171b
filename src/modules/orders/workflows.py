"""Workflow records attached to an order.

An order carries at most one of ``cancellation``, ``return`` or
``exchange``.  They are modelled as a pydantic discriminated union
(discriminator ``kind``) and persisted in ``Order.workflow`` next to a
``workflow_kind`` column.  Records are immutable: state changes produce a
new record through ``model_copy(update=...)``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from modules.orders.constants import ExchangeStatus, ReturnStatus


class CancellationRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["cancellation"] = "cancellation"
    cancelled_at: datetime
    cancelled_by: str = ""
    reason: str = "Order cancelled"


class ReturnRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["return"] = "return"
    return_requested_at: datetime
    return_reason: str = "Return requested"
    return_status: ReturnStatus = ReturnStatus.PENDING


class ExchangeLine(BaseModel):
    """One exchanged line, enriched with the original item it replaces."""

    model_config = ConfigDict(frozen=True)

    original_item_id: str
    original_product_id: str
    original_variant_id: str
    original_quantity: int
    new_product_id: str
    new_variant_id: str
    new_quantity: int


class ExchangeRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["exchange"] = "exchange"
    exchange_requested_at: datetime
    exchange_reason: str
    exchange_type: Literal["size", "color"]
    exchange_status: ExchangeStatus = ExchangeStatus.PENDING
    exchange_items: List[ExchangeLine]
    customer_notes: str = ""
    original_total: Decimal
    new_total: Decimal
    shipping_cost: Decimal
    price_difference: Decimal
    exchange_order_id: Optional[str] = None
    exchange_tracking_number: str = ""
    exchange_carrier: str = ""
    admin_notes: str = ""


WorkflowRecord = Annotated[
    Union[CancellationRecord, ReturnRecord, ExchangeRecord],
    Field(discriminator="kind"),
]

_workflow_adapter: TypeAdapter = TypeAdapter(WorkflowRecord)


def load_workflow(data: Optional[Dict[str, Any]]) -> Optional[WorkflowRecord]:
    """Parse a stored workflow payload; ``None`` when the order has none."""
    if not data:
        return None
    return _workflow_adapter.validate_python(data)


def dump_workflow(record: WorkflowRecord) -> Dict[str, Any]:
    return record.model_dump(mode="json")
