"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``AddressSnapshot``: shipping/billing address embedded in an order.
- ``BusinessRulesDTO``: optional per-order overrides of the rule snapshot.
- ``CreateOrderDTO``: input for order creation from the customer's cart.
- ``ExchangeItemDTO`` / ``RequestExchangeDTO``: customer exchange request.
- ``ApproveExchangeDTO`` / ``RejectExchangeDTO``: admin exchange decisions.
- ``ConfirmCODPaymentDTO``: cash collected by a delivery agent.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from modules.orders.constants import PaymentMethod, ShippingMethod

# ---------------------------------------------------------------------------
# Embedded values
# ---------------------------------------------------------------------------


class AddressSnapshot(BaseModel):
    """Address copied onto the order; later address edits never affect it."""

    model_config = ConfigDict(frozen=True)

    full_name: str = Field(min_length=1, max_length=120)
    phone: str = Field(min_length=7, max_length=20)
    street_address: str = Field(min_length=1, max_length=255)
    city: str = Field(min_length=1, max_length=100)
    state: str = Field(min_length=1, max_length=100)
    postal_code: str = Field(default="", max_length=20)
    country: str = "Nepal"
    address_type: Literal["home", "office", "other"] = "home"
    notes: str = ""


class BusinessRulesDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    cod_limit: Optional[Decimal] = Field(default=None, gt=0)
    allow_cancellation: Optional[bool] = None
    allow_return: Optional[bool] = None
    return_window_days: Optional[int] = Field(default=None, ge=0)
    allow_exchange: Optional[bool] = None
    exchange_window_days: Optional[int] = Field(default=None, ge=0)


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation requests.

    Items are not part of the request: they are read from the customer's
    cart.  ``billing_address`` is only required when
    ``use_shipping_as_billing`` is ``False``.
    """

    model_config = ConfigDict(frozen=True)

    payment_method: PaymentMethod
    shipping_address: Optional[AddressSnapshot] = None
    billing_address: Optional[AddressSnapshot] = None
    use_shipping_as_billing: bool = True
    shipping_method: ShippingMethod = ShippingMethod.STANDARD
    customer_notes: str = ""
    business_rules: Optional[BusinessRulesDTO] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ExchangeItemDTO(BaseModel):
    """Immutable DTO for a single line of an exchange request."""

    model_config = ConfigDict(frozen=True)

    original_item_id: UUID
    new_product_id: UUID
    new_variant_id: UUID
    new_quantity: int

    @field_validator("new_quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Exchange item must have a valid quantity.")
        return v


class RequestExchangeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    exchange_type: Literal["size", "color"]
    exchange_reason: str
    exchange_items: List[ExchangeItemDTO]
    customer_notes: str = ""


class ApproveExchangeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    admin_notes: str = ""
    exchange_tracking_number: str = ""
    exchange_carrier: str = ""


class RejectExchangeDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    admin_notes: str = ""


class ConfirmCODPaymentDTO(BaseModel):
    """Cash collected on delivery, as reported by the delivery agent."""

    model_config = ConfigDict(frozen=True)

    amount_received: Decimal = Field(gt=0, decimal_places=2)
    delivery_notes: str = ""
    agent_signature: Optional[str] = None
    customer_signature: Optional[str] = None
