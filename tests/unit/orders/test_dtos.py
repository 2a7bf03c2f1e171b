"""Unit tests for Order DTOs.

Covers:
- CreateOrderDTO: defaults, nested address coercion, frozen immutability.
- ExchangeItemDTO: quantity validation.
- ConfirmCODPaymentDTO: positive amount with two decimal places.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from pydantic import ValidationError

from modules.orders.constants import PaymentMethod, ShippingMethod
from modules.orders.dtos import (
    BusinessRulesDTO,
    ConfirmCODPaymentDTO,
    CreateOrderDTO,
    ExchangeItemDTO,
    RequestExchangeDTO,
)

pytestmark = pytest.mark.unit


class TestCreateOrderDTO:
    def test_defaults(self):
        dto = CreateOrderDTO(payment_method=PaymentMethod.COD)

        assert dto.use_shipping_as_billing is True
        assert dto.shipping_method == ShippingMethod.STANDARD
        assert dto.business_rules is None
        assert dto.metadata == {}

    def test_address_dict_is_coerced(self, shipping_address):
        dto = CreateOrderDTO(payment_method="khalti", shipping_address=shipping_address)

        assert dto.shipping_address.city == "Lalitpur"
        assert dto.shipping_address.country == "Nepal"

    def test_unknown_payment_method(self):
        with pytest.raises(ValidationError):
            CreateOrderDTO(payment_method="bitcoin")

    def test_blank_address_field(self, shipping_address):
        with pytest.raises(ValidationError):
            CreateOrderDTO(
                payment_method=PaymentMethod.COD,
                shipping_address={**shipping_address, "city": ""},
            )

    def test_frozen(self):
        dto = CreateOrderDTO(payment_method=PaymentMethod.COD)
        with pytest.raises(ValidationError):
            dto.customer_notes = "changed"


class TestBusinessRulesDTO:
    def test_cod_limit_must_be_positive(self):
        with pytest.raises(ValidationError):
            BusinessRulesDTO(cod_limit=Decimal("0"))

    def test_unset_fields_stay_none(self):
        dto = BusinessRulesDTO(allow_exchange=False)

        assert dto.cod_limit is None
        assert dto.allow_exchange is False


class TestExchangeItemDTO:
    def test_zero_quantity_raises(self):
        with pytest.raises(ValidationError, match="valid quantity"):
            ExchangeItemDTO(
                original_item_id=uuid4(),
                new_product_id=uuid4(),
                new_variant_id=uuid4(),
                new_quantity=0,
            )

    def test_exchange_type_is_size_or_color(self):
        with pytest.raises(ValidationError):
            RequestExchangeDTO(exchange_type="style", exchange_reason="x", exchange_items=[])


class TestConfirmCODPaymentDTO:
    def test_valid_amount(self):
        dto = ConfirmCODPaymentDTO(amount_received="1400.00")
        assert dto.amount_received == Decimal("1400.00")

    def test_non_positive_amount(self):
        with pytest.raises(ValidationError):
            ConfirmCODPaymentDTO(amount_received=Decimal("0"))

    def test_too_many_decimals(self):
        with pytest.raises(ValidationError):
            ConfirmCODPaymentDTO(amount_received=Decimal("10.001"))
