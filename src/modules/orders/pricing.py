"""Pricing engine: item pricing, order totals, shipping and COD limit.

Pure functions over ``Decimal`` values.  The tunables live in
``PricingConfig`` (built once from Django settings and injected into the
services) so tests can price orders with any tax rate or threshold.

Tax applies to the sale-adjusted line total.  ``subtotal`` is therefore
already discounted and ``discount_total`` is informational only.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Sequence, Tuple

from django.conf import settings

from modules.orders.exceptions import CODLimitExceeded

if TYPE_CHECKING:
    from modules.catalog.models import Variant

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def quantize(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingConfig:
    tax_rate: Decimal = Decimal("0")
    free_shipping_threshold: Decimal = Decimal("2000")
    shipping_cost: Decimal = Decimal("200")
    cod_limit: Decimal = Decimal("5000")
    return_window_days: int = 7
    exchange_window_days: int = 7
    estimated_delivery_days: int = 7

    @classmethod
    def from_settings(cls) -> PricingConfig:
        return cls(
            tax_rate=Decimal(str(getattr(settings, "ORDER_TAX_RATE", "0"))),
            free_shipping_threshold=Decimal(
                str(getattr(settings, "ORDER_FREE_SHIPPING_THRESHOLD", "2000"))
            ),
            shipping_cost=Decimal(str(getattr(settings, "ORDER_SHIPPING_COST", "200"))),
            cod_limit=Decimal(str(getattr(settings, "ORDER_COD_LIMIT", "5000"))),
            return_window_days=int(getattr(settings, "ORDER_RETURN_WINDOW_DAYS", 7)),
            exchange_window_days=int(getattr(settings, "ORDER_EXCHANGE_WINDOW_DAYS", 7)),
            estimated_delivery_days=int(
                getattr(settings, "ORDER_ESTIMATED_DELIVERY_DAYS", 7)
            ),
        )

    def business_rules(self) -> Dict[str, Any]:
        """Snapshot copied onto every new order."""
        return {
            "cod_limit": str(self.cod_limit),
            "allow_cancellation": True,
            "allow_return": True,
            "return_window_days": self.return_window_days,
            "allow_exchange": True,
            "exchange_window_days": self.exchange_window_days,
        }


@dataclass(frozen=True)
class ItemPricing:
    unit_price: Decimal
    sale_price: Optional[Decimal]
    total_price: Decimal
    discount_amount: Decimal
    tax_amount: Decimal


@dataclass(frozen=True)
class OrderTotals:
    subtotal: Decimal
    discount_total: Decimal
    tax_total: Decimal
    shipping_cost: Decimal
    total_amount: Decimal


@dataclass(frozen=True)
class ExchangePricing:
    original_total: Decimal
    new_total: Decimal
    price_difference: Decimal


def calculate_item_pricing(
    variant: Variant, quantity: int, config: PricingConfig
) -> ItemPricing:
    sale_price = variant.sale_price or None
    unit_price = sale_price or variant.price
    total_price = quantize(unit_price * quantity)

    discount_amount = ZERO
    if sale_price:
        discount_amount = quantize((variant.price - sale_price) * quantity)

    tax_amount = ZERO
    if config.tax_rate > 0:
        tax_amount = quantize(total_price * config.tax_rate)

    return ItemPricing(
        unit_price=quantize(unit_price),
        sale_price=quantize(sale_price) if sale_price else None,
        total_price=total_price,
        discount_amount=discount_amount,
        tax_amount=tax_amount,
    )


def calculate_shipping_cost(subtotal: Decimal, config: PricingConfig) -> Decimal:
    if subtotal >= config.free_shipping_threshold:
        return ZERO
    return quantize(config.shipping_cost)


def calculate_order_totals(
    items: Sequence[ItemPricing], config: PricingConfig
) -> OrderTotals:
    if not items:
        return OrderTotals(ZERO, ZERO, ZERO, ZERO, ZERO)

    subtotal = quantize(sum((item.total_price for item in items), ZERO))
    discount_total = quantize(sum((item.discount_amount for item in items), ZERO))
    tax_total = quantize(sum((item.tax_amount for item in items), ZERO))
    shipping_cost = calculate_shipping_cost(subtotal, config)

    return OrderTotals(
        subtotal=subtotal,
        discount_total=discount_total,
        tax_total=tax_total,
        shipping_cost=shipping_cost,
        total_amount=subtotal + tax_total + shipping_cost,
    )


def validate_cod_limit(total_amount: Decimal, cod_limit: Decimal) -> None:
    """Raises ``CODLimitExceeded`` when *total_amount* is above *cod_limit*."""
    if total_amount > cod_limit:
        raise CODLimitExceeded(
            f"Cash on Delivery is not available for orders above Rs. {cod_limit}"
        )


def calculate_exchange_pricing(
    original_totals: Iterable[Decimal], new_totals: Iterable[Decimal]
) -> ExchangePricing:
    """Compare pre-tax merchandise totals of the returned and the new lines."""
    original_total = quantize(sum(original_totals, ZERO))
    new_total = quantize(sum(new_totals, ZERO))
    return ExchangePricing(
        original_total=original_total,
        new_total=new_total,
        price_difference=new_total - original_total,
    )


def split_price_difference(price_difference: Decimal) -> Tuple[Decimal, Decimal]:
    """Return ``(customer_payment_required, customer_refund_amount)``."""
    if price_difference > 0:
        return price_difference, ZERO
    if price_difference < 0:
        return ZERO, -price_difference
    return ZERO, ZERO
