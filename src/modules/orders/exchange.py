"""Exchange sub-workflow.

Exchange record states::

    pending --approve--> approved --complete--> completed
    pending --reject---> rejected   (order reverts to delivered)

Inventory is held between approval and completion: the new variants are
decremented when the admin approves (the replacement order is created
then), and the returned variants are restored when the exchange is
completed.  A request moves no stock.

Every method must run inside ``transaction.atomic()``; ``OrderService``
owns the transaction boundary and the notifications.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog
from django.utils import timezone

from modules.catalog.exceptions import InactiveVariant, InsufficientStock, VariantNotFound
from modules.orders.constants import (
    EXCHANGE_ORDER_PREFIX,
    ExchangeStatus,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    ShippingMethod,
)
from modules.orders.exceptions import (
    BusinessRuleViolation,
    InvalidExchangeRequest,
    InvalidOrderStatus,
    OrderNotFound,
)
from modules.orders.pricing import (
    ZERO,
    ItemPricing,
    calculate_exchange_pricing,
    calculate_item_pricing,
    calculate_order_totals,
    calculate_shipping_cost,
    split_price_difference,
)
from modules.orders.workflows import ExchangeLine, ExchangeRecord

if TYPE_CHECKING:
    from modules.catalog.models import Variant
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.orders.dtos import ApproveExchangeDTO, RejectExchangeDTO, RequestExchangeDTO
    from modules.orders.models import Order
    from modules.orders.numbering import OrderNumberGenerator
    from modules.orders.pricing import ExchangePricing, PricingConfig
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.state_machine import OrderStateMachine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ExchangeApproval:
    original_order: Order
    exchange_order: Order
    price_difference: Decimal
    customer_payment_required: Decimal
    customer_refund_amount: Decimal


@dataclass(frozen=True)
class ExchangeCompletion:
    original_order: Order
    exchange_order: Optional[Order]


class ExchangeWorkflow:
    def __init__(
        self,
        order_repository: IOrderRepository,
        catalog_repository: ICatalogRepository,
        state_machine: OrderStateMachine,
        number_generator: OrderNumberGenerator,
        pricing_config: PricingConfig,
    ) -> None:
        self._order_repo = order_repository
        self._catalog_repo = catalog_repository
        self._state_machine = state_machine
        self._numbers = number_generator
        self._pricing = pricing_config

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request(self, order_id: str, customer_id: str, dto: RequestExchangeDTO) -> Order:
        """Record a customer's exchange request on a delivered order.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            BusinessRuleViolation: order not delivered, exchanges disabled or
                window elapsed.
            InvalidExchangeRequest: lines missing, unknown or over-quantity.
            VariantNotFound / InactiveVariant / InsufficientStock: new variant
                cannot be supplied.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if not order or str(order.customer_id) != str(customer_id):
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), customer_id=str(customer_id))

        if not order.can_be_exchanged():
            log.warning("exchange.not_allowed", status=order.status)
            raise BusinessRuleViolation("Order cannot be exchanged at this stage.")
        if not dto.exchange_items:
            raise InvalidExchangeRequest("Exchange items are required.")

        items_by_id = {str(item.id): item for item in order.items.all()}
        seen: set[str] = set()
        lines: List[ExchangeLine] = []
        original_totals: List[Decimal] = []
        new_totals: List[Decimal] = []

        for line in dto.exchange_items:
            original_item_id = str(line.original_item_id)
            original = items_by_id.get(original_item_id)
            if original is None:
                raise InvalidExchangeRequest("Original item not found for exchange.")
            if original_item_id in seen:
                raise InvalidExchangeRequest(
                    "Each original item can only be exchanged once per request."
                )
            seen.add(original_item_id)
            if line.new_quantity > original.quantity:
                raise InvalidExchangeRequest(
                    f"Cannot exchange more than purchased. Original qty: {original.quantity}"
                )

            variant = self._catalog_repo.get_by_id(str(line.new_variant_id))
            if variant is None or str(variant.product_id) != str(line.new_product_id):
                raise VariantNotFound(f"New variant {line.new_variant_id} is not available.")
            self._ensure_available(variant, line.new_quantity)

            original_totals.append(original.total_price)
            new_totals.append(variant.effective_price * line.new_quantity)
            lines.append(
                ExchangeLine(
                    original_item_id=original_item_id,
                    original_product_id=str(original.product_id),
                    original_variant_id=str(original.variant_id),
                    original_quantity=original.quantity,
                    new_product_id=str(line.new_product_id),
                    new_variant_id=str(line.new_variant_id),
                    new_quantity=line.new_quantity,
                )
            )

        pricing = calculate_exchange_pricing(original_totals, new_totals)
        shipping_cost = calculate_shipping_cost(pricing.new_total, self._pricing)

        order.set_workflow(
            ExchangeRecord(
                exchange_requested_at=timezone.now(),
                exchange_reason=dto.exchange_reason,
                exchange_type=dto.exchange_type,
                exchange_items=lines,
                customer_notes=dto.customer_notes,
                original_total=pricing.original_total,
                new_total=pricing.new_total + shipping_cost,
                shipping_cost=shipping_cost,
                price_difference=pricing.price_difference,
            )
        )
        self._state_machine.transition(
            order,
            OrderStatus.EXCHANGE_REQUESTED,
            actor=str(customer_id),
            reason=dto.exchange_reason or "Exchange requested",
        )

        log.info(
            "exchange.requested",
            lines=len(lines),
            price_difference=str(pricing.price_difference),
        )
        return order

    def approve(self, order_id: str, dto: ApproveExchangeDTO, actor: str = "") -> ExchangeApproval:
        """Approve a pending exchange and issue the replacement order.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: order is not ``exchange_requested``.
            VariantNotFound / InactiveVariant / InsufficientStock: a new
                variant can no longer be supplied.
        """
        order, record = self._locked_with_record(order_id, OrderStatus.EXCHANGE_REQUESTED)
        log = logger.bind(order_id=str(order.id), actor=actor or "system")

        items_by_id = {str(item.id): item for item in order.items.all()}
        priced: List[Tuple[Variant, int, ItemPricing]] = []
        original_totals: List[Decimal] = []

        # Lock new variants in a stable order to avoid deadlocks.
        for line in sorted(record.exchange_items, key=lambda l: l.new_variant_id):
            original = items_by_id.get(line.original_item_id)
            if original is None:
                raise InvalidExchangeRequest("Original item not found for exchange.")
            variant = self._catalog_repo.get_variant_for_update(line.new_variant_id)
            if variant is None:
                raise VariantNotFound("New variant not found.")
            self._ensure_available(variant, line.new_quantity)

            original_totals.append(original.total_price)
            priced.append(
                (
                    variant,
                    line.new_quantity,
                    calculate_item_pricing(variant, line.new_quantity, self._pricing),
                )
            )

        exchange_pricing = calculate_exchange_pricing(
            original_totals, [pricing.total_price for _, _, pricing in priced]
        )
        price_difference = exchange_pricing.price_difference
        totals = calculate_order_totals([pricing for _, _, pricing in priced], self._pricing)
        identifiers = self._numbers.generate(EXCHANGE_ORDER_PREFIX)
        settled = price_difference <= 0

        shipping_method = (order.shipping or {}).get("method", ShippingMethod.STANDARD)
        exchange_order = self._order_repo.create(
            {
                "order_number": identifiers.order_number,
                "short_order_id": identifiers.short_order_id,
                "customer": order.customer,
                "parent_order": order,
                "status": OrderStatus.PENDING,
                "payment_method": PaymentMethod.COD,
                "payment_status": PaymentStatus.PAID if settled else PaymentStatus.PENDING,
                "amount_paid": totals.total_amount if settled else ZERO,
                "subtotal": totals.subtotal,
                "discount_total": totals.discount_total,
                "tax_total": totals.tax_total,
                "shipping_cost": totals.shipping_cost,
                "total_amount": totals.total_amount,
                "shipping_address": order.shipping_address,
                "billing_address": order.billing_address,
                "business_rules": order.business_rules,
                "shipping": {
                    "method": shipping_method,
                    "estimated_delivery": (
                        timezone.now()
                        + timedelta(days=self._pricing.estimated_delivery_days)
                    ).isoformat(),
                    "tracking_number": dto.exchange_tracking_number,
                    "carrier": dto.exchange_carrier,
                },
                "customer_notes": f"Exchange for order {order.short_order_id}",
                "internal_notes": dto.admin_notes,
                "metadata": self._exchange_metadata(exchange_pricing),
            },
            [
                {
                    "product_id": variant.product_id,
                    "variant": variant,
                    "quantity": quantity,
                    "unit_price": pricing.unit_price,
                    "sale_price": pricing.sale_price,
                    "total_price": pricing.total_price,
                    "discount_amount": pricing.discount_amount,
                    "tax_amount": pricing.tax_amount,
                    "original_stock": variant.stock,
                }
                for variant, quantity, pricing in priced
            ],
        )
        self._order_repo.add_history(
            order_id=exchange_order.id,
            new_status=OrderStatus.PENDING,
            actor=actor,
            notes=f"Exchange order for {order.short_order_id}",
        )

        for variant, quantity, _ in priced:
            stock = self._catalog_repo.adjust_stock(str(variant.id), -quantity)
            log.info(
                "exchange.stock_reserved",
                variant_id=str(variant.id),
                quantity=quantity,
                remaining=stock,
            )

        order.set_workflow(
            record.model_copy(
                update={
                    "exchange_status": ExchangeStatus.APPROVED,
                    "exchange_order_id": str(exchange_order.id),
                    "exchange_tracking_number": dto.exchange_tracking_number,
                    "exchange_carrier": dto.exchange_carrier,
                    "admin_notes": dto.admin_notes,
                    "original_total": exchange_pricing.original_total,
                    "price_difference": price_difference,
                }
            )
        )
        self._state_machine.transition(
            order,
            OrderStatus.EXCHANGE_APPROVED,
            actor=actor,
            reason=dto.admin_notes or "Exchange approved",
            is_admin=True,
            check_business_rules=False,
        )

        payment_required, refund_amount = split_price_difference(price_difference)
        log.info(
            "exchange.approved",
            exchange_order_id=str(exchange_order.id),
            price_difference=str(price_difference),
        )
        return ExchangeApproval(
            original_order=order,
            exchange_order=exchange_order,
            price_difference=price_difference,
            customer_payment_required=payment_required,
            customer_refund_amount=refund_amount,
        )

    def reject(self, order_id: str, dto: RejectExchangeDTO, actor: str = "") -> Order:
        """Reject a pending exchange; the order goes back to ``delivered``.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: order is not ``exchange_requested``.
        """
        order, record = self._locked_with_record(order_id, OrderStatus.EXCHANGE_REQUESTED)

        order.set_workflow(
            record.model_copy(
                update={
                    "exchange_status": ExchangeStatus.REJECTED,
                    "admin_notes": dto.admin_notes,
                }
            )
        )
        self._state_machine.transition(
            order,
            OrderStatus.DELIVERED,
            actor=actor,
            reason=dto.admin_notes or "Exchange rejected",
            is_admin=True,
            check_business_rules=False,
        )

        logger.info("exchange.rejected", order_id=str(order.id), actor=actor or "system")
        return order

    def complete(self, order_id: str, actor: str = "") -> ExchangeCompletion:
        """Close an approved exchange.

        Restores the returned variants, marks the original order
        ``exchanged`` and confirms the replacement order with a payment
        state derived from the price difference.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: order is not ``exchange_approved`` (a second
                completion fails here, before any side effect).
        """
        order, record = self._locked_with_record(order_id, OrderStatus.EXCHANGE_APPROVED)
        log = logger.bind(order_id=str(order.id), actor=actor or "system")

        for line in sorted(record.exchange_items, key=lambda l: l.original_variant_id):
            if line.original_quantity > 0:
                stock = self._catalog_repo.adjust_stock(
                    line.original_variant_id, line.original_quantity
                )
                log.info(
                    "exchange.stock_restored",
                    variant_id=line.original_variant_id,
                    quantity=line.original_quantity,
                    restored_stock=stock,
                )

        order.set_workflow(record.model_copy(update={"exchange_status": ExchangeStatus.COMPLETED}))
        self._state_machine.transition(
            order,
            OrderStatus.EXCHANGED,
            actor=actor,
            reason="Exchange completed",
            is_admin=True,
            check_business_rules=False,
        )

        exchange_order = None
        if record.exchange_order_id:
            exchange_order = self._order_repo.get_for_update(record.exchange_order_id)
        if exchange_order is not None:
            self._settle_exchange_order(exchange_order, record.price_difference, actor)

        log.info(
            "exchange.completed",
            exchange_order_id=record.exchange_order_id,
        )
        return ExchangeCompletion(original_order=order, exchange_order=exchange_order)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _locked_with_record(self, order_id: str, expected_status: str) -> Tuple[Order, ExchangeRecord]:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if order.status != expected_status:
            raise InvalidOrderStatus(
                f'Order is not in {expected_status} status. Current status: "{order.status}".'
            )
        record = order.exchange
        if record is None:
            raise InvalidOrderStatus("Order has no exchange request.")
        return order, record

    def _settle_exchange_order(self, exchange_order: Order, price_difference: Decimal, actor: str) -> None:
        if price_difference > 0:
            exchange_order.payment_status = PaymentStatus.PENDING
            exchange_order.amount_paid = ZERO
        else:
            exchange_order.payment_status = PaymentStatus.PAID
            exchange_order.amount_paid = exchange_order.total_amount

        if exchange_order.status == OrderStatus.PENDING:
            self._state_machine.transition(
                exchange_order,
                OrderStatus.CONFIRMED,
                actor=actor,
                reason="Exchange completed",
                is_admin=True,
                check_business_rules=False,
            )
        else:
            self._order_repo.save(
                exchange_order,
                update_fields=["payment_status", "amount_paid"],
            )

    @staticmethod
    def _ensure_available(variant: Variant, quantity: int) -> None:
        if not variant.is_active:
            raise InactiveVariant(f"Variant {variant.sku} is not available.")
        if variant.stock < quantity:
            raise InsufficientStock(
                f"Insufficient stock for variant {variant.sku}. Available: {variant.stock}"
            )

    @staticmethod
    def _exchange_metadata(pricing: ExchangePricing) -> Dict[str, Any]:
        return {
            "source": "exchange",
            "referrer": "exchange_approval",
            "price_difference": str(pricing.price_difference),
            "original_total": str(pricing.original_total),
            "exchange_total": str(pricing.new_total),
        }
