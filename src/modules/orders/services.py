"""Order service layer (Use Cases).

Orchestrates order creation, status management, the exchange workflow
and COD payment confirmation.  Every write runs in one
``transaction.atomic()`` block: the service defines the unit-of-work
boundary.  Notifications are dispatched only after the block commits and
their failures never undo the order mutation.

Business rules enforced:
- Customer must exist and be active; shipping (and billing) address required.
- Cart lines are reserved under ``SELECT FOR UPDATE`` (sorted by variant id
  to avoid deadlocks); stock is decremented atomically.
- COD orders are capped by the order's ``cod_limit``.
- Status transitions go through ``OrderStateMachine`` (table, business
  rules, side effects, history).
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

import structlog
from django.db import transaction
from django.utils import timezone

from modules.catalog.exceptions import InactiveVariant, InsufficientStock, VariantNotFound
from modules.customers.exceptions import CustomerNotFound, InactiveCustomer
from modules.notifications.interfaces import NotificationKind
from modules.orders.constants import (
    ORDER_PREFIX,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import (
    EmptyCart,
    MissingAddress,
    NotCODOrder,
    OrderAlreadyPaid,
    OrderNotFound,
)
from modules.orders.exchange import ExchangeWorkflow
from modules.orders.numbering import OrderNumberGenerator
from modules.orders.pricing import (
    ZERO,
    ItemPricing,
    PricingConfig,
    calculate_item_pricing,
    calculate_order_totals,
    quantize,
    validate_cod_limit,
)
from modules.orders.state_machine import OrderStateMachine, build_status_flow

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.carts.repositories.interfaces import ICartRepository
    from modules.catalog.models import Variant
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.customers.models import Customer
    from modules.customers.repositories.interfaces import ICustomerRepository
    from modules.notifications.interfaces import INotificationDispatcher
    from modules.orders.dtos import (
        ApproveExchangeDTO,
        BusinessRulesDTO,
        ConfirmCODPaymentDTO,
        CreateOrderDTO,
        RejectExchangeDTO,
        RequestExchangeDTO,
    )
    from modules.orders.exchange import ExchangeApproval, ExchangeCompletion
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories, the notification dispatcher and the pricing
    configuration via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        customer_repository: ICustomerRepository,
        catalog_repository: ICatalogRepository,
        cart_repository: ICartRepository,
        notifier: INotificationDispatcher,
        pricing_config: Optional[PricingConfig] = None,
        number_generator: Optional[OrderNumberGenerator] = None,
    ) -> None:
        self._order_repo = order_repository
        self._customer_repo = customer_repository
        self._catalog_repo = catalog_repository
        self._cart_repo = cart_repository
        self._notifier = notifier
        self._pricing = pricing_config or PricingConfig.from_settings()
        self._numbers = number_generator or OrderNumberGenerator(order_repository)
        self._state_machine = OrderStateMachine(order_repository, catalog_repository)
        self._exchange = ExchangeWorkflow(
            order_repository=order_repository,
            catalog_repository=catalog_repository,
            state_machine=self._state_machine,
            number_generator=self._numbers,
            pricing_config=self._pricing,
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, customer_id: Any, dto: CreateOrderDTO) -> Order:
        """Create an order from the customer's cart.

        Steps (single transaction):
        1. Validate customer and addresses.
        2. Load cart lines; for each (sorted by variant id) lock the variant
           and check status and stock.
        3. Price items and compute totals; enforce the COD limit.
        4. Generate identifiers, persist order + items + first history entry.
        5. Decrement stock per item and clear the cart.

        Then, outside the transaction, send the confirmation notification.

        Raises:
            CustomerNotFound: customer does not exist.
            InactiveCustomer: customer is inactive.
            MissingAddress: shipping or billing address missing.
            EmptyCart: the cart has no lines.
            VariantNotFound / InactiveVariant / InsufficientStock: a cart
                line cannot be fulfilled.
            CODLimitExceeded: COD requested above the COD limit.
        """
        log = logger.bind(customer_id=str(customer_id))
        log.info("order.creation_started", payment_method=dto.payment_method)

        with transaction.atomic():
            customer = self._get_active_customer(customer_id)
            shipping_address, billing_address = self._resolve_addresses(dto)

            cart_items = self._cart_repo.get_items(str(customer.id))
            if not cart_items:
                raise EmptyCart()

            lines = self._reserve_lines(cart_items)
            totals = calculate_order_totals([pricing for _, _, pricing in lines], self._pricing)

            business_rules = self._business_rules(dto.business_rules)
            is_cod = dto.payment_method == PaymentMethod.COD
            if is_cod:
                validate_cod_limit(totals.total_amount, business_rules["cod_limit"])

            identifiers = self._numbers.generate(ORDER_PREFIX)
            now = timezone.now()
            initial_status = OrderStatus.CONFIRMED if is_cod else OrderStatus.PENDING

            order = self._order_repo.create(
                {
                    "order_number": identifiers.order_number,
                    "short_order_id": identifiers.short_order_id,
                    "customer": customer,
                    "status": initial_status,
                    "payment_status": PaymentStatus.PENDING,
                    "payment_method": dto.payment_method,
                    "subtotal": totals.subtotal,
                    "discount_total": totals.discount_total,
                    "tax_total": totals.tax_total,
                    "shipping_cost": totals.shipping_cost,
                    "total_amount": totals.total_amount,
                    "shipping_address": shipping_address,
                    "billing_address": billing_address,
                    "business_rules": {
                        **business_rules,
                        "cod_limit": str(business_rules["cod_limit"]),
                    },
                    "shipping": {
                        "method": dto.shipping_method,
                        "estimated_delivery": (
                            now + timedelta(days=self._pricing.estimated_delivery_days)
                        ).isoformat(),
                        "tracking_number": "",
                        "carrier": "",
                    },
                    "customer_notes": dto.customer_notes,
                    "metadata": {"source": "web", **dto.metadata},
                    "confirmed_at": now if is_cod else None,
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
                    for variant, quantity, pricing in lines
                ],
            )
            self._order_repo.add_history(
                order_id=order.id,
                new_status=initial_status,
                actor=str(customer.id),
                notes="Order created",
            )

            for variant, quantity, _ in lines:
                remaining = self._catalog_repo.adjust_stock(str(variant.id), -quantity)
                log.info(
                    "order.stock_reserved",
                    variant_id=str(variant.id),
                    quantity=quantity,
                    remaining=remaining,
                )

            self._cart_repo.clear(str(customer.id))

        log.info(
            "order.created",
            order_id=str(order.id),
            short_order_id=order.short_order_id,
            status=initial_status,
            total_amount=str(totals.total_amount),
        )

        order = self.get_order(str(order.id))
        self._notify(NotificationKind.ORDER_CONFIRMATION, order)
        return order

    def update_order_status(
        self,
        order_id: Any,
        actor_id: Any,
        new_status: str,
        reason: str = "",
        is_admin: bool = False,
    ) -> Order:
        """Transition an order to a new status.

        Acquires a row-level lock (``SELECT FOR UPDATE``) on the order
        before validating the transition, preventing concurrent mutations.
        Non-admin actors may only act on their own orders.

        Raises:
            OrderNotFound: order does not exist (or belongs to someone else).
            InvalidOrderStatus: transition is not allowed.
            BusinessRuleViolation: a business rule blocks the transition.
        """
        with transaction.atomic():
            order = self._get_for_update(order_id)
            if not is_admin and str(order.customer_id) != str(actor_id):
                raise OrderNotFound(f"Order {order_id} not found.")

            previous_status = order.status
            self._state_machine.transition(
                order,
                new_status,
                actor=str(actor_id or ""),
                reason=reason,
                is_admin=is_admin,
            )

        order = self.get_order(str(order.id))
        self._notify(
            NotificationKind.ORDER_STATUS,
            order,
            new_status=new_status,
            previous_status=previous_status,
        )
        return order

    def cancel_order(self, order_id: Any, actor_id: Any, reason: str = "", is_admin: bool = False) -> Order:
        """Cancel an order and release its reserved stock."""
        return self.update_order_status(
            order_id,
            actor_id,
            OrderStatus.CANCELLED,
            reason=reason or "Order cancelled",
            is_admin=is_admin,
        )

    def request_exchange(self, order_id: Any, customer_id: Any, dto: RequestExchangeDTO) -> Order:
        with transaction.atomic():
            order = self._exchange.request(str(order_id), str(customer_id), dto)

        order = self.get_order(str(order.id))
        self._notify(
            NotificationKind.ORDER_STATUS,
            order,
            new_status=OrderStatus.EXCHANGE_REQUESTED,
            previous_status=OrderStatus.DELIVERED,
        )
        return order

    def approve_exchange(self, order_id: Any, dto: ApproveExchangeDTO, actor_id: Any = "") -> ExchangeApproval:
        with transaction.atomic():
            approval = self._exchange.approve(str(order_id), dto, actor=str(actor_id or ""))

        self._notify(
            NotificationKind.ORDER_STATUS,
            approval.original_order,
            new_status=OrderStatus.EXCHANGE_APPROVED,
            previous_status=OrderStatus.EXCHANGE_REQUESTED,
        )
        return approval

    def reject_exchange(self, order_id: Any, dto: RejectExchangeDTO, actor_id: Any = "") -> Order:
        with transaction.atomic():
            order = self._exchange.reject(str(order_id), dto, actor=str(actor_id or ""))

        order = self.get_order(str(order.id))
        self._notify(
            NotificationKind.ORDER_STATUS,
            order,
            new_status=OrderStatus.DELIVERED,
            previous_status=OrderStatus.EXCHANGE_REQUESTED,
        )
        return order

    def complete_exchange(self, order_id: Any, actor_id: Any = "") -> ExchangeCompletion:
        with transaction.atomic():
            completion = self._exchange.complete(str(order_id), actor=str(actor_id or ""))

        self._notify(
            NotificationKind.ORDER_STATUS,
            completion.original_order,
            new_status=OrderStatus.EXCHANGED,
            previous_status=OrderStatus.EXCHANGE_APPROVED,
        )
        return completion

    def confirm_cod_payment(self, order_id: Any, agent_id: Any, dto: ConfirmCODPaymentDTO) -> Order:
        """Record cash collected on delivery.

        A ``pending`` order moves to ``confirmed``; any later status is left
        untouched.

        Raises:
            OrderNotFound: order does not exist.
            NotCODOrder: the order is not paid by cash on delivery.
            OrderAlreadyPaid: payment was already recorded.
        """
        with transaction.atomic():
            order = self._get_for_update(order_id)
            log = logger.bind(order_id=str(order.id), agent_id=str(agent_id))

            if order.payment_method != PaymentMethod.COD:
                raise NotCODOrder()
            if order.payment_status == PaymentStatus.PAID:
                raise OrderAlreadyPaid()

            now = timezone.now()
            order.payment_status = PaymentStatus.PAID
            order.amount_paid = dto.amount_received
            order.cod_details = {
                "amount_received": str(dto.amount_received),
                "delivery_agent_id": str(agent_id),
                "payment_date": now.isoformat(),
                "delivery_notes": dto.delivery_notes,
                "agent_signature": dto.agent_signature,
                "customer_signature": dto.customer_signature,
            }
            order.payment_details = {
                **(order.payment_details or {}),
                "payment_gateway": PaymentMethod.COD.value,
                "payment_date": now.isoformat(),
            }

            if order.status == OrderStatus.PENDING:
                self._state_machine.transition(
                    order,
                    OrderStatus.CONFIRMED,
                    actor=str(agent_id),
                    reason="COD payment received",
                    is_admin=True,
                    check_business_rules=False,
                )
            else:
                self._order_repo.save(
                    order,
                    update_fields=[
                        "payment_status",
                        "amount_paid",
                        "cod_details",
                        "payment_details",
                    ],
                )

        log.info("order.cod_payment_confirmed", amount=str(dto.amount_received))
        order = self.get_order(str(order.id))
        self._notify(NotificationKind.ORDER_CONFIRMATION, order)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, customer_id: Optional[Any] = None) -> Order:
        """Retrieve a single order by ID, optionally scoped to a customer.

        Raises:
            OrderNotFound: if the order does not exist (or is not theirs).
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if customer_id is not None and str(order.customer_id) != str(customer_id):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    def get_order_status_flow(self) -> Dict[str, Any]:
        return build_status_flow()

    def get_order_stats(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        customer_id: Optional[Any] = None,
    ) -> Dict[str, Any]:
        """Order counts, revenue and daily activity for the admin dashboard.

        Dates are inclusive and compared against the local creation date.
        ``conversion_rate`` is the delivered share of all orders, as a whole
        percentage.
        """
        filters: Dict[str, Any] = {}
        if start_date:
            filters["created_at__date__gte"] = start_date
        if end_date:
            filters["created_at__date__lte"] = end_date
        if customer_id:
            filters["customer_id"] = customer_id

        stats = self._order_repo.get_stats(filters)
        total_orders = stats["total_orders"]
        total_revenue = stats["total_revenue"] or ZERO
        average_order_value = quantize(total_revenue / total_orders) if total_orders else ZERO
        conversion_rate = (
            int(
                (Decimal(stats["delivered_orders"] * 100) / total_orders).quantize(
                    Decimal("1"), rounding=ROUND_HALF_UP
                )
            )
            if total_orders
            else 0
        )

        return {
            "overview": {
                "total_orders": total_orders,
                "confirmed_orders": stats["confirmed_orders"],
                "pending_orders": stats["pending_orders"],
                "delivered_orders": stats["delivered_orders"],
                "cancelled_orders": stats["cancelled_orders"],
                "total_revenue": quantize(total_revenue),
                "average_order_value": average_order_value,
                "cod_orders": stats["cod_orders"],
                "online_orders": stats["online_orders"],
            },
            "status_breakdown": stats["status_breakdown"],
            "daily_stats": [
                {
                    "date": row["day"].isoformat(),
                    "count": row["count"],
                    "revenue": quantize(row["revenue"] or ZERO),
                }
                for row in stats["daily_stats"]
            ],
            "conversion_rate": conversion_rate,
        }

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_for_update(self, order_id: Any) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def _get_active_customer(self, customer_id: Any) -> Customer:
        customer = self._customer_repo.get_by_id(str(customer_id))
        if not customer:
            raise CustomerNotFound(f"Customer {customer_id} not found.")
        if not customer.is_active:
            raise InactiveCustomer(f"Customer {customer_id} is inactive.")
        return customer

    @staticmethod
    def _resolve_addresses(dto: CreateOrderDTO) -> Tuple[Dict[str, Any], Dict[str, Any]]:
        if dto.shipping_address is None:
            raise MissingAddress("Shipping address is required.")
        billing = dto.shipping_address if dto.use_shipping_as_billing else dto.billing_address
        if billing is None:
            raise MissingAddress("Billing address is required.")
        return (
            dto.shipping_address.model_dump(mode="json"),
            billing.model_dump(mode="json"),
        )

    def _reserve_lines(self, cart_items: List[Any]) -> List[Tuple[Variant, int, ItemPricing]]:
        lines: List[Tuple[Variant, int, ItemPricing]] = []
        for cart_item in sorted(cart_items, key=lambda item: str(item.variant_id)):
            variant = self._catalog_repo.get_variant_for_update(str(cart_item.variant_id))
            if variant is None or variant.product.is_deleted:
                raise VariantNotFound("Product or variant not found.")
            if not variant.is_active:
                raise InactiveVariant(f"Variant {variant.sku} is not available.")
            if variant.stock < cart_item.quantity:
                raise InsufficientStock(
                    f"Insufficient stock for {variant.product.name} ({variant.sku}). "
                    f"Available: {variant.stock}"
                )
            lines.append(
                (
                    variant,
                    cart_item.quantity,
                    calculate_item_pricing(variant, cart_item.quantity, self._pricing),
                )
            )
        return lines

    def _business_rules(self, overrides: Optional[BusinessRulesDTO]) -> Dict[str, Any]:
        rules = self._pricing.business_rules()
        rules["cod_limit"] = self._pricing.cod_limit
        if overrides is not None:
            rules.update(overrides.model_dump(exclude_none=True))
        return rules

    def _notify(self, kind: str, order: Order, **context: Any) -> None:
        """Best-effort delivery: failures are logged, never raised."""
        try:
            self._notifier.send(kind, order, order.customer, **context)
        except Exception:
            logger.exception(
                "order.notification_failed",
                kind=kind,
                order_id=str(order.id),
            )
