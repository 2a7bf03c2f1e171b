"""Payment service layer: Khalti initiation, verification and refunds.

Gateway calls never run inside a database transaction.  Order mutations
are applied under ``SELECT FOR UPDATE``; status changes go through
``OrderStateMachine`` so history is written exactly as for any other
transition.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict

import structlog
from django.db import transaction
from django.utils import timezone

from modules.notifications.interfaces import NotificationKind
from modules.orders.constants import (
    REFUNDABLE_PAYMENT_STATES,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import OrderAccessDenied, OrderAlreadyPaid, OrderNotFound
from modules.orders.state_machine import OrderStateMachine
from modules.payments.exceptions import (
    InvalidRefundAmount,
    PaymentGatewayError,
    PaymentNotCompleted,
    PaymentNotRefundable,
)

if TYPE_CHECKING:
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.notifications.interfaces import INotificationDispatcher
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateway import KhaltiGateway

logger = structlog.get_logger(__name__)

KHALTI_COMPLETED = "Completed"


class PaymentService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        catalog_repository: ICatalogRepository,
        gateway: KhaltiGateway,
        notifier: INotificationDispatcher,
    ) -> None:
        self._order_repo = order_repository
        self._gateway = gateway
        self._notifier = notifier
        self._state_machine = OrderStateMachine(order_repository, catalog_repository)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def initiate_khalti_payment(self, order_id: Any, customer_id: Any) -> Dict[str, Any]:
        """Start a Khalti payment for the customer's order.

        Raises:
            OrderNotFound: order does not exist.
            OrderAccessDenied: order belongs to another customer.
            OrderAlreadyPaid: order is already paid.
            PaymentGatewayError: Khalti rejected the request.
        """
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if str(order.customer_id) != str(customer_id):
            raise OrderAccessDenied("Unauthorized access to order.")
        if order.payment_status == PaymentStatus.PAID:
            raise OrderAlreadyPaid()

        customer = order.customer
        result = self._gateway.initiate(
            str(order.id),
            order.total_amount,
            {"name": customer.full_name, "email": customer.email, "phone": customer.phone},
        )
        pidx = result.get("pidx")
        if not pidx:
            raise PaymentGatewayError("Khalti did not return a payment id.")

        with transaction.atomic():
            order = self._get_for_update(order.id)
            order.transaction_id = pidx
            order.payment_details = {
                **(order.payment_details or {}),
                "payment_gateway": PaymentMethod.KHALTI.value,
                "transaction_id": pidx,
            }
            self._order_repo.save(order, update_fields=["transaction_id", "payment_details"])

        logger.info("payment.initiated", order_id=str(order.id), pidx=pidx)
        return result

    def verify_khalti_payment(self, pidx: str) -> Dict[str, Any]:
        """Confirm a Khalti payment and mark the order paid.

        Raises:
            PaymentGatewayError: lookup failed.
            PaymentNotCompleted: Khalti reports a status other than Completed.
            OrderNotFound: no order carries this ``pidx``.
            OrderAlreadyPaid: order is already paid.
        """
        result = self._gateway.verify(pidx)
        log = logger.bind(pidx=pidx)

        if result.get("status") != KHALTI_COMPLETED:
            log.warning("payment.not_completed", status=result.get("status"))
            raise PaymentNotCompleted(
                f"Payment verification failed. Status: {result.get('status')}"
            )

        with transaction.atomic():
            order = self._order_repo.get_by_transaction_id(pidx)
            if not order:
                raise OrderNotFound("Order not found.")
            if order.payment_status == PaymentStatus.PAID:
                raise OrderAlreadyPaid()

            order.payment_status = PaymentStatus.PAID
            order.amount_paid = order.total_amount
            order.payment_details = {
                **(order.payment_details or {}),
                "payment_gateway": PaymentMethod.KHALTI.value,
                "transaction_id": pidx,
                "payment_date": timezone.now().isoformat(),
                "gateway_response": result,
            }
            if order.status == OrderStatus.PENDING:
                self._state_machine.transition(
                    order,
                    OrderStatus.CONFIRMED,
                    actor="khalti",
                    reason="Khalti payment verified",
                    is_admin=True,
                    check_business_rules=False,
                )
            else:
                self._order_repo.save(
                    order,
                    update_fields=["payment_status", "amount_paid", "payment_details"],
                )

        log.info("payment.verified", order_id=str(order.id), amount=str(order.amount_paid))
        self._notify(NotificationKind.ORDER_CONFIRMATION, order)
        return {
            "order_id": str(order.id),
            "transaction_id": result.get("transaction_id"),
            "status": result.get("status"),
            "total_amount": result.get("total_amount"),
        }

    def refund_payment(self, order_id: Any, actor_id: Any, amount: Decimal, reason: str = "") -> Order:
        """Refund part or all of a paid order through Khalti.

        The gateway is called first, outside the transaction; the refund is
        then recorded under the order lock.  A full refund moves the order to
        ``refunded``.

        Raises:
            OrderNotFound: order does not exist.
            PaymentNotRefundable: order unpaid or without a gateway transaction.
            InvalidRefundAmount: amount not positive or above the refundable rest.
            PaymentGatewayError: Khalti rejected the refund.
        """
        amount = Decimal(str(amount))
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        self._validate_refund(order, amount)

        log = logger.bind(order_id=str(order.id), actor=str(actor_id), amount=str(amount))
        gateway_result = self._gateway.refund(order.transaction_id, amount, reason)
        log.info("payment.refund_processed")

        with transaction.atomic():
            order = self._get_for_update(order.id)
            try:
                self._validate_refund(order, amount)
            except (PaymentNotRefundable, InvalidRefundAmount):
                log.error("payment.refund_unrecorded", gateway_response=gateway_result)
                raise

            now = timezone.now()
            order.amount_refunded += amount
            payment_details = dict(order.payment_details or {})
            payment_details["refunds"] = [
                *payment_details.get("refunds", []),
                {
                    "amount": str(amount),
                    "reason": reason,
                    "refunded_by": str(actor_id),
                    "refunded_at": now.isoformat(),
                    "gateway_response": gateway_result,
                },
            ]
            order.payment_details = payment_details

            if order.amount_refunded >= order.amount_paid:
                order.payment_status = PaymentStatus.REFUNDED
                if order.status != OrderStatus.REFUNDED:
                    self._state_machine.transition(
                        order,
                        OrderStatus.REFUNDED,
                        actor=str(actor_id),
                        reason=reason or "Payment refunded",
                        is_admin=True,
                        check_business_rules=False,
                    )
                else:
                    self._save_refund(order)
            else:
                order.payment_status = PaymentStatus.PARTIALLY_REFUNDED
                self._save_refund(order)

        log.info(
            "payment.refunded",
            payment_status=order.payment_status,
            amount_refunded=str(order.amount_refunded),
        )
        order = self._order_repo.get_by_id(str(order.id)) or order
        self._notify(NotificationKind.REFUND, order, refund_amount=amount)
        return order

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_for_update(self, order_id: Any) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    @staticmethod
    def _validate_refund(order: Order, amount: Decimal) -> None:
        if order.payment_status not in REFUNDABLE_PAYMENT_STATES:
            raise PaymentNotRefundable("Order is not paid.")
        if not order.transaction_id:
            raise PaymentNotRefundable("No Khalti transaction found for this order.")
        if amount <= 0:
            raise InvalidRefundAmount("Refund amount must be greater than 0.")
        remaining = order.amount_paid - order.amount_refunded
        if amount > remaining:
            raise InvalidRefundAmount(
                f"Refund amount exceeds remaining refundable amount (Rs.{remaining})."
            )

    def _save_refund(self, order: Order) -> None:
        self._order_repo.save(
            order,
            update_fields=["amount_refunded", "payment_status", "payment_details"],
        )

    def _notify(self, kind: str, order: Order, **context: Any) -> None:
        try:
            self._notifier.send(kind, order, order.customer, **context)
        except Exception:
            logger.exception(
                "payment.notification_failed",
                kind=kind,
                order_id=str(order.id),
            )
