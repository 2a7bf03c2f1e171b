"""Order status state machine.

The single place where ``Order.status`` changes.  A transition:

1. checks the transition table (admins bypass it);
2. checks the business rules of the target status against the current
   order (cancellation/return/exchange windows, paid-before-refund);
3. applies the status-specific side effects (timestamps, workflow
   records, stock restoration on cancellation);
4. saves the order and appends exactly one status history entry.

Callers must hold the order row lock inside ``transaction.atomic()``.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.utils import timezone

from modules.orders.constants import (
    CANCELLABLE_STATES,
    STATUS_DESCRIPTIONS,
    VALID_TRANSITIONS,
    WORKFLOW_STAGES,
    OrderStatus,
    PaymentStatus,
)
from modules.orders.exceptions import BusinessRuleViolation, InvalidOrderStatus
from modules.orders.workflows import CancellationRecord, ReturnRecord

if TYPE_CHECKING:
    from modules.catalog.repositories.interfaces import ICatalogRepository
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


def is_valid_transition(current_status: str, new_status: str, is_admin: bool = False) -> bool:
    """Admins may move an order to any status; everyone else follows the table."""
    if is_admin:
        return True
    return new_status in VALID_TRANSITIONS.get(current_status, set())


def validate_business_rules(
    order: Order, new_status: str, now: Optional[datetime] = None
) -> None:
    """Raises ``BusinessRuleViolation`` when *order* may not enter *new_status*."""
    if new_status == OrderStatus.CANCELLED and not order.can_be_cancelled():
        raise BusinessRuleViolation("Order cannot be cancelled at this stage.")
    if new_status == OrderStatus.RETURNED and not order.can_be_returned(now):
        raise BusinessRuleViolation("Order cannot be returned at this stage.")
    if new_status == OrderStatus.REFUNDED and order.payment_status != PaymentStatus.PAID:
        raise BusinessRuleViolation("Order must be paid before refund.")
    if new_status == OrderStatus.EXCHANGED and not order.can_be_exchanged(now):
        raise BusinessRuleViolation("Order cannot be exchanged at this stage.")


class OrderStateMachine:
    def __init__(
        self,
        order_repository: IOrderRepository,
        catalog_repository: ICatalogRepository,
    ) -> None:
        self._order_repo = order_repository
        self._catalog_repo = catalog_repository

    def transition(
        self,
        order: Order,
        new_status: str,
        actor: str = "",
        reason: str = "",
        is_admin: bool = False,
        check_business_rules: bool = True,
    ) -> Order:
        """Move *order* to *new_status* and record the change.

        Internal workflows (exchange, payment verification, refunds) pass
        ``check_business_rules=False`` after enforcing their own
        preconditions.

        Raises:
            InvalidOrderStatus: unknown status, no-op, or not in the table.
            BusinessRuleViolation: a business rule blocks the target status.
            InsufficientStock / VariantNotFound: stock restoration failed.
        """
        old_status = order.status
        log = logger.bind(
            order_id=str(order.id),
            current_status=old_status,
            new_status=new_status,
            actor=actor or "system",
        )

        if new_status not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown order status '{new_status}'.")
        if new_status == old_status:
            raise InvalidOrderStatus(f"Order is already {old_status}.")
        if not is_valid_transition(old_status, new_status, is_admin):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Invalid status transition from {old_status} to {new_status}."
            )

        now = timezone.now()
        if check_business_rules:
            validate_business_rules(order, new_status, now)

        order.status = new_status
        self._apply_side_effects(order, old_status, new_status, actor, reason, now)
        self._order_repo.save(order)
        self._order_repo.add_history(
            order_id=order.id,
            new_status=new_status,
            old_status=old_status,
            actor=actor,
            notes=reason or "Status updated",
        )

        log.info("order.status_updated", is_admin=is_admin)
        return order

    def _apply_side_effects(
        self,
        order: Order,
        old_status: str,
        new_status: str,
        actor: str,
        reason: str,
        now: datetime,
    ) -> None:
        if new_status == OrderStatus.CANCELLED:
            order.set_workflow(
                CancellationRecord(
                    cancelled_at=now,
                    cancelled_by=actor,
                    reason=reason or "Order cancelled",
                )
            )
            self._restore_stock(order)
        elif new_status == OrderStatus.CONFIRMED:
            order.confirmed_at = now
        elif new_status == OrderStatus.PROCESSING:
            order.processed_at = now
        elif new_status == OrderStatus.SHIPPED:
            order.shipped_at = now
        elif new_status == OrderStatus.DELIVERED:
            # A rejected exchange keeps the original delivery date.
            if old_status != OrderStatus.EXCHANGE_REQUESTED or order.delivered_at is None:
                order.delivered_at = now
        elif new_status == OrderStatus.RETURNED:
            order.set_workflow(
                ReturnRecord(
                    return_requested_at=now,
                    return_reason=reason or "Return requested",
                )
            )

    def _restore_stock(self, order: Order) -> None:
        items = sorted(order.items.all(), key=lambda item: str(item.variant_id))
        for item in items:
            stock = self._catalog_repo.adjust_stock(str(item.variant_id), item.quantity)
            logger.info(
                "order.stock_released",
                order_id=str(order.id),
                variant_id=str(item.variant_id),
                quantity=item.quantity,
                restored_stock=stock,
            )


def build_status_flow() -> Dict[str, Any]:
    """Describe every status, its allowed transitions and the workflow stages."""
    status_flow: Dict[str, Any] = {}
    for status in OrderStatus.values:
        allowed = [
            str(target)
            for target in sorted(
                VALID_TRANSITIONS.get(status, set()), key=OrderStatus.values.index
            )
        ]
        status_flow[status] = {
            "status": status,
            "description": STATUS_DESCRIPTIONS[status],
            "allowed_transitions": allowed,
            "allowed_transitions_details": [
                {"status": target, "description": STATUS_DESCRIPTIONS[target]}
                for target in allowed
            ],
            "is_terminal": not allowed,
            "can_be_cancelled": status in CANCELLABLE_STATES,
            "can_be_returned": status == OrderStatus.DELIVERED,
            "can_be_exchanged": status == OrderStatus.DELIVERED,
            "requires_action": status
            in {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING},
            "is_completed": status
            in {OrderStatus.DELIVERED, OrderStatus.EXCHANGED, OrderStatus.REFUNDED},
        }

    return {
        "status_flow": status_flow,
        "summary": {
            "total_statuses": len(status_flow),
            "terminal_statuses": [s for s, info in status_flow.items() if info["is_terminal"]],
            "active_statuses": [s for s, info in status_flow.items() if not info["is_terminal"]],
            "workflow_stages": {
                stage: [str(status) for status in statuses]
                for stage, statuses in WORKFLOW_STAGES.items()
            },
        },
    }
