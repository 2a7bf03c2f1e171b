"""Plain-text message templates, one per notification kind."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Dict

from django.utils import timezone

from modules.notifications.interfaces import NotificationKind

if TYPE_CHECKING:
    from modules.customers.models import Customer
    from modules.orders.models import Order

BRAND = "Nepwears"


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str
    sms: str


def _order_confirmation(order: Order, customer: Customer, **context: Any) -> RenderedMessage:
    lines = [
        f"Dear {customer.full_name},",
        "",
        f"Thank you for your order {order.short_order_id}.",
        "",
    ]
    for item in order.items.all():
        lines.append(f"- {item.variant} x{item.quantity}: Rs. {item.total_price}")
    lines += [
        "",
        f"Subtotal: Rs. {order.subtotal}",
        f"Discount: Rs. {order.discount_total}",
        f"Tax: Rs. {order.tax_total}",
        f"Shipping: Rs. {order.shipping_cost}",
        f"Total: Rs. {order.total_amount}",
        f"Payment method: {order.get_payment_method_display()}",
        f"Payment status: {order.get_payment_status_display()}",
        "",
        f"Thank you for choosing {BRAND}!",
    ]
    return RenderedMessage(
        subject=f"Order Confirmation - {order.short_order_id}",
        body="\n".join(lines),
        sms=(
            f"{BRAND}: order {order.short_order_id} received. "
            f"Total Rs. {order.total_amount}."
        ),
    )


def _order_status(order: Order, customer: Customer, **context: Any) -> RenderedMessage:
    new_status = context.get("new_status", order.status)
    previous_status = context.get("previous_status", "")
    body = "\n".join(
        [
            f"Dear {customer.full_name},",
            "",
            f"Your order {order.short_order_id} status has been updated.",
            f"Previous status: {previous_status}",
            f"New status: {new_status}",
            "",
            f"Thank you for choosing {BRAND}!",
        ]
    )
    return RenderedMessage(
        subject=f"Order Status Updated - {order.short_order_id}",
        body=body,
        sms=f"{BRAND}: order {order.short_order_id} is now {new_status}.",
    )


def _refund(order: Order, customer: Customer, **context: Any) -> RenderedMessage:
    amount = context.get("refund_amount", order.amount_refunded)
    body = "\n".join(
        [
            f"Dear {customer.full_name},",
            "",
            f"Order ID: {order.short_order_id}",
            f"Refund amount: Rs. {amount}",
            f"Refund date: {timezone.now():%Y-%m-%d}",
            f"Payment method: {order.get_payment_method_display()}",
            "",
            f"Total order amount: Rs. {order.total_amount}",
            f"Amount paid: Rs. {order.amount_paid}",
            f"Total refunded: Rs. {order.amount_refunded}",
            "",
            "If you have any questions, please contact our support team.",
        ]
    )
    return RenderedMessage(
        subject=f"Refund Processed - Order {order.short_order_id}",
        body=body,
        sms=f"{BRAND}: Rs. {amount} refunded for order {order.short_order_id}.",
    )


RENDERERS: Dict[str, Callable[..., RenderedMessage]] = {
    NotificationKind.ORDER_CONFIRMATION: _order_confirmation,
    NotificationKind.ORDER_STATUS: _order_status,
    NotificationKind.REFUND: _refund,
}


def render(kind: str, order: Order, customer: Customer, **context: Any) -> RenderedMessage:
    try:
        renderer = RENDERERS[kind]
    except KeyError:
        raise ValueError(f"Unknown notification kind '{kind}'.") from None
    return renderer(order, customer, **context)
