"""Order domain constants.

Defines status choices, the transition table of the order state machine
and the workflow record states (cancellation / return / exchange).
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    PROCESSING = "processing", "Processing"
    SHIPPED = "shipped", "Shipped"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"
    RETURNED = "returned", "Returned"
    REFUNDED = "refunded", "Refunded"
    EXCHANGE_REQUESTED = "exchange_requested", "Exchange requested"
    EXCHANGE_APPROVED = "exchange_approved", "Exchange approved"
    EXCHANGED = "exchanged", "Exchanged"


class PaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"


class PaymentMethod(models.TextChoices):
    KHALTI = "khalti", "Khalti"
    COD = "cod", "Cash on delivery"
    BANK_TRANSFER = "bank_transfer", "Bank transfer"
    ESEWA = "esewa", "eSewa"


class ShippingMethod(models.TextChoices):
    STANDARD = "standard", "Standard"
    EXPRESS = "express", "Express"
    SAME_DAY = "same_day", "Same day"


class WorkflowKind(models.TextChoices):
    CANCELLATION = "cancellation", "Cancellation"
    RETURN = "return", "Return"
    EXCHANGE = "exchange", "Exchange"


class ExchangeStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"


class ReturnStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    COMPLETED = "completed", "Completed"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {
        OrderStatus.RETURNED,
        OrderStatus.REFUNDED,
        OrderStatus.EXCHANGE_REQUESTED,
    },
    OrderStatus.EXCHANGE_REQUESTED: {
        OrderStatus.EXCHANGE_APPROVED,
        OrderStatus.DELIVERED,
    },
    OrderStatus.EXCHANGE_APPROVED: {OrderStatus.EXCHANGED},
    OrderStatus.RETURNED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.EXCHANGED: set(),
    OrderStatus.REFUNDED: set(),
}

TERMINAL_STATES: set[str] = {
    status for status, allowed in VALID_TRANSITIONS.items() if not allowed
}

CANCELLABLE_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.CONFIRMED}

REFUNDABLE_PAYMENT_STATES: set[str] = {
    PaymentStatus.PAID,
    PaymentStatus.PARTIALLY_REFUNDED,
}

STATUS_DESCRIPTIONS: dict[str, str] = {
    OrderStatus.PENDING: "Order placed, waiting for confirmation",
    OrderStatus.CONFIRMED: "Order confirmed, preparing for processing",
    OrderStatus.PROCESSING: "Order is being processed",
    OrderStatus.SHIPPED: "Order has been shipped",
    OrderStatus.DELIVERED: "Order has been delivered",
    OrderStatus.CANCELLED: "Order has been cancelled",
    OrderStatus.RETURNED: "Order has been returned",
    OrderStatus.REFUNDED: "Order has been refunded",
    OrderStatus.EXCHANGE_REQUESTED: "Exchange requested by customer",
    OrderStatus.EXCHANGE_APPROVED: "Exchange approved by admin",
    OrderStatus.EXCHANGED: "Exchange completed",
}

WORKFLOW_STAGES: dict[str, list[str]] = {
    "initial": [OrderStatus.PENDING],
    "processing": [
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.SHIPPED,
    ],
    "completed": [
        OrderStatus.DELIVERED,
        OrderStatus.EXCHANGED,
        OrderStatus.REFUNDED,
    ],
    "cancelled": [OrderStatus.CANCELLED],
    "returned": [OrderStatus.RETURNED],
}

ORDER_PREFIX = "ORD"
EXCHANGE_ORDER_PREFIX = "EXCH"

ORDER_NUMBER_MAX_RETRIES = 5
