"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.  Each one
derives from a category in ``modules.core.exceptions`` so the API layer
renders it with the right status code and error ``code``.
"""

from __future__ import annotations

from modules.core.exceptions import (
    AuthorizationError,
    ConflictError,
    DomainError,
    NotFound,
    ValidationError,
)


class OrderNotFound(NotFound):
    """The requested order does not exist (or is not visible to the actor)."""

    default_code = "order_not_found"
    default_message = "Order not found."


class InvalidOrderStatus(ValidationError):
    """A status transition is not allowed from the current status."""

    default_code = "invalid_status_transition"


class BusinessRuleViolation(ValidationError):
    """A transition is allowed by the table but blocked by a business rule
    (cancellation window, return/exchange window, unpaid refund, ...)."""

    default_code = "business_rule_violation"


class EmptyCart(ValidationError):
    default_code = "empty_cart"
    default_message = "Cart is empty."


class MissingAddress(ValidationError):
    default_code = "address_required"


class CODLimitExceeded(ValidationError):
    """COD was requested for an order whose total exceeds the COD limit."""

    default_code = "cod_limit_exceeded"


class InvalidExchangeRequest(ValidationError):
    """Exchange lines are missing, malformed or exceed purchased quantities."""

    default_code = "invalid_exchange"


class NotCODOrder(ValidationError):
    default_code = "not_cod_order"
    default_message = "Order is not a COD order."


class OrderAlreadyPaid(ConflictError):
    default_code = "order_already_paid"
    default_message = "Order is already paid."


class OrderAccessDenied(AuthorizationError):
    default_code = "order_access_denied"


class OrderNumberGenerationFailed(DomainError):
    """Could not produce a unique short order id within the retry budget."""

    status_code = 500
    error_type = "server_error"
    default_code = "order_number_generation_failed"
