"""Customer domain exceptions."""

from __future__ import annotations

from modules.core.exceptions import NotFound, ValidationError


class CustomerNotFound(NotFound):
    """The requested customer does not exist or has been soft-deleted."""

    default_code = "customer_not_found"
    default_message = "Customer not found."


class InactiveCustomer(ValidationError):
    """The customer is inactive and cannot place orders."""

    default_code = "customer_inactive"
    default_message = "Customer is inactive."
