"""Payment exceptions."""

from __future__ import annotations

from modules.core.exceptions import ExternalServiceError, ValidationError


class PaymentGatewayError(ExternalServiceError):
    """The Khalti API rejected the call or could not be reached."""

    default_code = "payment_gateway_error"
    default_message = "Payment gateway request failed."


class PaymentNotCompleted(ValidationError):
    default_code = "payment_not_completed"
    default_message = "Payment verification failed."


class PaymentNotRefundable(ValidationError):
    """Order is unpaid or has no gateway transaction to refund."""

    default_code = "payment_not_refundable"


class InvalidRefundAmount(ValidationError):
    default_code = "invalid_refund_amount"
