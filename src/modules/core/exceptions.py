"""Domain error taxonomy and the DRF exception handler.

Every service-layer error derives from ``DomainError`` and carries an HTTP
``status_code`` plus a machine-readable ``code``.  Module-specific
exceptions (``OrderNotFound``, ``CODLimitExceeded``, ...) subclass one of
the five categories below.

``api_exception_handler`` is registered as DRF's ``EXCEPTION_HANDLER`` and
renders both domain errors and DRF's own errors (auth, parse, validation)
in one standard shape::

    {"type": "validation_error",
     "errors": [{"code": "cod_limit_exceeded", "detail": "...", "attr": null}]}
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = structlog.get_logger(__name__)


class DomainError(Exception):
    """Base class for errors raised by the service layer."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    error_type: str = "client_error"
    default_code: str = "error"
    default_message: str = "Request could not be processed."

    def __init__(self, message: Optional[str] = None, code: Optional[str] = None) -> None:
        self.message = message or self.default_message
        self.code = code or self.default_code
        super().__init__(self.message)


class NotFound(DomainError):
    """A referenced order, variant or customer does not exist."""

    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"
    default_message = "Resource not found."


class ValidationError(DomainError):
    """Malformed input, invalid transition or business-rule violation."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_type = "validation_error"
    default_code = "invalid"
    default_message = "Invalid request."


class ConflictError(DomainError):
    """The request conflicts with the current state (e.g. already paid)."""

    status_code = status.HTTP_409_CONFLICT
    default_code = "conflict"
    default_message = "Request conflicts with the current state."


class AuthorizationError(DomainError):
    """The actor is not allowed to perform the operation."""

    status_code = status.HTTP_403_FORBIDDEN
    default_code = "permission_denied"
    default_message = "You do not have permission to perform this action."


class ExternalServiceError(DomainError):
    """A payment gateway or notification provider call failed."""

    status_code = status.HTTP_502_BAD_GATEWAY
    error_type = "server_error"
    default_code = "external_service_error"
    default_message = "An external service failed."


# ---------------------------------------------------------------------------
# DRF integration
# ---------------------------------------------------------------------------


def api_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    """Render domain and DRF errors in the standard ``type``/``errors`` shape."""
    if isinstance(exc, DomainError):
        view = context.get("view")
        logger.warning(
            "api.domain_error",
            error_code=exc.code,
            status_code=exc.status_code,
            detail=exc.message,
            view=type(view).__name__ if view is not None else None,
        )
        return Response(
            {
                "type": exc.error_type,
                "errors": [{"code": exc.code, "detail": exc.message, "attr": None}],
            },
            status=exc.status_code,
        )

    response = drf_exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, drf_exceptions.ValidationError):
        error_type = "validation_error"
    elif response.status_code >= 500:
        error_type = "server_error"
    else:
        error_type = "client_error"

    response.data = {
        "type": error_type,
        "errors": _flatten_errors(exc.detail if hasattr(exc, "detail") else response.data),
    }
    return response


def _flatten_errors(detail: Any, attr: Optional[str] = None) -> List[Dict[str, Any]]:
    if isinstance(detail, dict):
        errors: List[Dict[str, Any]] = []
        for key, value in detail.items():
            nested = key if attr is None else f"{attr}.{key}"
            errors.extend(_flatten_errors(value, None if key == "detail" else nested))
        return errors
    if isinstance(detail, list):
        errors = []
        for index, value in enumerate(detail):
            nested = attr
            if isinstance(value, dict) and attr is not None:
                nested = f"{attr}.{index}"
            errors.extend(_flatten_errors(value, nested))
        return errors
    return [
        {
            "code": getattr(detail, "code", "error"),
            "detail": str(detail),
            "attr": attr,
        }
    ]
