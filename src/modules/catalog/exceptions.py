"""Catalog exceptions raised while reading or reserving variant stock."""

from __future__ import annotations

from modules.core.exceptions import NotFound, ValidationError


class VariantNotFound(NotFound):
    """A variant referenced by a cart line or exchange does not exist."""

    default_code = "variant_not_found"
    default_message = "Product or variant not found."


class InactiveVariant(ValidationError):
    """The variant exists but is not available for sale."""

    default_code = "variant_inactive"


class InsufficientStock(ValidationError):
    """Not enough stock to fulfil the requested quantity."""

    default_code = "insufficient_stock"
