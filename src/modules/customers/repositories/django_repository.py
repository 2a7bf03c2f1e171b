"""Django ORM implementation of the Customer repository.

Error handling follows the Null Object pattern: methods return ``None``
instead of raising, the Service Layer decides how to translate a missing
entity into a domain error.
"""

from __future__ import annotations

from typing import Optional

from django.core.exceptions import ValidationError

from modules.customers.models import Customer
from modules.customers.repositories.interfaces import ICustomerRepository


class CustomerDjangoRepository(ICustomerRepository):
    """Concrete Customer repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Customer]:
        """Retrieve a live customer by primary key.

        Returns ``None`` for missing, soft-deleted or malformed IDs.
        """
        try:
            return Customer.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_email(self, email: str) -> Optional[Customer]:
        return Customer.objects.alive().filter(email=email.strip().lower()).first()
