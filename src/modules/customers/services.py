"""Customer service layer (Use Cases).

Resolves the customer record behind an authenticated API user.  Users
and customers are linked by email address.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import structlog

from modules.customers.exceptions import CustomerNotFound

if TYPE_CHECKING:
    from modules.customers.models import Customer
    from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerService:
    """Application service for Customer use-cases.

    Receives an ``ICustomerRepository`` via constructor injection (DIP).
    """

    def __init__(self, repository: ICustomerRepository) -> None:
        self._repo = repository

    def get_for_user(self, user: Any) -> Customer:
        """Return the live customer owning *user*'s email.

        Raises:
            CustomerNotFound: no customer profile for this user.
        """
        email = getattr(user, "email", "") or ""
        customer = self._repo.get_by_email(email) if email else None
        if customer is None:
            logger.warning("customer.profile_missing", user_id=str(getattr(user, "pk", "")))
            raise CustomerNotFound("No customer profile for this user.")
        return customer
