"""Customer repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.customers.models import CustomerAddress


class ICustomerRepository(IRepository["Customer"]):
    """Repository contract for the Customer aggregate."""

    @abstractmethod
    def saved_addresses(self, customer_id: str) -> List[CustomerAddress]:
        """Saved addresses of the customer, most recently created first."""
