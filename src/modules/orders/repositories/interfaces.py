"""Order repository interface.

Besides the aggregate itself, this contract owns the bulk updates the
batching engine performs on the members of a batch (re-pointing orders
during consolidation, mirroring delivery progress, fulfilling items).
Order rows belong to this module, so those statements live here.
"""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` must include ``customer_id``, ``items`` (list of dicts
        with ``product_id``, ``quantity``, ``unit_price``) and
        ``delivery_address``; ``notes`` is optional.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def members_of(self, batch_id: UUID) -> List[Order]:
        """Orders currently referencing the batch."""

    @abstractmethod
    def member_count(self, batch_id: UUID) -> int:
        """Number of orders currently referencing the batch."""

    @abstractmethod
    def member_weight(self, batch_id: UUID) -> Decimal:
        """Sum of ``total_weight`` over approved orders referencing the batch."""

    @abstractmethod
    def move_members(self, source_batch_id: UUID, target_batch_id: UUID) -> int:
        """Re-point every order of *source* to *target*; returns rows moved."""

    @abstractmethod
    def update_members(self, batch_id: UUID, **fields: Any) -> int:
        """Bulk-update the orders of a batch; returns rows updated."""

    @abstractmethod
    def fulfil_member_items(self, batch_id: UUID) -> int:
        """Mark every item of every order of the batch fulfilled."""

    @abstractmethod
    def approved_unbatched(self, region_key: Optional[str] = None) -> List[Order]:
        """Approved orders that have no batch (stuck / need re-batching)."""
