"""Batch repository interface."""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Set
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.batching.models import Batch


class IBatchRepository(IRepository["Batch"]):
    """Repository contract for the Batch aggregate.

    The mutating methods are only called from inside the region guard
    and an open transaction.
    """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Batch]:
        """Retrieve a batch holding a row-level lock."""

    @abstractmethod
    def collecting_for_region(self, region_key: str, lock: bool = True) -> List[Batch]:
        """Collecting batches of the region, oldest first."""

    @abstractmethod
    def create(self, region_key: str, capacity: Decimal) -> Batch:
        """Open a new collecting batch with the region's next sequence.

        Raises ``IntegrityError`` when another writer took that sequence.
        """

    @abstractmethod
    def add_weight(self, batch_id: UUID, weight: Decimal) -> Decimal:
        """Atomically add *weight* to the cached total; returns the new total."""

    @abstractmethod
    def set_weight(self, batch_id: UUID, weight: Decimal) -> None:
        """Overwrite the cached total (reconciliation, cancellation)."""

    @abstractmethod
    def delete(self, batch: Batch) -> None:
        """Delete a batch that holds no orders."""

    @abstractmethod
    def regions_needing_consolidation(self) -> List[str]:
        """Regions with several collecting batches or an empty one."""

    @abstractmethod
    def open_batches(self) -> List[Batch]:
        """Collecting batches that still have remaining capacity."""

    @abstractmethod
    def busy_driver_ids(self) -> Set[int]:
        """Drivers currently holding an assigned or in-transit batch."""
