"""Batch Locator and Batch Allocator.

Both run inside the region guard and the caller's transaction.  The
locator picks the open batch with the most remaining capacity (oldest
first on ties); the allocator places the order there or opens a new
batch when nothing fits.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, Iterable, List, Optional

import structlog
from django.db import IntegrityError, transaction

from modules.batching.dtos import AllocationResult
from modules.batching.exceptions import (
    AllocationRace,
    InvalidWeight,
    OrderExceedsCapacity,
)
from modules.batching.repositories.interfaces import IBatchRepository
from modules.orders.repositories.interfaces import IOrderRepository

if TYPE_CHECKING:
    from modules.batching.models import Batch
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


def rank_candidates(batches: Iterable[Batch], weight: Decimal) -> List[Batch]:
    """Collecting batches that can take *weight*, best candidate first."""
    fitting = [b for b in batches if b.is_collecting and b.can_fit(weight)]
    return sorted(
        fitting,
        key=lambda b: (-b.remaining_capacity, b.created_at, b.id),
    )


class BatchLocator:
    def __init__(self, batch_repository: IBatchRepository) -> None:
        self._batches = batch_repository

    def find_candidate(self, region_key: str, weight: Decimal) -> Optional[Batch]:
        ranked = rank_candidates(
            self._batches.collecting_for_region(region_key, lock=True), weight
        )
        if not ranked:
            logger.debug("batching.no_candidate", region_key=region_key, weight=str(weight))
            return None
        return ranked[0]


class BatchAllocator:
    """Adds an order's weight to a batch and points the order at it."""

    def __init__(
        self,
        batch_repository: IBatchRepository,
        order_repository: IOrderRepository,
        locator: BatchLocator,
        capacity: Decimal,
    ) -> None:
        self._batches = batch_repository
        self._orders = order_repository
        self._locator = locator
        self._capacity = capacity

    def allocate(
        self,
        order: Order,
        region_key: str,
        weight: Decimal,
        candidate: Optional[Batch],
    ) -> AllocationResult:
        log = logger.bind(order_id=str(order.id), region_key=region_key)

        if weight <= 0:
            raise InvalidWeight(f"Order {order.id} reached the allocator with weight {weight}.")
        if weight > self._capacity:
            raise OrderExceedsCapacity(order.id, weight, self._capacity)

        if candidate is not None and not (candidate.is_collecting and candidate.can_fit(weight)):
            log.warning("batching.stale_candidate", batch_id=str(candidate.id))
            candidate = self._locator.find_candidate(region_key, weight)

        created = False
        batch = candidate
        if batch is None:
            batch, created = self._open_batch(order, region_key, weight)

        batch.accumulated_weight = self._batches.add_weight(batch.id, weight)

        order.batch = batch
        order.region_key = region_key
        order.total_weight = weight
        self._orders.save(order)

        log.info(
            "batching.allocated",
            batch_id=str(batch.id),
            weight=str(weight),
            batch_weight=str(batch.accumulated_weight),
            created_batch=created,
        )
        return AllocationResult(
            order_id=order.id,
            batch_id=batch.id,
            region_key=region_key,
            weight=weight,
            batch_weight=batch.accumulated_weight,
            created_batch=created,
        )

    def _open_batch(
        self, order: Order, region_key: str, weight: Decimal
    ) -> tuple[Batch, bool]:
        try:
            with transaction.atomic():
                return self._batches.create(region_key, self._capacity), True
        except IntegrityError as exc:
            logger.warning(
                "batching.allocation_race",
                order_id=str(order.id),
                region_key=region_key,
                error=str(exc),
            )

        batch = self._locator.find_candidate(region_key, weight)
        if batch is None:
            raise AllocationRace(
                f"Concurrent batch creation for region {region_key!r} left no "
                f"batch able to take order {order.id}."
            )
        return batch, False
