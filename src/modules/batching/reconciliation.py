"""Repair drift between a batch's cached weight and its member orders.

The member orders are the source of truth; ``accumulated_weight`` is a
cache kept in step by the allocator, consolidator and rejection.  An
out-of-band writer can still break it, hence this repair path.
"""

from __future__ import annotations

from typing import Any, List

import structlog
from django.db import transaction

from modules.batching.constants import ACTIVE_STATES
from modules.batching.dtos import ReconciliationReport
from modules.batching.events import BatchWeightReconciled
from modules.batching.exceptions import BatchNotFound
from modules.batching.locks import RegionGuard
from modules.batching.models import Batch
from modules.batching.repositories.interfaces import IBatchRepository
from modules.batching.weight import quantize_weight
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class BatchReconciler:
    def __init__(
        self,
        batch_repository: IBatchRepository,
        order_repository: IOrderRepository,
        guard: RegionGuard,
    ) -> None:
        self._batches = batch_repository
        self._orders = order_repository
        self._guard = guard

    def reconcile(self, batch_id: Any) -> ReconciliationReport:
        batch = self._batches.get_by_id(batch_id)
        if batch is None:
            raise BatchNotFound(f"Batch {batch_id} not found.")
        with self._guard.hold(batch.region_key), transaction.atomic():
            locked = self._batches.get_for_update(batch.id)
            if locked is None:
                raise BatchNotFound(f"Batch {batch_id} not found.")
            return self._reconcile_locked(locked)

    def reconcile_region(self, region_key: str) -> List[ReconciliationReport]:
        """Reconcile every non-terminal batch of the region in one guarded pass."""
        with self._guard.hold(region_key), transaction.atomic():
            batches = self._batches.list(
                {"region_key": region_key, "status__in": ACTIVE_STATES}
            )
            return [
                self._reconcile_locked(self._batches.get_for_update(batch.id))
                for batch in batches
            ]

    def _reconcile_locked(self, batch: Batch) -> ReconciliationReport:
        cached = batch.accumulated_weight
        actual = quantize_weight(self._orders.member_weight(batch.id))
        log = logger.bind(batch_id=str(batch.id), region_key=batch.region_key)

        if actual == cached:
            return ReconciliationReport(
                batch_id=batch.id, cached_weight=cached, actual_weight=actual, corrected=False
            )

        if actual > batch.capacity:
            log.error(
                "batching.reconcile_over_capacity",
                cached_weight=str(cached),
                actual_weight=str(actual),
                capacity=str(batch.capacity),
            )
            return ReconciliationReport(
                batch_id=batch.id, cached_weight=cached, actual_weight=actual, corrected=False
            )

        batch.accumulated_weight = actual
        batch.add_domain_event(
            BatchWeightReconciled(
                aggregate_id=batch.id,
                cached_weight=str(cached),
                actual_weight=str(actual),
            )
        )
        self._batches.save(batch)
        log.warning(
            "batching.weight_reconciled",
            cached_weight=str(cached),
            actual_weight=str(actual),
        )
        return ReconciliationReport(
            batch_id=batch.id, cached_weight=cached, actual_weight=actual, corrected=True
        )
