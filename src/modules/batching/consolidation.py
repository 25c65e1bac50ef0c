"""Consolidator.

Walks the collecting batches of a region oldest first and merges each
into the oldest earlier batch it still fits; a batch that fits none
survives and can receive later ones.  Batches left empty (for instance
after their last order was rejected) are deleted.  Runs under the same
region guard as allocation, so a merge never interleaves with an in-flight approval.
"""

from __future__ import annotations

from typing import Dict, List
from uuid import UUID

import structlog
from django.db import transaction

from modules.batching.dtos import (
    BatchMerge,
    ConsolidationReport,
    ConsolidationSweep,
    SkippedMerge,
)
from modules.batching.events import BatchesConsolidated
from modules.batching.exceptions import BatchingError, CapacityExceededOnMerge, LockTimeout
from modules.batching.lifecycle import BatchLifecycle
from modules.batching.locks import RegionGuard
from modules.batching.repositories.interfaces import IBatchRepository
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class Consolidator:
    def __init__(
        self,
        batch_repository: IBatchRepository,
        order_repository: IOrderRepository,
        guard: RegionGuard,
        lifecycle: BatchLifecycle,
    ) -> None:
        self._batches = batch_repository
        self._orders = order_repository
        self._guard = guard
        self._lifecycle = lifecycle

    def consolidate(self, region_key: str) -> ConsolidationReport:
        log = logger.bind(region_key=region_key)
        with self._guard.hold(region_key), transaction.atomic():
            batches = self._batches.collecting_for_region(region_key, lock=True)

            deleted: List[UUID] = []
            survivors = []
            for batch in batches:
                if batch.accumulated_weight <= 0 and self._orders.member_count(batch.id) == 0:
                    self._batches.delete(batch)
                    deleted.append(batch.id)
                else:
                    survivors.append(batch)

            if not survivors:
                if deleted:
                    log.info("batching.consolidated", deleted_empty=len(deleted))
                return ConsolidationReport(
                    region_key=region_key, deleted_empty_batch_ids=deleted
                )

            kept = [survivors[0]]
            receivers: Dict[UUID, List[UUID]] = {}
            merges: List[BatchMerge] = []
            skipped: List[SkippedMerge] = []
            moved = 0
            for other in survivors[1:]:
                target = next(
                    (b for b in kept if b.can_fit(other.accumulated_weight)), None
                )
                if target is None:
                    reason = CapacityExceededOnMerge(
                        f"{other.accumulated_weight} exceeds capacity left in every "
                        f"earlier batch (oldest at {kept[0].accumulated_weight} "
                        f"of {kept[0].capacity})"
                    )
                    log.debug(
                        "batching.merge_skipped",
                        batch_id=str(other.id),
                        reason=str(reason),
                    )
                    skipped.append(
                        SkippedMerge(
                            batch_id=other.id,
                            weight=other.accumulated_weight,
                            reason=str(reason),
                        )
                    )
                    kept.append(other)
                    continue

                moved += self._orders.move_members(other.id, target.id)
                target.accumulated_weight = self._batches.add_weight(
                    target.id, other.accumulated_weight
                )
                remaining = self._orders.member_count(other.id)
                if remaining:
                    raise BatchingError(
                        f"Batch {other.id} still holds {remaining} orders after the "
                        "merge; consolidation aborted."
                    )
                self._batches.delete(other)
                receivers.setdefault(target.id, []).append(other.id)
                merges.append(
                    BatchMerge(
                        batch_id=other.id,
                        target_batch_id=target.id,
                        weight=other.accumulated_weight,
                    )
                )

            ready: List[UUID] = []
            for batch in kept:
                if batch.id in receivers:
                    batch.add_domain_event(
                        BatchesConsolidated(
                            aggregate_id=batch.id,
                            region_key=region_key,
                            merged_batch_ids=[str(i) for i in receivers[batch.id]],
                        )
                    )
                    self._batches.save(batch)
                if (batch is kept[0] or batch.id in receivers) and (
                    self._lifecycle.evaluate_readiness(batch.id)
                ):
                    ready.append(batch.id)

        oldest = kept[0]
        merged = [m.batch_id for m in merges]
        report = ConsolidationReport(
            region_key=region_key,
            target_batch_id=oldest.id,
            target_weight=oldest.accumulated_weight,
            merged_batch_ids=merged,
            merges=merges,
            ready_batch_ids=ready,
            deleted_empty_batch_ids=deleted,
            skipped=skipped,
            orders_moved=moved,
            target_ready=oldest.id in ready,
        )
        if report.changed:
            log.info(
                "batching.consolidated",
                target_batch_id=str(oldest.id),
                merged=len(merged),
                deleted_empty=len(deleted),
                skipped=len(skipped),
                orders_moved=moved,
                became_ready=len(ready),
            )
        return report

    def consolidate_all(self) -> ConsolidationSweep:
        """One guarded pass per region that has something to consolidate.

        A region whose guard is busy is left for the next run.
        """
        reports: List[ConsolidationReport] = []
        locked_out: List[str] = []
        for region_key in self._batches.regions_needing_consolidation():
            try:
                reports.append(self.consolidate(region_key))
            except LockTimeout:
                logger.warning("batching.consolidation_deferred", region_key=region_key)
                locked_out.append(region_key)
        return ConsolidationSweep(reports=reports, locked_out_regions=locked_out)
