"""Batching DTOs (Pydantic v2, immutable).

Results handed back by the engine services to the API layer and the
Celery tasks; the views serialise them with ``model_dump(mode="json")``.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from modules.batching.models import Batch


class AllocationResult(BaseModel):
    """Outcome of placing one approved order into a batch."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    batch_id: UUID
    region_key: str
    weight: Decimal
    batch_weight: Decimal
    created_batch: bool = False
    became_ready: bool = False
    already_assigned: bool = False


class SkippedMerge(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: UUID
    weight: Decimal
    reason: str


class BatchMerge(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: UUID
    target_batch_id: UUID
    weight: Decimal


class ConsolidationReport(BaseModel):
    """Outcome of one consolidation pass.

    ``target_batch_id`` is the oldest surviving batch; ``merges`` records
    where each merged batch went, which need not be the oldest one.
    """

    model_config = ConfigDict(frozen=True)

    region_key: str
    target_batch_id: Optional[UUID] = None
    target_weight: Decimal = Decimal("0")
    merged_batch_ids: List[UUID] = []
    merges: List[BatchMerge] = []
    ready_batch_ids: List[UUID] = []
    deleted_empty_batch_ids: List[UUID] = []
    skipped: List[SkippedMerge] = []
    orders_moved: int = 0
    target_ready: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.merged_batch_ids or self.deleted_empty_batch_ids)


class ReconciliationReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: UUID
    cached_weight: Decimal
    actual_weight: Decimal
    corrected: bool


class OpenBatch(BaseModel):
    """A collecting batch that can still take weight."""

    model_config = ConfigDict(frozen=True)

    batch_id: UUID
    sequence: int
    accumulated_weight: Decimal
    remaining_capacity: Decimal
    created_at: datetime

    @classmethod
    def from_entity(cls, batch: Batch) -> OpenBatch:
        return cls(
            batch_id=batch.id,
            sequence=batch.sequence,
            accumulated_weight=batch.accumulated_weight,
            remaining_capacity=batch.remaining_capacity,
            created_at=batch.created_at,
        )


class RegionCapacity(BaseModel):
    model_config = ConfigDict(frozen=True)

    region_key: str
    open_batches: List[OpenBatch]
    total_remaining: Decimal


class UnbatchedOrder(BaseModel):
    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    region_key: str
    total_weight: Optional[Decimal]
    approved_at: Optional[datetime]


class MonitoringSnapshot(BaseModel):
    """Open capacity per region plus approved orders stuck without a batch."""

    model_config = ConfigDict(frozen=True)

    regions: List[RegionCapacity]
    unbatched_orders: List[UnbatchedOrder]


class DriverSelectionHint(BaseModel):
    """What the driver pool is told about the batch; no scoring, just context."""

    model_config = ConfigDict(frozen=True)

    batch_id: UUID
    region_key: str
    weight: Decimal


class DriverCandidate(BaseModel):
    model_config = ConfigDict(frozen=True)

    driver_id: int
    username: str
    full_name: str = ""


class ConsolidationSweep(BaseModel):
    """Result of ``consolidate_all``: one report per region that was processed."""

    model_config = ConfigDict(frozen=True)

    reports: List[ConsolidationReport] = []
    locked_out_regions: List[str] = []


class RebatchReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    assigned: List[UUID] = []
    failed: Dict[str, str] = {}
