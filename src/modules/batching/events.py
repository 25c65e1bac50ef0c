"""Domain events for delivery batches.

Persisted to the outbox with the transition that produced them; the
dispatch and notification collaborators consume them from the relay.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class BatchCreated(DomainEvent):
    region_key: str
    sequence: int


@dataclass(frozen=True, kw_only=True)
class BatchReady(DomainEvent):
    region_key: str
    accumulated_weight: str
    manual: bool = False


@dataclass(frozen=True, kw_only=True)
class BatchDriverAssigned(DomainEvent):
    driver_id: str
    region_key: str


@dataclass(frozen=True, kw_only=True)
class BatchInTransit(DomainEvent):
    region_key: str


@dataclass(frozen=True, kw_only=True)
class BatchDelivered(DomainEvent):
    region_key: str
    order_count: int


@dataclass(frozen=True, kw_only=True)
class BatchCancelled(DomainEvent):
    region_key: str
    reason: str = ""
    released_order_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True, kw_only=True)
class BatchesConsolidated(DomainEvent):
    """``aggregate_id`` is the surviving (target) batch."""

    region_key: str
    merged_batch_ids: List[str] = field(default_factory=list)


@dataclass(frozen=True, kw_only=True)
class BatchWeightReconciled(DomainEvent):
    cached_weight: str
    actual_weight: str
