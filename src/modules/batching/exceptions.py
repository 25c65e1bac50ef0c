"""Batching domain exceptions.

Raised by the batching services and translated into HTTP responses by
the views (or into Celery retries by the tasks).  ``CapacityExceededOnMerge``
is never raised by the consolidator; it is the reason recorded for a
skipped merge in a ``ConsolidationReport``.
"""

from __future__ import annotations

from decimal import Decimal


class BatchingError(Exception):
    """Base class for batching failures."""

    retryable = False


class RegionNotResolvable(BatchingError):
    """No usable region could be derived from the order's addresses."""

    def __init__(self, order_id: object) -> None:
        self.order_id = order_id
        super().__init__(
            f"Order {order_id} has no resolvable delivery region; "
            "assign a region manually before approving."
        )


class InvalidWeight(BatchingError):
    """A non-positive weight reached the allocator (internal defect)."""


class OrderExceedsCapacity(BatchingError):
    """The order alone is heavier than a batch can ever carry."""

    def __init__(self, order_id: object, weight: Decimal, capacity: Decimal) -> None:
        self.order_id = order_id
        self.weight = weight
        self.capacity = capacity
        super().__init__(
            f"Order {order_id} weighs {weight}, above the batch capacity {capacity}."
        )


class AllocationRace(BatchingError):
    """A concurrent batch creation slipped past the region guard."""


class CapacityExceededOnMerge(BatchingError):
    """Two batches do not fit together; the merge is skipped."""


class LockTimeout(BatchingError):
    """The region guard could not be acquired in time. Safe to retry."""

    retryable = True

    def __init__(self, region_key: str, timeout: float) -> None:
        self.region_key = region_key
        self.timeout = timeout
        super().__init__(
            f"Timed out after {timeout:g}s waiting for the batching lock of "
            f"region {region_key!r}."
        )


class BatchNotFound(BatchingError):
    """The requested batch does not exist."""


class InvalidBatchTransition(BatchingError):
    """The lifecycle transition is not allowed from the current status."""


class DriverNotAvailable(BatchingError):
    """The driver does not exist, is inactive, or is busy with another batch."""
