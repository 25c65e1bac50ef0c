"""Batch lifecycle state machine.

Every transition runs under the region guard in one transaction, checks
``VALID_TRANSITIONS``, stamps the matching timestamp, mirrors the new
state onto the member orders and writes a domain event to the outbox
with the change.
"""

from __future__ import annotations

from contextlib import contextmanager
from decimal import Decimal
from typing import Any, Iterator

import structlog
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.batching.constants import BatchStatus
from modules.batching.drivers import IDriverPool
from modules.batching.events import (
    BatchCancelled,
    BatchDelivered,
    BatchDriverAssigned,
    BatchInTransit,
    BatchReady,
)
from modules.batching.exceptions import (
    BatchNotFound,
    DriverNotAvailable,
    InvalidBatchTransition,
)
from modules.batching.locks import RegionGuard
from modules.batching.models import Batch
from modules.batching.repositories.interfaces import IBatchRepository
from modules.orders.constants import DeliveryStatus
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

STATUS_TIMESTAMPS = {
    BatchStatus.READY: "ready_at",
    BatchStatus.ASSIGNED: "assigned_at",
    BatchStatus.IN_TRANSIT: "in_transit_at",
    BatchStatus.DELIVERED: "delivered_at",
    BatchStatus.CANCELLED: "cancelled_at",
}


class BatchLifecycle:
    def __init__(
        self,
        batch_repository: IBatchRepository,
        order_repository: IOrderRepository,
        guard: RegionGuard,
        driver_pool: IDriverPool,
        ready_threshold: Decimal,
    ) -> None:
        self._batches = batch_repository
        self._orders = order_repository
        self._guard = guard
        self._drivers = driver_pool
        self._ready_threshold = ready_threshold

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _locked_batch(self, batch_id: Any) -> Iterator[Batch]:
        batch = self._batches.get_by_id(batch_id)
        if batch is None:
            raise BatchNotFound(f"Batch {batch_id} not found.")
        with self._guard.hold(batch.region_key), transaction.atomic():
            locked = self._batches.get_for_update(batch.id)
            if locked is None:
                raise BatchNotFound(f"Batch {batch_id} not found.")
            yield locked

    def _transition(self, batch: Batch, new_status: str) -> None:
        if not batch.can_transition_to(new_status):
            raise InvalidBatchTransition(
                f"Cannot move batch {batch.label} from '{batch.status}' to "
                f"'{new_status}'."
            )
        old_status = batch.status
        batch.status = new_status
        setattr(batch, STATUS_TIMESTAMPS[new_status], timezone.now())
        logger.info(
            "batching.transition",
            batch_id=str(batch.id),
            region_key=batch.region_key,
            old_status=old_status,
            new_status=new_status,
        )

    # ------------------------------------------------------------------
    # collecting -> ready
    # ------------------------------------------------------------------

    def evaluate_readiness(self, batch_id: Any) -> bool:
        """Move a collecting batch to ready once it reaches the threshold.

        Called inside an already guarded transaction (allocation,
        consolidation).  Returns whether the batch became ready.
        """
        batch = self._batches.get_for_update(batch_id)
        if batch is None or not batch.is_collecting:
            return False
        if batch.accumulated_weight < self._ready_threshold:
            return False
        self._transition(batch, BatchStatus.READY)
        batch.add_domain_event(
            BatchReady(
                aggregate_id=batch.id,
                region_key=batch.region_key,
                accumulated_weight=str(batch.accumulated_weight),
            )
        )
        self._batches.save(batch)
        return True

    def mark_ready(self, batch_id: Any) -> Batch:
        """Dispatch a batch before it reaches the weight threshold."""
        with self._locked_batch(batch_id) as batch:
            if batch.is_collecting and self._orders.member_count(batch.id) == 0:
                raise InvalidBatchTransition(
                    f"Batch {batch.label} holds no orders and cannot be dispatched."
                )
            self._transition(batch, BatchStatus.READY)
            batch.add_domain_event(
                BatchReady(
                    aggregate_id=batch.id,
                    region_key=batch.region_key,
                    accumulated_weight=str(batch.accumulated_weight),
                    manual=True,
                )
            )
            return self._batches.save(batch)

    # ------------------------------------------------------------------
    # ready -> assigned -> in_transit -> delivered
    # ------------------------------------------------------------------

    def assign_driver(self, batch_id: Any, driver_id: Any) -> Batch:
        try:
            return self._assign_driver(batch_id, driver_id)
        except IntegrityError as exc:
            # Another batch claimed the driver past the row lock.
            raise DriverNotAvailable(f"Driver {driver_id} is busy.") from exc

    def _assign_driver(self, batch_id: Any, driver_id: Any) -> Batch:
        with self._locked_batch(batch_id) as batch:
            self._transition(batch, BatchStatus.ASSIGNED)
            driver = self._drivers.get_available(driver_id, lock=True)
            if driver is None:
                raise DriverNotAvailable(
                    f"Driver {driver_id} does not exist, is inactive or is busy."
                )
            batch.assigned_driver = driver
            self._orders.update_members(batch.id, delivery_status=DeliveryStatus.ASSIGNED)
            batch.add_domain_event(
                BatchDriverAssigned(
                    aggregate_id=batch.id,
                    driver_id=str(driver.pk),
                    region_key=batch.region_key,
                )
            )
            return self._batches.save(batch)

    def start_transit(self, batch_id: Any) -> Batch:
        with self._locked_batch(batch_id) as batch:
            self._transition(batch, BatchStatus.IN_TRANSIT)
            self._orders.update_members(
                batch.id, delivery_status=DeliveryStatus.IN_TRANSIT
            )
            batch.add_domain_event(
                BatchInTransit(aggregate_id=batch.id, region_key=batch.region_key)
            )
            return self._batches.save(batch)

    def mark_delivered(self, batch_id: Any) -> Batch:
        with self._locked_batch(batch_id) as batch:
            self._transition(batch, BatchStatus.DELIVERED)
            order_count = self._orders.update_members(
                batch.id,
                delivery_status=DeliveryStatus.DELIVERED,
                delivered_at=batch.delivered_at,
            )
            fulfilled = self._orders.fulfil_member_items(batch.id)
            logger.info(
                "batching.items_fulfilled",
                batch_id=str(batch.id),
                orders=order_count,
                items=fulfilled,
            )
            batch.add_domain_event(
                BatchDelivered(
                    aggregate_id=batch.id,
                    region_key=batch.region_key,
                    order_count=order_count,
                )
            )
            return self._batches.save(batch)

    # ------------------------------------------------------------------
    # * -> cancelled
    # ------------------------------------------------------------------

    def cancel(self, batch_id: Any, reason: str = "") -> Batch:
        """Cancel the batch and hand its orders back for re-batching.

        Members keep their approval and frozen weight but lose the batch
        reference, so they show up as approved-but-unbatched.
        """
        with self._locked_batch(batch_id) as batch:
            self._transition(batch, BatchStatus.CANCELLED)
            released = [str(order.id) for order in self._orders.members_of(batch.id)]
            self._orders.update_members(
                batch.id, batch=None, delivery_status=DeliveryStatus.PENDING
            )
            batch.accumulated_weight = Decimal("0.00")
            batch.cancellation_reason = reason
            batch.add_domain_event(
                BatchCancelled(
                    aggregate_id=batch.id,
                    region_key=batch.region_key,
                    reason=reason,
                    released_order_ids=released,
                )
            )
            logger.warning(
                "batching.batch_cancelled",
                batch_id=str(batch.id),
                region_key=batch.region_key,
                released_orders=len(released),
            )
            return self._batches.save(batch)
