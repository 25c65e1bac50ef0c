"""Event handlers for batch lifecycle events.

The notification collaborator hooks in here ("out for delivery",
"delivered"); this module only records that the trigger fired.
"""

from __future__ import annotations

import structlog

from modules.batching.events import (
    BatchCancelled,
    BatchDelivered,
    BatchDriverAssigned,
    BatchInTransit,
    BatchReady,
    BatchWeightReconciled,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class BatchReadyHandler(IEventHandler[BatchReady]):
    def handle(self, event: BatchReady) -> None:
        logger.info(
            "batch.notify.ready_for_dispatch",
            batch_id=str(event.aggregate_id),
            region_key=event.region_key,
            weight=event.accumulated_weight,
        )


class BatchDriverAssignedHandler(IEventHandler[BatchDriverAssigned]):
    def handle(self, event: BatchDriverAssigned) -> None:
        logger.info(
            "batch.notify.driver_assigned",
            batch_id=str(event.aggregate_id),
            driver_id=event.driver_id,
        )


class BatchInTransitHandler(IEventHandler[BatchInTransit]):
    def handle(self, event: BatchInTransit) -> None:
        logger.info("batch.notify.out_for_delivery", batch_id=str(event.aggregate_id))


class BatchDeliveredHandler(IEventHandler[BatchDelivered]):
    def handle(self, event: BatchDelivered) -> None:
        logger.info(
            "batch.notify.delivered",
            batch_id=str(event.aggregate_id),
            order_count=event.order_count,
        )


class BatchCancelledHandler(IEventHandler[BatchCancelled]):
    def handle(self, event: BatchCancelled) -> None:
        logger.warning(
            "batch.notify.cancelled",
            batch_id=str(event.aggregate_id),
            released_orders=len(event.released_order_ids),
            reason=event.reason,
        )


class BatchWeightReconciledHandler(IEventHandler[BatchWeightReconciled]):
    def handle(self, event: BatchWeightReconciled) -> None:
        logger.warning(
            "batch.notify.weight_drift_repaired",
            batch_id=str(event.aggregate_id),
            cached_weight=event.cached_weight,
            actual_weight=event.actual_weight,
        )


batch_ready_handler = BatchReadyHandler()
batch_driver_assigned_handler = BatchDriverAssignedHandler()
batch_in_transit_handler = BatchInTransitHandler()
batch_delivered_handler = BatchDeliveredHandler()
batch_cancelled_handler = BatchCancelledHandler()
batch_weight_reconciled_handler = BatchWeightReconciledHandler()
