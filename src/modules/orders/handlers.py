"""Event handlers for Orders domain events.

These are the hooks the notification collaborator listens on
("order verified", "order rejected").  They run from the outbox relay.
"""

from __future__ import annotations

import structlog

from modules.orders.events import (
    OrderApproved,
    OrderCreated,
    OrderRejected,
    OrderReopened,
)
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def handle(self, event: OrderCreated) -> None:
        logger.info("order.notify.created", order_id=str(event.aggregate_id))


class OrderApprovedHandler(IEventHandler[OrderApproved]):
    def handle(self, event: OrderApproved) -> None:
        logger.info(
            "order.notify.verified",
            order_id=str(event.aggregate_id),
            batch_id=event.batch_id,
            region_key=event.region_key,
        )


class OrderRejectedHandler(IEventHandler[OrderRejected]):
    def handle(self, event: OrderRejected) -> None:
        logger.info(
            "order.notify.rejected",
            order_id=str(event.aggregate_id),
            released_batch_id=event.released_batch_id or None,
        )


class OrderReopenedHandler(IEventHandler[OrderReopened]):
    def handle(self, event: OrderReopened) -> None:
        logger.info("order.notify.reopened", order_id=str(event.aggregate_id))


order_created_handler = OrderCreatedHandler()
order_approved_handler = OrderApprovedHandler()
order_rejected_handler = OrderRejectedHandler()
order_reopened_handler = OrderReopenedHandler()
