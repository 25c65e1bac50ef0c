"""Batch lifecycle constants.

``collecting → ready → assigned → in_transit → delivered``; ``cancelled``
is reachable from every state before ``in_transit``.  No transition ever
moves a batch backwards.
"""

from decimal import Decimal

from django.db import models


class BatchStatus(models.TextChoices):
    COLLECTING = "collecting", "Collecting"
    READY = "ready", "Ready for dispatch"
    ASSIGNED = "assigned", "Assigned"
    IN_TRANSIT = "in_transit", "In transit"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    BatchStatus.COLLECTING: {BatchStatus.READY, BatchStatus.CANCELLED},
    BatchStatus.READY: {BatchStatus.ASSIGNED, BatchStatus.CANCELLED},
    BatchStatus.ASSIGNED: {BatchStatus.IN_TRANSIT, BatchStatus.CANCELLED},
    BatchStatus.IN_TRANSIT: {BatchStatus.DELIVERED},
    BatchStatus.DELIVERED: set(),
    BatchStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {BatchStatus.DELIVERED, BatchStatus.CANCELLED}

# Driver is busy while holding a batch in one of these states.
DRIVER_BUSY_STATES: set[str] = {BatchStatus.ASSIGNED, BatchStatus.IN_TRANSIT}

WEIGHT_QUANTUM = Decimal("0.01")

ACTIVE_STATES: set[str] = set(VALID_TRANSITIONS) - TERMINAL_STATES
