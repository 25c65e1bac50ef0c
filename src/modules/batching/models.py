"""Delivery batch model.

Invariants enforced here or by the database:
- ``0 <= accumulated_weight <= capacity`` (check constraints).
- ``(region_key, sequence)`` is unique.  The allocator numbers batches
  per region; two creators racing for the same region collide on this
  constraint, which is how an allocation race is detected.
- A driver holds at most one assigned or in-transit batch (partial
  unique constraint); ``BatchLifecycle.assign_driver`` also locks the
  driver row before checking.
- ``accumulated_weight`` caches the sum of the approved member orders'
  weights.  The order set is the source of truth; see
  ``BatchReconciler`` for the repair path.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.conf import settings
from django.db import models

from modules.batching.constants import (
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    BatchStatus,
)
from modules.core.models import BaseModel
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Batch(DomainEventMixin, BaseModel):
    """A weight-bounded group of approved orders for one region."""

    region_key = models.CharField(max_length=120, db_index=True)
    sequence = models.PositiveIntegerField()
    accumulated_weight = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    capacity = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(
        max_length=20,
        choices=BatchStatus.choices,
        default=BatchStatus.COLLECTING,
    )
    assigned_driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="delivery_batches",
    )
    ready_at = models.DateTimeField(null=True, blank=True)
    assigned_at = models.DateTimeField(null=True, blank=True)
    in_transit_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True, default="")

    class Meta:
        db_table = "delivery_batches"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["region_key", "status", "created_at"],
                name="batches_region_status_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["region_key", "sequence"],
                name="batches_region_sequence_unique",
            ),
            models.CheckConstraint(
                condition=models.Q(accumulated_weight__gte=0),
                name="batches_weight_non_negative",
            ),
            models.CheckConstraint(
                condition=models.Q(accumulated_weight__lte=models.F("capacity")),
                name="batches_weight_within_capacity",
            ),
            models.UniqueConstraint(
                fields=["assigned_driver"],
                condition=models.Q(status__in=[BatchStatus.ASSIGNED, BatchStatus.IN_TRANSIT]),
                name="batches_one_active_per_driver",
            ),
        ]

    # ------------------------------------------------------------------
    # Capacity helpers
    # ------------------------------------------------------------------

    @property
    def remaining_capacity(self) -> Decimal:
        return self.capacity - self.accumulated_weight

    def can_fit(self, weight: Decimal) -> bool:
        return self.accumulated_weight + weight <= self.capacity

    # ------------------------------------------------------------------
    # State machine helpers
    # ------------------------------------------------------------------

    @property
    def is_collecting(self) -> bool:
        return self.status == BatchStatus.COLLECTING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, set())

    @property
    def label(self) -> str:
        return f"{self.region_key} #{self.sequence}"

    def __str__(self) -> str:
        return (
            f"{self.label} ({self.status}, "
            f"{self.accumulated_weight}/{self.capacity})"
        )
