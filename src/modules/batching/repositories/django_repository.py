"""Django ORM implementation of the Batch repository."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional, Set
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, F, Max, Q, QuerySet
from django.utils import timezone

from modules.batching.constants import DRIVER_BUSY_STATES, BatchStatus
from modules.batching.events import BatchCreated
from modules.batching.models import Batch
from modules.batching.repositories.interfaces import IBatchRepository
from modules.core.outbox import persist_domain_events

logger = structlog.get_logger(__name__)


class BatchDjangoRepository(IBatchRepository):
    """Concrete Batch repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Batch]:
        try:
            return Batch.objects.select_related("assigned_driver").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Batch]:
        try:
            return Batch.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Batch]:
        queryset = Batch.objects.select_related("assigned_driver")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def collecting_for_region(self, region_key: str, lock: bool = True) -> List[Batch]:
        queryset = Batch.objects.filter(
            region_key=region_key, status=BatchStatus.COLLECTING
        ).order_by("created_at", "id")
        if lock:
            queryset = queryset.select_for_update()
        return list(queryset)

    def regions_needing_consolidation(self) -> List[str]:
        rows = (
            Batch.objects.filter(status=BatchStatus.COLLECTING)
            .values("region_key")
            .annotate(
                open_count=Count("id"),
                empty_count=Count("id", filter=Q(accumulated_weight__lte=0)),
            )
            .filter(Q(open_count__gt=1) | Q(empty_count__gt=0))
            .order_by("region_key")
        )
        return [row["region_key"] for row in rows]

    def open_batches(self) -> List[Batch]:
        return list(
            Batch.objects.filter(
                status=BatchStatus.COLLECTING,
                accumulated_weight__lt=F("capacity"),
            ).order_by("region_key", "created_at", "id")
        )

    def busy_driver_ids(self) -> Set[int]:
        return set(
            Batch.objects.filter(
                status__in=DRIVER_BUSY_STATES, assigned_driver__isnull=False
            ).values_list("assigned_driver_id", flat=True)
        )

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Batch) -> Batch:
        """Persist the batch and write its domain events to the outbox."""
        entity.save()
        rows = persist_domain_events(entity, topic="batches")
        logger.debug("batch.saved", batch_id=str(entity.id), event_count=len(rows))
        return entity

    def create(self, region_key: str, capacity: Decimal) -> Batch:
        last = Batch.objects.filter(region_key=region_key).aggregate(
            last=Max("sequence")
        )["last"]
        batch = Batch(
            region_key=region_key,
            sequence=(last or 0) + 1,
            capacity=capacity,
            accumulated_weight=Decimal("0.00"),
        )
        batch.save(force_insert=True)
        batch.add_domain_event(
            BatchCreated(
                aggregate_id=batch.id,
                region_key=region_key,
                sequence=batch.sequence,
            )
        )
        persist_domain_events(batch, topic="batches")
        logger.info(
            "batch.created",
            batch_id=str(batch.id),
            region_key=region_key,
            sequence=batch.sequence,
        )
        return batch

    def add_weight(self, batch_id: UUID, weight: Decimal) -> Decimal:
        Batch.objects.filter(id=batch_id).update(
            accumulated_weight=F("accumulated_weight") + weight,
            updated_at=timezone.now(),
        )
        return Batch.objects.values_list("accumulated_weight", flat=True).get(
            id=batch_id
        )

    def set_weight(self, batch_id: UUID, weight: Decimal) -> None:
        Batch.objects.filter(id=batch_id).update(
            accumulated_weight=weight, updated_at=timezone.now()
        )

    def delete(self, batch: Batch) -> None:
        batch_id = str(batch.id)
        batch.delete()
        logger.info("batch.deleted", batch_id=batch_id, region_key=batch.region_key)

    # ------------------------------------------------------------------
    # API read path
    # ------------------------------------------------------------------

    def queryset(self) -> QuerySet[Batch]:
        """Base queryset the list endpoint filters, orders and paginates."""
        return Batch.objects.select_related("assigned_driver").annotate(
            order_count=Count("orders")
        )
