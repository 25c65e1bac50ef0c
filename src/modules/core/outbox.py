"""Transactional outbox helpers.

``persist_domain_events`` is called by repositories inside the unit of
work; ``relay_pending_events`` runs from a Celery task and hands the rows
to the in-process event bus (notification/dispatch handlers).
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List
from uuid import UUID

import structlog
from django.db import transaction

from modules.core.models import EventStatus, OutboxEvent
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)


def persist_domain_events(entity: Any, topic: str) -> List[OutboxEvent]:
    """Write the entity's pending domain events to the outbox and clear them."""
    events = entity.domain_events if hasattr(entity, "domain_events") else []
    rows = [
        OutboxEvent.objects.create(
            event_type=event.event_name,
            aggregate_id=str(event.aggregate_id),
            payload=serialize_event_payload(event),
            topic=topic,
        )
        for event in events
    ]
    if hasattr(entity, "clear_domain_events"):
        entity.clear_domain_events()
    return rows


def relay_pending_events(limit: int = 100) -> Dict[str, int]:
    """Publish up to ``limit`` pending outbox rows on the event bus.

    Rows are locked with ``skip_locked`` so concurrent relays never deliver
    the same row twice.  A handler failure marks only that row as failed.
    """
    published = failed = 0
    with transaction.atomic():
        rows = list(
            OutboxEvent.objects.select_for_update(skip_locked=True)
            .filter(status=EventStatus.PENDING)
            .order_by("created_at")[:limit]
        )
        for row in rows:
            event_class = DomainEvent.registry.get(row.event_type)
            if event_class is None:
                row.mark_as_failed(f"Unknown event type {row.event_type}")
                failed += 1
                continue
            try:
                event_bus.publish(event_class.from_payload(row.payload))
            except Exception as exc:  # noqa: BLE001 - recorded on the row
                logger.error(
                    "outbox.relay_failed",
                    event_type=row.event_type,
                    aggregate_id=row.aggregate_id,
                    error=str(exc),
                )
                row.mark_as_failed(str(exc))
                failed += 1
                continue
            row.mark_as_published()
            published += 1

    if published or failed:
        logger.info("outbox.relayed", published=published, failed=failed)
    return {"published": published, "failed": failed}


def serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple)):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
