"""Asynchronous tasks of the core module."""

import structlog
from celery import shared_task

from modules.core.outbox import relay_pending_events

logger = structlog.get_logger(__name__)


@shared_task(name="core.relay_outbox")
def relay_outbox(limit: int = 100):
    """Deliver pending outbox events to the in-process handlers."""
    result = relay_pending_events(limit=limit)
    logger.debug("relay_outbox.executed", **result)
    return result
