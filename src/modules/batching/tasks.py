"""Asynchronous tasks of the batching module.

``LockTimeout`` is retryable: the tasks hand it back to Celery for a
backed-off retry instead of dropping the work.
"""

import structlog
from celery import shared_task

from modules.batching.exceptions import LockTimeout
from modules.batching.services import build_assignment_service, build_batch_service

logger = structlog.get_logger(__name__)

RETRY_POLICY = {
    "autoretry_for": (LockTimeout,),
    "retry_backoff": 2,
    "retry_backoff_max": 60,
    "retry_jitter": True,
    "max_retries": 5,
}


@shared_task(name="batching.assign_order", **RETRY_POLICY)
def assign_order(order_id: str):
    """Consume an ``OrderApproved`` signal from outside the HTTP path."""
    result = build_assignment_service().assign_order(order_id)
    logger.info(
        "assign_order.executed",
        order_id=order_id,
        batch_id=str(result.batch_id),
        already_assigned=result.already_assigned,
    )
    return result.model_dump(mode="json")


@shared_task(name="batching.consolidate_region", **RETRY_POLICY)
def consolidate_region(region_key: str):
    report = build_batch_service().consolidate(region_key)
    return report.model_dump(mode="json")


@shared_task(name="batching.consolidate_all")
def consolidate_all():
    """Periodic sweep (beat); busy regions are picked up by the next run."""
    sweep = build_batch_service().consolidate_all()
    logger.info(
        "consolidate_all.executed",
        regions=len(sweep.reports),
        locked_out=len(sweep.locked_out_regions),
    )
    return sweep.model_dump(mode="json")


@shared_task(name="batching.rebatch_unassigned", **RETRY_POLICY)
def rebatch_unassigned(region_key: str = ""):
    report = build_assignment_service().rebatch_unassigned(region_key or None)
    return report.model_dump(mode="json")
