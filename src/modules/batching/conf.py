"""Typed access to the batching settings.

Values come from ``config/settings.py`` (python-decouple / environment).
``get_batching_settings()`` validates them once per call site so a bad
deployment fails loudly instead of silently mis-batching.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

LOCK_BACKENDS = ("redis", "local")


@dataclass(frozen=True)
class BatchingSettings:
    capacity: Decimal
    ready_threshold: Decimal
    min_order_weight: Decimal
    lock_backend: str
    lock_timeout: float
    lock_lease: float
    driver_group: str


def get_batching_settings() -> BatchingSettings:
    capacity = Decimal(str(getattr(settings, "BATCH_CAPACITY", "3500")))
    raw_threshold: Optional[Decimal] = getattr(settings, "BATCH_READY_THRESHOLD", None)
    threshold = Decimal(str(raw_threshold)) if raw_threshold is not None else capacity
    min_weight = Decimal(str(getattr(settings, "BATCH_MIN_ORDER_WEIGHT", "1")))
    backend = getattr(settings, "BATCH_LOCK_BACKEND", "redis")

    if capacity <= 0:
        raise ImproperlyConfigured("BATCH_CAPACITY must be positive.")
    if not (0 < threshold <= capacity):
        raise ImproperlyConfigured(
            "BATCH_READY_THRESHOLD must be greater than zero and not exceed "
            "BATCH_CAPACITY."
        )
    if min_weight <= 0:
        raise ImproperlyConfigured("BATCH_MIN_ORDER_WEIGHT must be positive.")
    if backend not in LOCK_BACKENDS:
        raise ImproperlyConfigured(
            f"BATCH_LOCK_BACKEND must be one of {', '.join(LOCK_BACKENDS)}."
        )

    return BatchingSettings(
        capacity=capacity,
        ready_threshold=threshold,
        min_order_weight=min_weight,
        lock_backend=backend,
        lock_timeout=float(getattr(settings, "BATCH_LOCK_TIMEOUT_SECONDS", 10.0)),
        lock_lease=float(getattr(settings, "BATCH_LOCK_LEASE_SECONDS", 30.0)),
        driver_group=getattr(settings, "BATCH_DRIVER_GROUP", "drivers"),
    )
