"""Driver pool.

Driver selection belongs to the dispatch side; the engine only asks for
the drivers that could take a ready batch and records the one chosen.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, List, Optional

import structlog
from django.contrib.auth import get_user_model

from modules.batching.dtos import DriverCandidate, DriverSelectionHint
from modules.batching.repositories.interfaces import IBatchRepository

logger = structlog.get_logger(__name__)


class IDriverPool(ABC):
    @abstractmethod
    def available_drivers(self, hint: DriverSelectionHint) -> List[DriverCandidate]:
        """Drivers free to take the batch described by *hint*."""

    @abstractmethod
    def get_available(self, driver_id: Any, lock: bool = False) -> Optional[Any]:
        """The driver if it exists, is active and is not busy; else ``None``.

        With *lock* the driver row stays locked until the surrounding
        transaction ends, so two batches cannot claim the same driver.
        """


class DjangoDriverPool(IDriverPool):
    """Active users of the drivers group without an assigned/in-transit batch."""

    def __init__(self, batch_repository: IBatchRepository, group_name: str) -> None:
        self._batches = batch_repository
        self._group_name = group_name

    def _drivers(self):
        return (
            get_user_model()
            .objects.filter(is_active=True, groups__name=self._group_name)
            .distinct()
        )

    def available_drivers(self, hint: DriverSelectionHint) -> List[DriverCandidate]:
        busy = self._batches.busy_driver_ids()
        candidates = [
            DriverCandidate(
                driver_id=user.pk,
                username=user.get_username(),
                full_name=user.get_full_name(),
            )
            for user in self._drivers().exclude(pk__in=busy).order_by("pk")
        ]
        logger.info(
            "batching.driver_candidates",
            batch_id=str(hint.batch_id),
            region_key=hint.region_key,
            weight=str(hint.weight),
            available=len(candidates),
        )
        return candidates

    def get_available(self, driver_id: Any, lock: bool = False) -> Optional[Any]:
        try:
            if lock:
                # FOR UPDATE is not allowed together with DISTINCT.
                user = (
                    get_user_model()
                    .objects.select_for_update(of=("self",))
                    .filter(pk=driver_id, is_active=True, groups__name=self._group_name)
                    .first()
                )
            else:
                user = self._drivers().filter(pk=driver_id).first()
        except (TypeError, ValueError):
            return None
        if user is None or user.pk in self._batches.busy_driver_ids():
            return None
        return user
