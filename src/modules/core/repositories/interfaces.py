"""Generic repository contract.

``IRepository[T]`` is the base that the Order and Batch repository
interfaces extend.  Services receive repositories through their
constructor and never touch the ORM for aggregate persistence.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base repository contract for aggregate ``T`` (``Order``, ``Batch``)."""

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[T]:
        """Retrieve an entity by its primary key, ``None`` if absent."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[T]:
        """List entities with optional ORM-style filters."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist the entity and flush its pending domain events."""
