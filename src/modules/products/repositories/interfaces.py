"""Product repository interface."""

from __future__ import annotations

from abc import abstractmethod
from decimal import Decimal
from typing import TYPE_CHECKING, Dict, Iterable, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product catalog."""

    @abstractmethod
    def unit_weights(self, ids: Iterable[UUID]) -> Dict[UUID, Optional[Decimal]]:
        """Per-unit weight for each product id (``None`` when unknown)."""
