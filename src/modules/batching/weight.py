"""Weight Calculator.

An order weighs the sum of ``quantity * unit weight`` over its items.
Products without weight data contribute nothing; a non-positive total is
replaced by the configured minimum so that every batched order occupies
some capacity.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING, Optional

import structlog

from modules.batching.conf import get_batching_settings
from modules.batching.constants import WEIGHT_QUANTUM
from modules.products.repositories.interfaces import IProductRepository

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)


def quantize_weight(value: Decimal) -> Decimal:
    return Decimal(value).quantize(WEIGHT_QUANTUM, rounding=ROUND_HALF_UP)


class WeightCalculator:
    def __init__(
        self,
        product_repository: IProductRepository,
        min_order_weight: Optional[Decimal] = None,
    ) -> None:
        self._products = product_repository
        self._min_weight = (
            min_order_weight
            if min_order_weight is not None
            else get_batching_settings().min_order_weight
        )

    def compute(self, order: Order) -> Decimal:
        """Total weight of *order*, never below the minimum order weight."""
        log = logger.bind(order_id=str(order.id))
        items = list(order.items.all())
        unit_weights = self._products.unit_weights(item.product_id for item in items)

        total = Decimal("0")
        missing = []
        for item in items:
            unit_weight = unit_weights.get(item.product_id)
            if unit_weight is None:
                missing.append(str(item.product_id))
                continue
            total += Decimal(item.quantity) * unit_weight

        if missing:
            log.warning("batching.weight_data_missing", product_ids=missing)

        total = quantize_weight(total)
        if total <= 0:
            log.warning(
                "batching.invalid_weight",
                computed=str(total),
                substituted=str(self._min_weight),
                item_count=len(items),
            )
            total = quantize_weight(self._min_weight)

        return total
