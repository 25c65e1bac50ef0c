"""Batching service layer (use cases).

- ``BatchAssignmentService``: consumes order approvals.  Region and
  weight are worked out outside the guard; locate, allocate and the
  readiness check run under the region guard in one transaction, so a
  failed approval leaves neither the order nor any batch changed.
- ``BatchService``: operator-facing lifecycle commands, consolidation,
  reconciliation, driver candidates and the monitoring queries.

``build_*`` wire the Django repositories and the configured guard; views
and tasks use them, tests inject their own collaborators.
"""

from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.batching.allocation import BatchAllocator, BatchLocator
from modules.batching.conf import BatchingSettings, get_batching_settings
from modules.batching.consolidation import Consolidator
from modules.batching.drivers import DjangoDriverPool, IDriverPool
from modules.batching.dtos import (
    AllocationResult,
    ConsolidationReport,
    ConsolidationSweep,
    DriverCandidate,
    DriverSelectionHint,
    MonitoringSnapshot,
    OpenBatch,
    RebatchReport,
    ReconciliationReport,
    RegionCapacity,
    UnbatchedOrder,
)
from modules.batching.exceptions import (
    BatchingError,
    BatchNotFound,
    OrderExceedsCapacity,
)
from modules.batching.lifecycle import BatchLifecycle
from modules.batching.locks import RegionGuard
from modules.batching.models import Batch
from modules.batching.reconciliation import BatchReconciler
from modules.batching.region import RegionResolver
from modules.batching.repositories.django_repository import BatchDjangoRepository
from modules.batching.repositories.interfaces import IBatchRepository
from modules.batching.weight import WeightCalculator
from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.orders.constants import ApprovalStatus, DeliveryStatus
from modules.orders.events import OrderApproved
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.repositories.interfaces import IOrderRepository
from modules.products.repositories.django_repository import ProductDjangoRepository

logger = structlog.get_logger(__name__)


class BatchAssignmentService:
    """Places approved orders into delivery batches."""

    def __init__(
        self,
        order_repository: IOrderRepository,
        batch_repository: IBatchRepository,
        resolver: RegionResolver,
        weight_calculator: WeightCalculator,
        guard: RegionGuard,
        lifecycle: BatchLifecycle,
        capacity: Decimal,
    ) -> None:
        self._orders = order_repository
        self._batches = batch_repository
        self._resolver = resolver
        self._weights = weight_calculator
        self._guard = guard
        self._lifecycle = lifecycle
        self._capacity = capacity
        self._locator = BatchLocator(batch_repository)
        self._allocator = BatchAllocator(
            batch_repository, order_repository, self._locator, capacity
        )

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    def assign_order(self, order_id: Any) -> AllocationResult:
        """Approve *order_id* and put it into a batch of its region.

        Re-delivery for an order that already sits in a batch is a no-op.
        """
        order = self._orders.get_by_id(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        log = logger.bind(order_id=str(order.id))

        self._ensure_assignable(order)
        if order.is_approved and order.is_batched:
            log.info("batching.already_assigned", batch_id=str(order.batch_id))
            return self._already_assigned(order)

        resolution = self._resolver.resolve_or_raise(order)
        region_key = resolution.region_key
        if order.is_approved and order.total_weight:
            weight = order.total_weight
        else:
            weight = self._weights.compute(order)
        if weight > self._capacity:
            log.error(
                "batching.order_exceeds_capacity",
                weight=str(weight),
                capacity=str(self._capacity),
            )
            raise OrderExceedsCapacity(order.id, weight, self._capacity)

        with self._guard.hold(region_key), transaction.atomic():
            locked = self._orders.get_for_update(str(order.id))
            if locked is None:
                raise OrderNotFound(f"Order {order_id} not found.")
            self._ensure_assignable(locked)
            if locked.is_approved and locked.is_batched:
                log.info("batching.already_assigned", batch_id=str(locked.batch_id))
                return self._already_assigned(locked)

            if not locked.is_approved:
                locked.approval_status = ApprovalStatus.APPROVED
                locked.approved_at = timezone.now()
            locked.delivery_status = DeliveryStatus.PENDING
            if resolution.backfill is not None:
                locked.delivery_address = resolution.backfill

            candidate = self._locator.find_candidate(region_key, weight)
            result = self._allocator.allocate(locked, region_key, weight, candidate)
            became_ready = self._lifecycle.evaluate_readiness(result.batch_id)

            locked.add_domain_event(
                OrderApproved(
                    aggregate_id=locked.id,
                    batch_id=str(result.batch_id),
                    region_key=region_key,
                    total_weight=str(weight),
                )
            )
            self._orders.save(locked)

        return result.model_copy(update={"became_ready": became_ready})

    def release_order(self, order: Order) -> Optional[Any]:
        """Take a locked, batched order out of its batch.

        Runs inside the caller's guarded transaction.  Only a collecting
        batch can give an order back; later states belong to dispatch.
        """
        if order.batch_id is None:
            return None
        batch = self._batches.get_for_update(order.batch_id)
        if batch is None:
            order.batch = None
            return None
        if not batch.is_collecting:
            raise InvalidOrderStatus(
                f"Order {order.order_number} is on batch {batch.label} which is "
                f"already '{batch.status}'; cancel the batch first."
            )

        weight = order.total_weight or Decimal("0")
        if batch.accumulated_weight < weight:
            logger.error(
                "batching.weight_drift",
                batch_id=str(batch.id),
                cached_weight=str(batch.accumulated_weight),
                order_weight=str(weight),
            )
            self._batches.set_weight(batch.id, Decimal("0.00"))
        else:
            self._batches.add_weight(batch.id, -weight)

        order.batch = None
        logger.info(
            "batching.order_released",
            order_id=str(order.id),
            batch_id=str(batch.id),
            weight=str(weight),
        )
        return batch.id

    def hold_region(self, region_key: str):
        return self._guard.hold(region_key)

    def rebatch_unassigned(self, region_key: Optional[str] = None) -> RebatchReport:
        """Re-run assignment for approved orders that lost their batch."""
        assigned = []
        failed: Dict[str, str] = {}
        for order in self._orders.approved_unbatched(region_key):
            try:
                result = self.assign_order(order.id)
            except (BatchingError, InvalidOrderStatus, OrderNotFound) as exc:
                logger.warning(
                    "batching.rebatch_failed",
                    order_id=str(order.id),
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
                failed[str(order.id)] = str(exc)
                continue
            assigned.append(result.order_id)
        logger.info("batching.rebatched", assigned=len(assigned), failed=len(failed))
        return RebatchReport(assigned=assigned, failed=failed)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _ensure_assignable(order: Order) -> None:
        if order.approval_status == ApprovalStatus.REJECTED:
            raise InvalidOrderStatus(
                f"Order {order.order_number} was rejected; reopen it before approving."
            )

    @staticmethod
    def _already_assigned(order: Order) -> AllocationResult:
        batch = order.batch
        return AllocationResult(
            order_id=order.id,
            batch_id=order.batch_id,
            region_key=order.region_key,
            weight=order.total_weight,
            batch_weight=batch.accumulated_weight,
            already_assigned=True,
        )


class BatchService:
    """Lifecycle, consolidation and query use cases for operators."""

    def __init__(
        self,
        batch_repository: IBatchRepository,
        order_repository: IOrderRepository,
        lifecycle: BatchLifecycle,
        consolidator: Consolidator,
        reconciler: BatchReconciler,
        driver_pool: IDriverPool,
    ) -> None:
        self._batches = batch_repository
        self._orders = order_repository
        self._lifecycle = lifecycle
        self._consolidator = consolidator
        self._reconciler = reconciler
        self._drivers = driver_pool

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: Any) -> Batch:
        batch = self._batches.get_by_id(str(batch_id))
        if batch is None:
            raise BatchNotFound(f"Batch {batch_id} not found.")
        return batch

    def list_batches(self, filters: Optional[Dict[str, Any]] = None) -> List[Batch]:
        return self._batches.list(filters)

    def open_capacity_by_region(self) -> List[RegionCapacity]:
        grouped: Dict[str, List[OpenBatch]] = defaultdict(list)
        for batch in self._batches.open_batches():
            grouped[batch.region_key].append(OpenBatch.from_entity(batch))
        return [
            RegionCapacity(
                region_key=region_key,
                open_batches=batches,
                total_remaining=sum(
                    (b.remaining_capacity for b in batches), Decimal("0")
                ),
            )
            for region_key, batches in sorted(grouped.items())
        ]

    def unbatched_approved_orders(self) -> List[UnbatchedOrder]:
        return [
            UnbatchedOrder(
                order_id=order.id,
                order_number=order.order_number,
                region_key=order.region_key,
                total_weight=order.total_weight,
                approved_at=order.approved_at,
            )
            for order in self._orders.approved_unbatched()
        ]

    def monitoring_snapshot(self) -> MonitoringSnapshot:
        return MonitoringSnapshot(
            regions=self.open_capacity_by_region(),
            unbatched_orders=self.unbatched_approved_orders(),
        )

    def driver_candidates(self, batch_id: Any) -> List[DriverCandidate]:
        batch = self.get_batch(batch_id)
        hint = DriverSelectionHint(
            batch_id=batch.id,
            region_key=batch.region_key,
            weight=batch.accumulated_weight,
        )
        return self._drivers.available_drivers(hint)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def dispatch(self, batch_id: Any) -> Batch:
        return self._lifecycle.mark_ready(batch_id)

    def assign_driver(self, batch_id: Any, driver_id: Any) -> Batch:
        return self._lifecycle.assign_driver(batch_id, driver_id)

    def start_transit(self, batch_id: Any) -> Batch:
        return self._lifecycle.start_transit(batch_id)

    def deliver(self, batch_id: Any) -> Batch:
        return self._lifecycle.mark_delivered(batch_id)

    def cancel(self, batch_id: Any, reason: str = "") -> Batch:
        return self._lifecycle.cancel(batch_id, reason)

    def consolidate(self, region_key: str) -> ConsolidationReport:
        return self._consolidator.consolidate(region_key)

    def consolidate_all(self) -> ConsolidationSweep:
        return self._consolidator.consolidate_all()

    def reconcile(self, batch_id: Any) -> ReconciliationReport:
        return self._reconciler.reconcile(batch_id)


# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def _build_lifecycle(
    conf: BatchingSettings,
    batches: IBatchRepository,
    orders: IOrderRepository,
    guard: RegionGuard,
) -> BatchLifecycle:
    return BatchLifecycle(
        batch_repository=batches,
        order_repository=orders,
        guard=guard,
        driver_pool=DjangoDriverPool(batches, conf.driver_group),
        ready_threshold=conf.ready_threshold,
    )


def build_assignment_service() -> BatchAssignmentService:
    conf = get_batching_settings()
    batches = BatchDjangoRepository()
    orders = OrderDjangoRepository()
    guard = RegionGuard()
    return BatchAssignmentService(
        order_repository=orders,
        batch_repository=batches,
        resolver=RegionResolver(CustomerDjangoRepository()),
        weight_calculator=WeightCalculator(
            ProductDjangoRepository(), conf.min_order_weight
        ),
        guard=guard,
        lifecycle=_build_lifecycle(conf, batches, orders, guard),
        capacity=conf.capacity,
    )


def build_batch_service() -> BatchService:
    conf = get_batching_settings()
    batches = BatchDjangoRepository()
    orders = OrderDjangoRepository()
    guard = RegionGuard()
    lifecycle = _build_lifecycle(conf, batches, orders, guard)
    return BatchService(
        batch_repository=batches,
        order_repository=orders,
        lifecycle=lifecycle,
        consolidator=Consolidator(batches, orders, guard, lifecycle),
        reconciler=BatchReconciler(batches, orders, guard),
        driver_pool=DjangoDriverPool(batches, conf.driver_group),
    )
