"""Order service layer (Use Cases).

Orchestrates order creation and the verification workflow run by staff.
Approval is delegated to the batching engine, which approves the order
and assigns it to a delivery batch in one guarded transaction: an order
is never observable as approved without a batch.

Business rules enforced:
- Customer and products must exist and be active to place an order.
- Approval transitions are validated against ``VALID_APPROVAL_TRANSITIONS``.
- Rejecting a batched order takes it out of its batch (only while the
  batch is still collecting) and clears its frozen weight.
"""

from __future__ import annotations

from contextlib import nullcontext
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.db import transaction

from modules.orders.constants import ApprovalStatus, DeliveryStatus
from modules.orders.events import OrderCreated, OrderRejected, OrderReopened
from modules.orders.exceptions import (
    CustomerNotFound,
    InactiveCustomer,
    InactiveProduct,
    InvalidOrderStatus,
    OrderNotFound,
    ProductNotFound,
)

if TYPE_CHECKING:
    from modules.batching.services import BatchAssignmentService
    from modules.customers.repositories.interfaces import ICustomerRepository
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the batch assignment service via
    constructor injection.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        customer_repository: ICustomerRepository,
        product_repository: IProductRepository,
        batch_assignment: BatchAssignmentService,
    ) -> None:
        self._order_repo = order_repository
        self._customer_repo = customer_repository
        self._product_repo = product_repository
        self._batching = batch_assignment

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_order(self, dto: CreateOrderDTO) -> Order:
        """Place a new pending order.

        Raises:
            CustomerNotFound: customer does not exist.
            InactiveCustomer: customer is inactive.
            ProductNotFound: a product does not exist.
            InactiveProduct: a product is inactive.
        """
        log = logger.bind(customer_id=str(dto.customer_id))

        customer = self._customer_repo.get_by_id(str(dto.customer_id))
        if not customer:
            raise CustomerNotFound(f"Customer {dto.customer_id} not found.")
        if not customer.is_active:
            raise InactiveCustomer(f"Customer {dto.customer_id} is inactive.")

        repo_items = []
        for item_dto in dto.items:
            product = self._product_repo.get_by_id(str(item_dto.product_id))
            if not product:
                raise ProductNotFound(f"Product {item_dto.product_id} not found.")
            if product.status != "active":
                raise InactiveProduct(f"Product {item_dto.product_id} is inactive.")
            repo_items.append(
                {
                    "product_id": product.id,
                    "quantity": item_dto.quantity,
                    "unit_price": product.price,
                }
            )

        order = self._order_repo.create(
            {
                "customer_id": dto.customer_id,
                "items": repo_items,
                "delivery_address": dto.delivery_address or {},
                "notes": dto.notes or "",
            }
        )
        order.add_domain_event(OrderCreated(aggregate_id=order.id))
        self._order_repo.save(order)

        log.info("order.placed", order_id=str(order.id), order_number=order.order_number)
        return self._order_repo.get_by_id(str(order.id)) or order

    def approve_order(self, order_id: Any) -> Order:
        """Approve the order and assign it to a delivery batch.

        Re-approving an order that is already batched is a no-op.

        Raises:
            OrderNotFound, InvalidOrderStatus, and the batching errors
            (``RegionNotResolvable``, ``OrderExceedsCapacity``,
            ``LockTimeout``, ``AllocationRace``).
        """
        order = self.get_order(str(order_id))
        if order.approval_status == ApprovalStatus.REJECTED:
            raise InvalidOrderStatus(
                f"Cannot approve order {order.order_number}: it was rejected."
            )
        result = self._batching.assign_order(order.id)
        logger.info(
            "order.approved",
            order_id=str(order.id),
            batch_id=str(result.batch_id),
            already_assigned=result.already_assigned,
        )
        return self.get_order(str(order.id))

    def reject_order(self, order_id: Any, reason: str = "") -> Order:
        """Reject the order, taking it out of its batch if it has one.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: not rejectable, or its batch is already
                past ``collecting``.
        """
        order = self.get_order(str(order_id))
        log = logger.bind(order_id=str(order.id), current_status=order.approval_status)
        if not order.can_transition_to(ApprovalStatus.REJECTED):
            log.warning("order.invalid_transition", new_status=ApprovalStatus.REJECTED)
            raise InvalidOrderStatus(
                f"Cannot transition from {order.approval_status} to rejected."
            )

        region_guard = (
            self._batching.hold_region(order.batch.region_key)
            if order.batch_id
            else nullcontext()
        )
        with region_guard, transaction.atomic():
            locked = self._order_repo.get_for_update(str(order.id))
            if locked is None:
                raise OrderNotFound(f"Order {order_id} not found.")
            if not locked.can_transition_to(ApprovalStatus.REJECTED):
                raise InvalidOrderStatus(
                    f"Cannot transition from {locked.approval_status} to rejected."
                )
            if locked.batch_id and not order.batch_id:
                # Batched concurrently; the region guard was not taken.
                raise InvalidOrderStatus(
                    f"Order {locked.order_number} was batched meanwhile; retry."
                )

            released_batch_id = self._batching.release_order(locked)
            locked.approval_status = ApprovalStatus.REJECTED
            locked.delivery_status = DeliveryStatus.PENDING
            locked.total_weight = None
            locked.add_domain_event(
                OrderRejected(
                    aggregate_id=locked.id,
                    released_batch_id=str(released_batch_id or ""),
                    reason=reason,
                )
            )
            self._order_repo.save(locked)

        log.info(
            "order.rejected",
            released_batch_id=str(released_batch_id) if released_batch_id else None,
        )
        return self.get_order(str(order.id))

    @transaction.atomic
    def reopen_order(self, order_id: Any) -> Order:
        """Put a rejected order back into verification (``pending``)."""
        order = self._order_repo.get_for_update(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        if not order.can_transition_to(ApprovalStatus.PENDING):
            raise InvalidOrderStatus(
                f"Cannot transition from {order.approval_status} to pending."
            )
        order.approval_status = ApprovalStatus.PENDING
        order.approved_at = None
        order.add_domain_event(OrderReopened(aggregate_id=order.id))
        self._order_repo.save(order)
        logger.info("order.reopened", order_id=str(order.id))
        return self._order_repo.get_by_id(str(order.id)) or order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        return self._order_repo.list(filters)


def build_order_service() -> OrderService:
    from modules.batching.services import build_assignment_service
    from modules.customers.repositories.django_repository import (
        CustomerDjangoRepository,
    )
    from modules.orders.repositories.django_repository import OrderDjangoRepository
    from modules.products.repositories.django_repository import (
        ProductDjangoRepository,
    )

    return OrderService(
        order_repository=OrderDjangoRepository(),
        customer_repository=CustomerDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        batch_assignment=build_assignment_service(),
    )
