"""Django ORM implementation of the Order repository.

Batch-membership updates are single ``UPDATE`` statements; callers run
them inside the region-guarded transaction opened by the batching
services, so they are never observed half-applied.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet, Sum
from django.utils import timezone

from modules.core.outbox import persist_domain_events
from modules.orders.constants import ApprovalStatus
from modules.orders.models import Order, OrderItem
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            customer_id=data["customer_id"],
            delivery_address=data.get("delivery_address") or {},
            notes=data.get("notes", ""),
        )
        order.save()

        total = Decimal("0.00")
        items = data.get("items", [])
        for item_data in items:
            item = OrderItem(
                order=order,
                product_id=item_data["product_id"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            )
            item.save()
            total += item.subtotal

        order.total_amount = total
        order.save(update_fields=["total_amount"])

        logger.info("order.created", order_id=str(order.id), item_count=len(items))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Order with customer and items (with product) eager-loaded."""
        try:
            return (
                Order.objects.select_related("customer", "batch")
                .prefetch_related("items__product")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: str) -> Optional[Order]:
        try:
            return Order.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = Order.objects.select_related("customer", "batch")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    # ------------------------------------------------------------------
    # Save
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and write its domain events to the outbox."""
        entity.save()
        rows = persist_domain_events(entity, topic="orders")
        logger.debug("order.saved", order_id=str(entity.id), event_count=len(rows))
        return entity

    # ------------------------------------------------------------------
    # Batch membership
    # ------------------------------------------------------------------

    def members_of(self, batch_id: UUID) -> List[Order]:
        return list(Order.objects.filter(batch_id=batch_id).order_by("created_at"))

    def member_count(self, batch_id: UUID) -> int:
        return Order.objects.filter(batch_id=batch_id).count()

    def member_weight(self, batch_id: UUID) -> Decimal:
        total = Order.objects.filter(
            batch_id=batch_id,
            approval_status=ApprovalStatus.APPROVED,
        ).aggregate(total=Sum("total_weight"))["total"]
        return Decimal(total or 0)

    def move_members(self, source_batch_id: UUID, target_batch_id: UUID) -> int:
        moved = Order.objects.filter(batch_id=source_batch_id).update(
            batch_id=target_batch_id, updated_at=timezone.now()
        )
        logger.info(
            "order.batch_members_moved",
            source_batch_id=str(source_batch_id),
            target_batch_id=str(target_batch_id),
            moved=moved,
        )
        return moved

    def update_members(self, batch_id: UUID, **fields: Any) -> int:
        fields.setdefault("updated_at", timezone.now())
        return Order.objects.filter(batch_id=batch_id).update(**fields)

    def fulfil_member_items(self, batch_id: UUID) -> int:
        return OrderItem.objects.filter(
            order__batch_id=batch_id, is_fulfilled=False
        ).update(is_fulfilled=True, fulfilled_at=timezone.now())

    def approved_unbatched(self, region_key: Optional[str] = None) -> List[Order]:
        queryset = Order.objects.filter(
            approval_status=ApprovalStatus.APPROVED,
            batch__isnull=True,
        )
        if region_key:
            queryset = queryset.filter(region_key=region_key)
        return list(queryset.order_by("approved_at", "created_at"))

    # ------------------------------------------------------------------
    # API read path
    # ------------------------------------------------------------------

    def queryset(self) -> QuerySet[Order]:
        """Base queryset the list endpoint filters, orders and paginates."""
        return Order.objects.select_related("customer", "batch")
