"""Order and OrderItem models.

Business rules implemented:
- Order number auto-generated as human-readable identifier.
- Customer FK uses PROTECT to preserve order history.
- ``total_weight`` is computed once per approval and frozen; it is only
  cleared when the order is rejected (and recomputed on re-approval).
- ``batch`` is set exactly once per approval cycle by the batching
  engine.  PROTECT guarantees a batch is never deleted while it still
  holds orders.
- OrderItem snapshots the product price at creation time (``unit_price``)
  and ``subtotal`` is always ``quantity * unit_price``.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    ORDER_NUMBER_MAX_RETRIES,
    VALID_APPROVAL_TRANSITIONS,
    ApprovalStatus,
    DeliveryStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``delivery_address`` is a JSON snapshot of the address chosen at
    checkout (``region``, ``street_address``, ``city``, ``province``,
    ``full_address``).  ``region_key`` caches the normalised region the
    batching engine resolved from it.
    """

    order_number: models.CharField = models.CharField(
        max_length=20, unique=True, editable=False
    )
    customer: models.ForeignKey = models.ForeignKey(
        "customers.Customer",
        on_delete=models.PROTECT,
        related_name="orders",
    )
    approval_status: models.CharField = models.CharField(
        max_length=20,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
    )
    delivery_status: models.CharField = models.CharField(
        max_length=20,
        choices=DeliveryStatus.choices,
        default=DeliveryStatus.PENDING,
    )
    delivery_address: models.JSONField = models.JSONField(default=dict, blank=True)
    region_key: models.CharField = models.CharField(
        max_length=120, blank=True, default="", db_index=True
    )
    total_weight: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        default=None,
    )
    batch: models.ForeignKey = models.ForeignKey(
        "batching.Batch",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
    )
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    notes: models.TextField = models.TextField(blank=True, default="")
    approved_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)
    delivered_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["approval_status", "batch"],
                name="orders_approval_batch_idx",
            ),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total_weight__isnull=True)
                | models.Q(total_weight__gt=0),
                name="orders_total_weight_positive",
            ),
        ]

    # ------------------------------------------------------------------
    # Approval helpers
    # ------------------------------------------------------------------

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @property
    def is_batched(self) -> bool:
        return self.batch_id is not None

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether moving the approval state to *new_status* is valid."""
        allowed = VALID_APPROVAL_TRANSITIONS.get(self.approval_status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        """Generate a human-readable order number: ``ORD-YYYYMMDD-XXXXXX``."""
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"ORD-{now:%Y%m%d}-{suffix}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.approval_status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a Product.

    ``is_fulfilled`` is flipped by the batch lifecycle when the batch
    carrying the order is delivered.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        editable=False,
    )
    is_fulfilled: models.BooleanField = models.BooleanField(default=False)
    fulfilled_at: models.DateTimeField = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.unit_price:
            unit_price = getattr(self.product, "price", None)
            if unit_price is None:
                raise ValidationError({"unit_price": "Product price is required."})
            self.unit_price = unit_price
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.product} x{self.quantity}"
