"""Customer and saved delivery addresses.

The batching engine only reads from this module: the Region Resolver
falls back to the customer's most recently saved address, and finally to
the free-text ``Customer.address``, when an order's address snapshot has
no usable region.
"""

from __future__ import annotations

import structlog
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class Customer(BaseModel):
    """Customer aggregate root.

    ``address`` is the free-text address captured at sign-up; structured
    addresses live in ``CustomerAddress``.
    """

    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, unique=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    address = models.TextField(blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "customers"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_active"], name="customers_active_idx"),
        ]

    def save(self, *args, **kwargs) -> None:
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return self.name


class CustomerAddress(BaseModel):
    """A saved, structured delivery address.

    ``region`` is the delivery sub-area (barangay) picked on the map when
    the address was saved; it may be blank for legacy rows.
    """

    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="addresses",
    )
    label = models.CharField(max_length=50, blank=True, default="")
    region = models.CharField(max_length=120, blank=True, default="")
    street_address = models.CharField(max_length=255, blank=True, default="")
    city = models.CharField(max_length=120, blank=True, default="")
    province = models.CharField(max_length=120, blank=True, default="")

    class Meta:
        db_table = "customer_addresses"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["customer", "-created_at"],
                name="cust_addr_customer_created_idx",
            ),
        ]

    def as_snapshot(self) -> dict:
        """Address fields in the shape stored on ``Order.delivery_address``."""
        return {
            "region": self.region,
            "street_address": self.street_address,
            "city": self.city,
            "province": self.province,
        }

    def __str__(self) -> str:
        return f"{self.street_address}, {self.region}".strip(", ")
