"""Django ORM implementation of the Customer repository.

Look-ups return ``None`` for missing or malformed IDs; the service
layer decides how a missing customer is reported.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.customers.models import Customer, CustomerAddress
from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerDjangoRepository(ICustomerRepository):
    """Concrete Customer repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Customer]:
        try:
            return Customer.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Customer]:
        queryset = Customer.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Customer) -> Customer:
        entity.save()
        logger.info("customer.saved", customer_id=str(entity.id))
        return entity

    def saved_addresses(self, customer_id: str) -> List[CustomerAddress]:
        """Newest first (``created_at`` desc, then id desc)."""
        try:
            return list(
                CustomerAddress.objects.filter(customer_id=customer_id).order_by(
                    "-created_at", "-id"
                )
            )
        except (ValueError, ValidationError):
            return []
