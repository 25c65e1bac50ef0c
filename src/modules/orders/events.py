"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is placed."""


@dataclass(frozen=True, kw_only=True)
class OrderApproved(DomainEvent):
    """Raised once an approved order has been assigned to a batch."""

    batch_id: str
    region_key: str
    total_weight: str


@dataclass(frozen=True, kw_only=True)
class OrderRejected(DomainEvent):
    """Raised when staff reject an order (it leaves its batch, if any)."""

    released_batch_id: str = ""
    reason: str = ""


@dataclass(frozen=True)
class OrderReopened(DomainEvent):
    """Raised when a rejected order is put back into verification."""
