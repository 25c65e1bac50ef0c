"""Order domain constants.

Two independent state axes live on an order:

- ``ApprovalStatus``: the verification workflow run by staff.  Approval
  is what hands the order to the batching engine.
- ``DeliveryStatus``: mirrored from the order's batch by the batch
  lifecycle (assigned / in transit / delivered).
"""

from django.db import models


class ApprovalStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"


class DeliveryStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ASSIGNED = "assigned", "Assigned"
    IN_TRANSIT = "in_transit", "In transit"
    DELIVERED = "delivered", "Delivered"


VALID_APPROVAL_TRANSITIONS: dict[str, set[str]] = {
    ApprovalStatus.PENDING: {ApprovalStatus.APPROVED, ApprovalStatus.REJECTED},
    ApprovalStatus.APPROVED: {ApprovalStatus.REJECTED},
    ApprovalStatus.REJECTED: {ApprovalStatus.PENDING},
}

ORDER_NUMBER_MAX_RETRIES = 5
