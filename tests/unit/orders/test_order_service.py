"""Unit tests for OrderService (placement and verification workflow)."""

from decimal import Decimal

import pytest

from modules.batching.constants import BatchStatus
from modules.batching.models import Batch
from modules.core.models import OutboxEvent
from modules.orders.constants import ApprovalStatus, DeliveryStatus
from modules.orders.dtos import CreateOrderDTO, CreateOrderItemDTO
from modules.orders.exceptions import (
    CustomerNotFound,
    InactiveCustomer,
    InactiveProduct,
    InvalidOrderStatus,
    OrderNotFound,
    ProductNotFound,
)
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


def _dto(customer_id, *products, address=None):
    return CreateOrderDTO(
        customer_id=customer_id,
        items=[CreateOrderItemDTO(product_id=p.id, quantity=2) for p in products],
        delivery_address=address,
    )


class TestCreateOrder:
    def test_creates_pending_order_with_price_snapshot(
        self, order_service, customer, make_product
    ):
        product = make_product(price=Decimal("25.00"))

        order = order_service.create_order(
            _dto(customer.id, product, address={"region": "Carmen", "city": "CDO"})
        )

        assert order.approval_status == ApprovalStatus.PENDING
        assert order.batch_id is None
        assert order.total_amount == Decimal("50.00")
        assert order.delivery_address == {"region": "Carmen", "city": "CDO"}
        assert order.order_number.startswith("ORD-")
        assert OutboxEvent.objects.filter(
            aggregate_id=str(order.id), event_type="OrderCreated"
        ).exists()

    def test_unknown_customer(self, order_service, make_product):
        with pytest.raises(CustomerNotFound):
            order_service.create_order(
                _dto("00000000-0000-0000-0000-000000000000", make_product())
            )

    def test_inactive_customer(self, order_service, customer, make_product):
        customer.is_active = False
        customer.save()

        with pytest.raises(InactiveCustomer):
            order_service.create_order(_dto(customer.id, make_product()))

    def test_unknown_product(self, order_service, customer):
        dto = CreateOrderDTO(
            customer_id=customer.id,
            items=[
                CreateOrderItemDTO(
                    product_id="00000000-0000-0000-0000-000000000000", quantity=1
                )
            ],
        )
        with pytest.raises(ProductNotFound):
            order_service.create_order(dto)

    def test_inactive_product(self, order_service, customer, make_product):
        product = make_product(status=ProductStatus.INACTIVE)

        with pytest.raises(InactiveProduct):
            order_service.create_order(_dto(customer.id, product))


class TestApprove:
    def test_approval_assigns_a_batch(self, order_service, make_order):
        order = make_order(region="Carmen", weight=Decimal("15"))

        approved = order_service.approve_order(order.id)

        assert approved.approval_status == ApprovalStatus.APPROVED
        assert approved.batch is not None
        assert approved.batch.region_key == "Carmen"

    def test_reapproval_is_idempotent(self, order_service, make_order):
        order = make_order(weight=Decimal("15"))
        first = order_service.approve_order(order.id)

        second = order_service.approve_order(order.id)

        assert second.batch_id == first.batch_id
        assert Batch.objects.get().accumulated_weight == Decimal("15.00")

    def test_rejected_order_cannot_be_approved(self, order_service, make_order):
        order = make_order()
        order_service.reject_order(order.id)

        with pytest.raises(InvalidOrderStatus):
            order_service.approve_order(order.id)

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.approve_order("00000000-0000-0000-0000-000000000000")


class TestReject:
    def test_pending_order(self, order_service, make_order):
        order = make_order()

        rejected = order_service.reject_order(order.id, reason="duplicate")

        assert rejected.approval_status == ApprovalStatus.REJECTED
        event = OutboxEvent.objects.get(aggregate_id=str(order.id), event_type="OrderRejected")
        assert event.payload["reason"] == "duplicate"
        assert event.payload["released_batch_id"] == ""

    def test_batched_order_gives_its_weight_back(self, order_service, make_order):
        kept = order_service.approve_order(make_order(weight=Decimal("100")).id)
        leaving = order_service.approve_order(make_order(weight=Decimal("40")).id)

        rejected = order_service.reject_order(leaving.id)

        batch = Batch.objects.get(id=kept.batch_id)
        assert batch.accumulated_weight == Decimal("100.00")
        assert rejected.batch_id is None
        assert rejected.total_weight is None
        assert rejected.delivery_status == DeliveryStatus.PENDING
        event = OutboxEvent.objects.get(
            aggregate_id=str(leaving.id), event_type="OrderRejected"
        )
        assert event.payload["released_batch_id"] == str(batch.id)

    def test_batch_past_collecting_blocks_rejection(
        self, order_service, batch_service, make_order
    ):
        order = order_service.approve_order(make_order().id)
        batch_service.dispatch(order.batch_id)

        with pytest.raises(InvalidOrderStatus):
            order_service.reject_order(order.id)

        order.refresh_from_db()
        assert order.approval_status == ApprovalStatus.APPROVED
        assert Batch.objects.get(id=order.batch_id).status == BatchStatus.READY

    def test_already_rejected(self, order_service, make_order):
        order = make_order()
        order_service.reject_order(order.id)

        with pytest.raises(InvalidOrderStatus):
            order_service.reject_order(order.id)


class TestReopen:
    def test_reopened_order_can_be_approved_again(self, order_service, make_order):
        order = order_service.approve_order(make_order(weight=Decimal("30")).id)
        old_batch_id = order.batch_id
        order_service.reject_order(order.id)

        reopened = order_service.reopen_order(order.id)
        assert reopened.approval_status == ApprovalStatus.PENDING
        assert reopened.approved_at is None

        approved = order_service.approve_order(order.id)
        assert approved.batch_id == old_batch_id
        assert approved.total_weight == Decimal("30.00")
        assert Batch.objects.get(id=old_batch_id).accumulated_weight == Decimal("30.00")

    def test_only_rejected_orders_reopen(self, order_service, make_order):
        with pytest.raises(InvalidOrderStatus):
            order_service.reopen_order(make_order().id)

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.reopen_order("00000000-0000-0000-0000-000000000000")
