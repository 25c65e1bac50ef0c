"""Unit tests for the batch lifecycle state machine."""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal
from unittest.mock import patch

import pytest
from freezegun import freeze_time

from modules.batching.constants import BatchStatus
from modules.batching.exceptions import (
    BatchNotFound,
    DriverNotAvailable,
    InvalidBatchTransition,
)
from modules.batching.models import Batch
from modules.batching.repositories.django_repository import BatchDjangoRepository
from modules.core.models import OutboxEvent
from modules.orders.constants import ApprovalStatus, DeliveryStatus
from modules.orders.models import Order

pytestmark = pytest.mark.unit


@pytest.fixture()
def collecting_batch(make_order, assignment_service):
    """A collecting batch in region R1 holding two orders (10 + 20)."""
    first = make_order(weight=Decimal("10"))
    second = make_order(weight=Decimal("20"))
    result = assignment_service.assign_order(first.id)
    assignment_service.assign_order(second.id)
    return Batch.objects.get(id=result.batch_id)


@pytest.fixture()
def ready_batch(collecting_batch, batch_service):
    return batch_service.dispatch(collecting_batch.id)


def _events(batch, event_type):
    return OutboxEvent.objects.filter(aggregate_id=str(batch.id), event_type=event_type)


class TestManualDispatch:
    def test_collecting_to_ready(self, collecting_batch, batch_service):
        batch = batch_service.dispatch(collecting_batch.id)

        assert batch.status == BatchStatus.READY
        assert batch.ready_at is not None
        event = _events(batch, "BatchReady").get()
        assert event.payload["manual"] is True
        assert event.payload["accumulated_weight"] == "30.00"

    def test_empty_batch_cannot_be_dispatched(self, batch_service):
        empty = Batch.objects.create(region_key="R9", sequence=1, capacity=Decimal("3500"))

        with pytest.raises(InvalidBatchTransition):
            batch_service.dispatch(empty.id)

    def test_ready_batch_cannot_be_dispatched_again(self, ready_batch, batch_service):
        with pytest.raises(InvalidBatchTransition):
            batch_service.dispatch(ready_batch.id)

    def test_unknown_batch(self, batch_service):
        with pytest.raises(BatchNotFound):
            batch_service.dispatch("00000000-0000-0000-0000-000000000000")

    def test_malformed_id(self, batch_service):
        with pytest.raises(BatchNotFound):
            batch_service.dispatch("not-a-uuid")


class TestDriverAssignment:
    def test_ready_to_assigned(self, ready_batch, batch_service, make_driver):
        driver = make_driver()

        batch = batch_service.assign_driver(ready_batch.id, driver.pk)

        assert batch.status == BatchStatus.ASSIGNED
        assert batch.assigned_driver_id == driver.pk
        assert batch.assigned_at is not None
        assert set(
            Order.objects.filter(batch=batch).values_list("delivery_status", flat=True)
        ) == {DeliveryStatus.ASSIGNED}
        assert _events(batch, "BatchDriverAssigned").count() == 1

    def test_collecting_batch_cannot_be_assigned(
        self, collecting_batch, batch_service, make_driver
    ):
        with pytest.raises(InvalidBatchTransition):
            batch_service.assign_driver(collecting_batch.id, make_driver().pk)

    def test_busy_driver_is_rejected(
        self, ready_batch, batch_service, make_driver, make_order, assignment_service
    ):
        driver = make_driver()
        batch_service.assign_driver(ready_batch.id, driver.pk)
        other = make_order(region="R2")
        other_batch_id = assignment_service.assign_order(other.id).batch_id
        batch_service.dispatch(other_batch_id)

        with pytest.raises(DriverNotAvailable):
            batch_service.assign_driver(other_batch_id, driver.pk)

        assert Batch.objects.get(id=other_batch_id).status == BatchStatus.READY

    def test_stale_availability_read_is_refused_by_the_database(
        self, ready_batch, batch_service, make_driver, make_order, assignment_service
    ):
        driver = make_driver()
        batch_service.assign_driver(ready_batch.id, driver.pk)
        other_batch_id = assignment_service.assign_order(make_order(region="R2").id).batch_id
        batch_service.dispatch(other_batch_id)

        with patch.object(BatchDjangoRepository, "busy_driver_ids", return_value=set()):
            with pytest.raises(DriverNotAvailable):
                batch_service.assign_driver(other_batch_id, driver.pk)

        other = Batch.objects.get(id=other_batch_id)
        assert (other.status, other.assigned_driver_id) == (BatchStatus.READY, None)
        assert Order.objects.get(batch_id=other_batch_id).delivery_status == DeliveryStatus.PENDING

    def test_inactive_or_non_driver_user(self, ready_batch, batch_service, make_driver, staff_user):
        inactive = make_driver(is_active=False)

        with pytest.raises(DriverNotAvailable):
            batch_service.assign_driver(ready_batch.id, inactive.pk)
        with pytest.raises(DriverNotAvailable):
            batch_service.assign_driver(ready_batch.id, staff_user.pk)


class TestTransitAndDelivery:
    def test_full_lifecycle(self, ready_batch, batch_service, make_driver):
        batch_service.assign_driver(ready_batch.id, make_driver().pk)
        batch_service.start_transit(ready_batch.id)

        batch = batch_service.deliver(ready_batch.id)

        assert batch.status == BatchStatus.DELIVERED
        assert batch.in_transit_at is not None
        assert batch.delivered_at is not None
        orders = Order.objects.filter(batch=batch)
        assert {o.delivery_status for o in orders} == {DeliveryStatus.DELIVERED}
        assert all(o.delivered_at == batch.delivered_at for o in orders)
        assert all(
            item.is_fulfilled for o in orders for item in o.items.all()
        )
        assert _events(batch, "BatchDelivered").get().payload["order_count"] == 2

    def test_cannot_skip_transit(self, ready_batch, batch_service, make_driver):
        batch_service.assign_driver(ready_batch.id, make_driver().pk)

        with pytest.raises(InvalidBatchTransition):
            batch_service.deliver(ready_batch.id)

    def test_delivered_batch_never_moves_again(self, ready_batch, batch_service, make_driver):
        batch_service.assign_driver(ready_batch.id, make_driver().pk)
        batch_service.start_transit(ready_batch.id)
        batch_service.deliver(ready_batch.id)

        with pytest.raises(InvalidBatchTransition):
            batch_service.cancel(ready_batch.id)

    def test_driver_is_free_again_after_delivery(
        self, ready_batch, batch_service, make_driver
    ):
        driver = make_driver()
        batch_service.assign_driver(ready_batch.id, driver.pk)
        batch_service.start_transit(ready_batch.id)
        batch_service.deliver(ready_batch.id)

        candidates = batch_service.driver_candidates(ready_batch.id)

        assert [c.driver_id for c in candidates] == [driver.pk]


class TestCancel:
    def test_members_are_released_with_approval_kept(self, collecting_batch, batch_service):
        member_ids = set(
            Order.objects.filter(batch=collecting_batch).values_list("id", flat=True)
        )

        batch = batch_service.cancel(collecting_batch.id, reason="truck broke down")

        assert batch.status == BatchStatus.CANCELLED
        assert batch.cancelled_at is not None
        assert batch.cancellation_reason == "truck broke down"
        assert batch.accumulated_weight == Decimal("0")
        released = Order.objects.filter(id__in=member_ids)
        assert all(o.batch_id is None for o in released)
        assert {o.approval_status for o in released} == {ApprovalStatus.APPROVED}
        payload = _events(batch, "BatchCancelled").get().payload
        assert set(payload["released_order_ids"]) == {str(i) for i in member_ids}

    def test_in_transit_batch_cannot_be_cancelled(
        self, ready_batch, batch_service, make_driver
    ):
        batch_service.assign_driver(ready_batch.id, make_driver().pk)
        batch_service.start_transit(ready_batch.id)

        with pytest.raises(InvalidBatchTransition):
            batch_service.cancel(ready_batch.id)

    def test_cancelled_batch_is_not_reused(
        self, collecting_batch, batch_service, assignment_service, make_order
    ):
        batch_service.cancel(collecting_batch.id)

        result = assignment_service.assign_order(make_order().id)

        assert result.batch_id != collecting_batch.id
        assert result.created_batch is True


class TestTimestamps:
    def test_each_transition_is_stamped(self, collecting_batch, batch_service, make_driver):
        driver = make_driver()
        moment = datetime(2026, 3, 1, 8, 0, tzinfo=dt_timezone.utc)

        with freeze_time(moment):
            batch_service.dispatch(collecting_batch.id)
            batch_service.assign_driver(collecting_batch.id, driver.pk)
            batch_service.start_transit(collecting_batch.id)
            batch_service.deliver(collecting_batch.id)

        batch = Batch.objects.get(id=collecting_batch.id)
        assert batch.ready_at == moment
        assert batch.assigned_at == moment
        assert batch.delivered_at == moment
        assert set(
            Order.objects.filter(batch=batch).values_list("delivered_at", flat=True)
        ) == {moment}
