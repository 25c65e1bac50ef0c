"""Integration tests for the batch read API and operator commands."""

from decimal import Decimal

import pytest
from rest_framework import status

from modules.batching.models import Batch
from modules.orders.models import Order

pytestmark = pytest.mark.integration

BATCHES_URL = "/api/v1/batches/"


def _url(batch_id, action=""):
    return f"{BATCHES_URL}{batch_id}/{action + '/' if action else ''}"


@pytest.fixture()
def batch_id(make_order, assignment_service):
    """Collecting batch in Carmen holding one 500 kg order."""
    return assignment_service.assign_order(make_order(region="Carmen", weight=Decimal("500")).id).batch_id


class TestRead:
    def test_list_with_region_filter(self, auth_client, batch_id, make_order, assignment_service):
        assignment_service.assign_order(make_order(region="Lapasan").id)

        response = auth_client.get(BATCHES_URL, {"region_key": "carmen"})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["count"] == 1
        row = response.data["results"][0]
        assert row["id"] == str(batch_id)
        assert row["status"] == "collecting"
        assert row["accumulated_weight"] == "500.00"
        assert row["remaining_capacity"] == "3000.00"
        assert row["order_count"] == 1

    def test_retrieve_lists_member_orders(self, auth_client, batch_id):
        response = auth_client.get(_url(batch_id))

        assert response.status_code == status.HTTP_200_OK
        order = Order.objects.get(batch_id=batch_id)
        assert response.data["order_ids"] == [str(order.id)]

    def test_retrieve_unknown_is_404(self, auth_client):
        response = auth_client.get(_url("00000000-0000-0000-0000-000000000000"))
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["code"] == "BatchNotFound"

    def test_monitoring_snapshot(self, auth_client, batch_id, make_order):
        stray = make_order(region="Gusa")
        Order.objects.filter(id=stray.id).update(approval_status="approved", region_key="Gusa")

        response = auth_client.get(f"{BATCHES_URL}monitoring/")

        assert response.status_code == status.HTTP_200_OK
        regions = response.data["regions"]
        assert [r["region_key"] for r in regions] == ["Carmen"]
        assert regions[0]["total_remaining"] == "3000.00"
        assert regions[0]["open_batches"][0]["batch_id"] == str(batch_id)
        assert [o["order_id"] for o in response.data["unbatched_orders"]] == [str(stray.id)]

    def test_anonymous_is_refused(self, api_client):
        assert api_client.get(BATCHES_URL).status_code == status.HTTP_401_UNAUTHORIZED


class TestLifecycleCommands:
    def test_dispatch_assign_transit_deliver(self, auth_client, batch_id, make_driver):
        driver = make_driver()

        dispatched = auth_client.post(_url(batch_id, "dispatch"))
        assert dispatched.status_code == status.HTTP_200_OK
        assert dispatched.data["status"] == "ready"

        candidates = auth_client.get(_url(batch_id, "driver-candidates"))
        assert [c["driver_id"] for c in candidates.data] == [driver.pk]

        assigned = auth_client.post(
            _url(batch_id, "assign-driver"), {"driver_id": driver.pk}, format="json"
        )
        assert assigned.status_code == status.HTTP_200_OK
        assert assigned.data["assigned_driver_id"] == driver.pk

        assert auth_client.post(_url(batch_id, "start-transit")).data["status"] == "in_transit"

        delivered = auth_client.post(_url(batch_id, "deliver"))
        assert delivered.data["status"] == "delivered"
        assert Order.objects.get(batch_id=batch_id).delivery_status == "delivered"

    def test_invalid_transition_is_409(self, auth_client, batch_id):
        response = auth_client.post(_url(batch_id, "start-transit"))

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["code"] == "InvalidBatchTransition"

    def test_unavailable_driver_is_409(self, auth_client, batch_id, staff_user):
        auth_client.post(_url(batch_id, "dispatch"))

        response = auth_client.post(
            _url(batch_id, "assign-driver"), {"driver_id": staff_user.pk}, format="json"
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["code"] == "DriverNotAvailable"

    def test_assign_driver_validates_payload(self, auth_client, batch_id):
        response = auth_client.post(_url(batch_id, "assign-driver"), {}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_cancel_with_rebatch(self, auth_client, batch_id):
        response = auth_client.post(
            _url(batch_id, "cancel"),
            {"reason": "vehicle breakdown", "rebatch": True},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["status"] == "cancelled"
        assert response.data["cancellation_reason"] == "vehicle breakdown"
        order = Order.objects.get()
        assert order.batch_id is not None
        assert order.batch_id != batch_id
        assert Batch.objects.get(id=order.batch_id).accumulated_weight == Decimal("500.00")

    def test_cancel_without_rebatch_leaves_orders_unbatched(self, auth_client, batch_id):
        response = auth_client.post(_url(batch_id, "cancel"), {}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert Order.objects.get().batch_id is None


class TestMaintenance:
    def test_consolidate_region(self, auth_client, batch_id):
        second = Batch.objects.create(
            region_key="Carmen", sequence=2, capacity=Decimal("3500")
        )

        response = auth_client.post(
            f"{BATCHES_URL}consolidate/", {"region_key": " carmen "}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["region_key"] == "Carmen"
        assert response.data["deleted_empty_batch_ids"] == [str(second.id)]
        assert response.data["target_batch_id"] == str(batch_id)

    def test_consolidate_everything(self, auth_client, batch_id):
        Batch.objects.create(region_key="Gusa", sequence=1, capacity=Decimal("3500"))

        response = auth_client.post(f"{BATCHES_URL}consolidate/", {}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert [r["region_key"] for r in response.data["reports"]] == ["Gusa"]
        assert response.data["locked_out_regions"] == []

    def test_reconcile(self, auth_client, batch_id):
        Batch.objects.filter(id=batch_id).update(accumulated_weight=Decimal("450"))

        response = auth_client.post(_url(batch_id, "reconcile"))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["corrected"] is True
        assert response.data["actual_weight"] == "500.00"
