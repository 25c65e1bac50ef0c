"""Unit tests for the Batch Locator and the Batch Allocator."""

from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.db import IntegrityError
from django.utils import timezone

from modules.batching.allocation import BatchAllocator, BatchLocator, rank_candidates
from modules.batching.constants import BatchStatus
from modules.batching.exceptions import AllocationRace, InvalidWeight, OrderExceedsCapacity
from modules.batching.models import Batch
from modules.batching.repositories.django_repository import BatchDjangoRepository
from modules.orders.repositories.django_repository import OrderDjangoRepository

pytestmark = pytest.mark.unit

CAPACITY = Decimal("3500")


def _batch(weight, minutes_ago=0, status=BatchStatus.COLLECTING, sequence=1):
    return Batch(
        region_key="Carmen",
        sequence=sequence,
        accumulated_weight=Decimal(weight),
        capacity=CAPACITY,
        status=status,
        created_at=timezone.now() - timedelta(minutes=minutes_ago),
    )


def _saved_batch(weight, minutes_ago=0, status=BatchStatus.COLLECTING, region="Carmen"):
    sequence = Batch.objects.filter(region_key=region).count() + 1
    return Batch.objects.create(
        region_key=region,
        sequence=sequence,
        accumulated_weight=Decimal(weight),
        capacity=CAPACITY,
        status=status,
        created_at=timezone.now() - timedelta(minutes=minutes_ago),
    )


@pytest.fixture()
def allocator():
    batches = BatchDjangoRepository()
    return BatchAllocator(batches, OrderDjangoRepository(), BatchLocator(batches), CAPACITY)


class TestRankCandidates:
    def test_most_remaining_capacity_first(self):
        fuller = _batch("3300", minutes_ago=10)
        nearly_full = _batch("3450", minutes_ago=20)
        roomy = _batch("100", minutes_ago=1)

        assert rank_candidates([fuller, nearly_full, roomy], Decimal("40")) == [
            roomy,
            fuller,
            nearly_full,
        ]

    def test_tie_goes_to_the_older_batch(self):
        newer = _batch("3000", minutes_ago=1, sequence=2)
        older = _batch("3000", minutes_ago=5, sequence=1)

        assert rank_candidates([newer, older], Decimal("500"))[0] is older

    def test_batches_that_cannot_fit_are_dropped(self):
        assert rank_candidates([_batch("3400"), _batch("3499.99")], Decimal("101")) == []

    def test_exact_fit_is_allowed(self):
        batch = _batch("3000")
        assert rank_candidates([batch], Decimal("500")) == [batch]

    def test_non_collecting_batches_are_ignored(self):
        ready = _batch("0", status=BatchStatus.READY)
        assert rank_candidates([ready], Decimal("1")) == []


class TestBatchLocator:
    def test_picks_most_remaining_in_region(self):
        _saved_batch("3300", minutes_ago=10)
        best = _saved_batch("3450", minutes_ago=20)
        best.accumulated_weight = Decimal("100")
        best.save()
        _saved_batch("0", region="Lapasan")

        locator = BatchLocator(BatchDjangoRepository())

        assert locator.find_candidate("Carmen", Decimal("50")) == best

    def test_none_when_nothing_fits(self):
        _saved_batch("3490")
        assert BatchLocator(BatchDjangoRepository()).find_candidate("Carmen", Decimal("20")) is None

    def test_other_region_is_never_returned(self):
        _saved_batch("0", region="Lapasan")
        assert BatchLocator(BatchDjangoRepository()).find_candidate("Carmen", Decimal("1")) is None


class TestBatchAllocator:
    def test_adds_to_candidate(self, allocator, make_order):
        batch = _saved_batch("1000")
        order = make_order(region="Carmen")

        result = allocator.allocate(order, "Carmen", Decimal("250"), batch)

        batch.refresh_from_db()
        order.refresh_from_db()
        assert batch.accumulated_weight == Decimal("1250.00")
        assert order.batch_id == batch.id
        assert order.region_key == "Carmen"
        assert order.total_weight == Decimal("250.00")
        assert result.batch_id == batch.id
        assert result.batch_weight == Decimal("1250.00")
        assert result.created_batch is False

    def test_opens_batch_when_no_candidate(self, allocator, make_order):
        _saved_batch("3400")
        order = make_order(region="Carmen")

        result = allocator.allocate(order, "Carmen", Decimal("200"), None)

        new_batch = Batch.objects.get(id=result.batch_id)
        assert result.created_batch is True
        assert new_batch.sequence == 2
        assert new_batch.accumulated_weight == Decimal("200.00")
        assert new_batch.capacity == CAPACITY
        assert new_batch.status == BatchStatus.COLLECTING

    def test_order_of_exactly_capacity_gets_own_batch(self, allocator, make_order):
        order = make_order(region="Carmen")

        result = allocator.allocate(order, "Carmen", CAPACITY, None)

        assert result.batch_weight == CAPACITY

    def test_stale_candidate_is_relocated(self, allocator, make_order):
        stale = _saved_batch("3400", minutes_ago=5)
        roomy = _saved_batch("100", minutes_ago=1)
        order = make_order(region="Carmen")

        result = allocator.allocate(order, "Carmen", Decimal("200"), stale)

        assert result.batch_id == roomy.id
        stale.refresh_from_db()
        assert stale.accumulated_weight == Decimal("3400.00")

    @pytest.mark.parametrize("weight", [Decimal("0"), Decimal("-1")])
    def test_non_positive_weight_is_a_defect(self, allocator, make_order, weight):
        with pytest.raises(InvalidWeight):
            allocator.allocate(make_order(), "Carmen", weight, None)
        assert not Batch.objects.exists()

    def test_over_capacity(self, allocator, make_order):
        order = make_order()
        with pytest.raises(OrderExceedsCapacity) as exc_info:
            allocator.allocate(order, "Carmen", Decimal("3500.01"), None)
        assert exc_info.value.capacity == CAPACITY
        assert not Batch.objects.exists()


class TestAllocationRace:
    def _allocator(self, batch_repo, locator):
        return BatchAllocator(batch_repo, MagicMock(), locator, CAPACITY)

    def test_uses_the_batch_created_by_the_winner(self, make_order):
        winner = _saved_batch("0")
        batch_repo = MagicMock()
        batch_repo.create.side_effect = IntegrityError("duplicate sequence")
        batch_repo.add_weight.return_value = Decimal("10.00")
        locator = MagicMock()
        locator.find_candidate.return_value = winner

        result = self._allocator(batch_repo, locator).allocate(
            make_order(region="Carmen"), "Carmen", Decimal("10"), None
        )

        assert result.batch_id == winner.id
        assert result.created_batch is False
        locator.find_candidate.assert_called_once_with("Carmen", Decimal("10"))

    def test_raises_when_nothing_fits_after_race(self, make_order):
        batch_repo = MagicMock()
        batch_repo.create.side_effect = IntegrityError("duplicate sequence")
        locator = MagicMock()
        locator.find_candidate.return_value = None

        with pytest.raises(AllocationRace):
            self._allocator(batch_repo, locator).allocate(
                make_order(region="Carmen"), "Carmen", Decimal("10"), None
            )
        batch_repo.add_weight.assert_not_called()
