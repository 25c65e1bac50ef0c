"""Unit tests for the Region Resolver and the free-text parser."""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from modules.batching.exceptions import RegionNotResolvable
from modules.batching.region import (
    SOURCE_CUSTOMER_ADDRESS,
    SOURCE_FREE_TEXT,
    SOURCE_SAVED_ADDRESS,
    SOURCE_SNAPSHOT,
    RegionResolver,
    is_placeholder,
    normalize_region,
    parse_free_text_region,
)
from modules.customers.repositories.django_repository import CustomerDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def resolver():
    return RegionResolver(CustomerDjangoRepository())


class TestNormalization:
    def test_collapses_whitespace_and_title_cases(self):
        assert normalize_region("  san   isidro ") == "San Isidro"

    def test_strips_surrounding_punctuation(self):
        assert normalize_region("- Carmen, ") == "Carmen"

    @pytest.mark.parametrize(
        "value",
        ["", "   ", "Unknown", "unknown barangay", "Unknown Location", "Default Area", "N/A", "null", "-"],
    )
    def test_placeholders(self, value):
        assert is_placeholder(value)

    def test_real_name_is_not_placeholder(self):
        assert not is_placeholder("Lapasan")


class TestParseFreeTextRegion:
    def test_skips_city_province_country_and_postal_code(self):
        text = "123 Rizal St, San Isidro, Quezon City, Metro Manila, Philippines 1100"
        assert parse_free_text_region(text) == "San Isidro"

    def test_labelled_part_wins_over_positional_guess(self):
        text = "Brgy. Carmen, Lapasan, Cagayan de Oro City"
        assert parse_free_text_region(text) == "Carmen"

    def test_region_label_is_stripped(self):
        assert parse_free_text_region("Unit 4; region: bulua; Misamis Oriental") == "Bulua"

    def test_skips_street_type_words(self):
        text = "Purok 5, Corrales Avenue, Puntod, Cagayan de Oro City"
        assert parse_free_text_region(text) == "Puntod"

    def test_accepts_enye_and_hyphen(self):
        assert parse_free_text_region("Camaman-an | Sto. Niño") == "Sto. Niño"

    def test_newline_separated(self):
        assert parse_free_text_region("Blk 3 Lot 7\nGusa\nCagayan de Oro City") == "Gusa"

    @pytest.mark.parametrize(
        "text",
        [None, "", "   ", "12345", "Quezon City, Philippines", "Unknown Barangay", "Rizal Street"],
    )
    def test_nothing_usable(self, text):
        assert parse_free_text_region(text) is None

    def test_rejects_names_with_digits(self):
        assert parse_free_text_region("Zone 4, Cagayan de Oro City") is None


class TestRegionResolver:
    def test_snapshot_region_is_used_first(self, resolver, make_order, saved_address):
        saved_address("Bulua")
        order = make_order(region="  lapasan ")

        resolution = resolver.resolve(order)

        assert resolution.region_key == "Lapasan"
        assert resolution.source == SOURCE_SNAPSHOT
        assert resolution.backfill is None

    def test_legacy_barangay_key(self, resolver, make_order):
        order = make_order(address={"barangay": "Carmen"})
        assert resolver.resolve(order).region_key == "Carmen"

    def test_placeholder_snapshot_falls_back_to_saved_address(
        self, resolver, make_order, saved_address
    ):
        saved_address("Macasandig", street_address="Blk 1", city="Cagayan de Oro")
        order = make_order(address={"region": "Unknown Barangay", "full_address": "x"})

        resolution = resolver.resolve(order)

        assert resolution.region_key == "Macasandig"
        assert resolution.source == SOURCE_SAVED_ADDRESS
        assert resolution.backfill["region"] == "Macasandig"
        assert resolution.backfill["street_address"] == "Blk 1"
        assert resolution.backfill["full_address"] == "x"

    def test_most_recent_saved_address_wins(self, resolver, make_order, saved_address):
        older = saved_address("Bonbon")
        older.created_at = timezone.now() - timedelta(days=3)
        older.save()
        saved_address("Nazareth")
        order = make_order(region=None)

        assert resolver.resolve(order).region_key == "Nazareth"

    def test_saved_address_without_region_is_skipped(
        self, resolver, make_order, saved_address
    ):
        older = saved_address("Tablon")
        older.created_at = timezone.now() - timedelta(days=3)
        older.save()
        saved_address("")
        order = make_order(region=None)

        assert resolver.resolve(order).region_key == "Tablon"

    def test_free_text_of_snapshot(self, resolver, make_order):
        order = make_order(
            address={"full_address": "88 Velez St, Kauswagan, Cagayan de Oro City"}
        )
        resolution = resolver.resolve(order)
        assert resolution.region_key == "Kauswagan"
        assert resolution.source == SOURCE_FREE_TEXT

    def test_customer_address_is_last_resort(self, resolver, make_order, customer):
        customer.address = "Iponan, Cagayan de Oro City, Philippines"
        customer.save()
        order = make_order(region=None)

        resolution = resolver.resolve(order)

        assert resolution.region_key == "Iponan"
        assert resolution.source == SOURCE_CUSTOMER_ADDRESS

    def test_unresolvable_returns_none(self, resolver, make_order):
        order = make_order(region=None)
        assert resolver.resolve(order) is None

    def test_resolve_or_raise(self, resolver, make_order):
        order = make_order(address={"region": "unknown"})
        with pytest.raises(RegionNotResolvable) as exc_info:
            resolver.resolve_or_raise(order)
        assert exc_info.value.order_id == order.id
