"""Region Resolver.

Derives the region key (barangay) an order is batched under.  Fallback
chain, first usable answer wins:

1. the ``region`` (legacy ``barangay``) field of the order's address
   snapshot;
2. the customer's most recently saved address that carries a region
   (the caller back-fills it into the snapshot);
3. free-text parsing of the snapshot's ``full_address`` and then of the
   customer's sign-up address.

There is no "unknown" region: an order that survives none of the steps
is reported as not resolvable and must not be batched.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

import structlog

from modules.batching.exceptions import RegionNotResolvable
from modules.customers.repositories.interfaces import ICustomerRepository

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

SOURCE_SNAPSHOT = "snapshot"
SOURCE_SAVED_ADDRESS = "saved_address"
SOURCE_FREE_TEXT = "free_text"
SOURCE_CUSTOMER_ADDRESS = "customer_address"

PLACEHOLDER_REGIONS = frozenset(
    {
        "unknown",
        "unknown barangay",
        "unknown location",
        "default area",
        "n/a",
        "na",
        "none",
        "null",
        "-",
    }
)

STREET_WORDS = frozenset(
    {
        "street",
        "st",
        "road",
        "rd",
        "avenue",
        "ave",
        "highway",
        "hwy",
        "lane",
        "ln",
        "drive",
        "dr",
        "boulevard",
        "blvd",
        "building",
        "bldg",
        "floor",
        "unit",
        "block",
        "blk",
        "lot",
        "purok",
        "zone",
        "phase",
        "subdivision",
        "village",
    }
)

# Tokens naming something bigger than a barangay.
ADMINISTRATIVE_WORDS = frozenset(
    {
        "city",
        "municipality",
        "province",
        "metro",
        "philippines",
        "ncr",
        "oriental",
        "occidental",
        "del norte",
        "del sur",
    }
)

_SPLIT_RE = re.compile(r"[,;|\n]+")
_LABEL_RE = re.compile(
    r"^(?:region\s*:|barangay\b\s*:?|brgy\b\.?|bgy\b\.?)\s*(?P<name>.+)$",
    re.IGNORECASE,
)
_PLAUSIBLE_RE = re.compile(r"^[A-Za-zÑñ .'\-]+$")
_POSTAL_RE = re.compile(r"\b\d{4}\b")
_WORD_RE = re.compile(r"[a-zñ]+")
_EDGE_PUNCTUATION = " \t.,;:|-'\"()"


@dataclass(frozen=True)
class RegionResolution:
    region_key: str
    source: str
    # Saved-address fallback: snapshot fields to write back onto the order.
    backfill: Optional[Dict[str, Any]] = field(default=None)


def normalize_region(value: str) -> str:
    """Collapse whitespace, strip surrounding punctuation and title-case."""
    collapsed = " ".join(str(value).split())
    return collapsed.strip(_EDGE_PUNCTUATION).title()


def is_placeholder(value: Optional[str]) -> bool:
    if value is None:
        return True
    cleaned = " ".join(str(value).split()).strip(" .").lower()
    return not cleaned or cleaned in PLACEHOLDER_REGIONS


def is_plausible_region_name(value: str) -> bool:
    candidate = value.strip(_EDGE_PUNCTUATION)
    if not (3 <= len(candidate) <= 60):
        return False
    if not _PLAUSIBLE_RE.match(candidate):
        return False
    return any(ch.isalpha() for ch in candidate)


def _has_street_word(lowered: str) -> bool:
    return any(word in STREET_WORDS for word in _WORD_RE.findall(lowered))


def _looks_administrative(lowered: str) -> bool:
    if _POSTAL_RE.search(lowered):
        return True
    words = " ".join(_WORD_RE.findall(lowered))
    return any(
        re.search(rf"\b{re.escape(term)}\b", words) for term in ADMINISTRATIVE_WORDS
    )


def parse_free_text_region(text: Optional[str]) -> Optional[str]:
    """Pick the barangay out of a free-text address, or ``None``.

    Parts are scanned from the end, where the barangay usually sits just
    before the city.  An explicitly labelled part (``Brgy. Carmen``) wins
    over any positional guess.
    """
    if not text or not str(text).strip():
        return None

    parts = [part.strip() for part in _SPLIT_RE.split(str(text)) if part.strip()]
    parts.reverse()

    for part in parts:
        match = _LABEL_RE.match(part)
        if not match:
            continue
        name = normalize_region(match.group("name"))
        if not is_placeholder(name) and is_plausible_region_name(name):
            return name

    for part in parts:
        lowered = part.lower()
        if _looks_administrative(lowered) or _has_street_word(lowered):
            continue
        if not is_plausible_region_name(part):
            continue
        name = normalize_region(part)
        if not is_placeholder(name):
            return name
    return None


def _snapshot_region(address: Dict[str, Any]) -> Optional[str]:
    for key in ("region", "barangay"):
        value = address.get(key)
        if isinstance(value, str) and not is_placeholder(value):
            return normalize_region(value)
    return None


def _free_text_candidates(order: Order) -> Iterable[tuple[str, Optional[str]]]:
    address = order.delivery_address or {}
    yield SOURCE_FREE_TEXT, address.get("full_address") or address.get("address")
    customer = getattr(order, "customer", None)
    yield SOURCE_CUSTOMER_ADDRESS, getattr(customer, "address", None)


class RegionResolver:
    """Resolves the region key of an order (read-only)."""

    def __init__(self, customer_repository: ICustomerRepository) -> None:
        self._customers = customer_repository

    def resolve(self, order: Order) -> Optional[RegionResolution]:
        log = logger.bind(order_id=str(order.id))
        address = order.delivery_address or {}

        region = _snapshot_region(address)
        if region:
            log.debug("batching.region_resolved", source=SOURCE_SNAPSHOT, region_key=region)
            return RegionResolution(region_key=region, source=SOURCE_SNAPSHOT)

        for saved in self._customers.saved_addresses(str(order.customer_id)):
            if is_placeholder(saved.region):
                continue
            region = normalize_region(saved.region)
            log.info(
                "batching.region_resolved",
                source=SOURCE_SAVED_ADDRESS,
                region_key=region,
                address_id=str(saved.id),
            )
            snapshot = {**address, **saved.as_snapshot(), "region": region}
            return RegionResolution(
                region_key=region,
                source=SOURCE_SAVED_ADDRESS,
                backfill=snapshot,
            )

        for source, text in _free_text_candidates(order):
            region = parse_free_text_region(text)
            if region:
                log.info("batching.region_resolved", source=source, region_key=region)
                return RegionResolution(region_key=region, source=source)

        log.warning("batching.region_unresolvable")
        return None

    def resolve_or_raise(self, order: Order) -> RegionResolution:
        resolution = self.resolve(order)
        if resolution is None:
            raise RegionNotResolvable(order.id)
        return resolution
