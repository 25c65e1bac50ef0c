import itertools
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from django.core.cache import cache
from rest_framework.test import APIClient

from modules.batching.services import build_assignment_service, build_batch_service
from modules.customers.models import Customer, CustomerAddress
from modules.orders.models import Order, OrderItem
from modules.orders.services import build_order_service
from modules.products.models import Product, ProductStatus


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    """Throttle counters live in the cache; start every test from zero."""
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def staff_user():
    return get_user_model().objects.create_user(
        username="dispatcher", password="not-used-in-tests", is_staff=True
    )


@pytest.fixture()
def auth_client(api_client, staff_user):
    api_client.force_authenticate(user=staff_user)
    return api_client


@pytest.fixture()
def make_driver():
    counter = itertools.count(1)

    def _make(username=None, is_active=True):
        group, _ = Group.objects.get_or_create(name="drivers")
        user = get_user_model().objects.create_user(
            username=username or f"driver{next(counter)}",
            password="not-used-in-tests",
            first_name="Juan",
            last_name="Dela Cruz",
            is_active=is_active,
        )
        user.groups.add(group)
        return user

    return _make


@pytest.fixture()
def customer():
    return Customer.objects.create(
        name="Maria Santos",
        email="maria.santos@example.com",
        phone="09171234567",
        address="",
    )


@pytest.fixture()
def make_product():
    counter = itertools.count(1)

    def _make(weight=Decimal("1.000"), price=Decimal("10.00"), status=ProductStatus.ACTIVE):
        n = next(counter)
        return Product.objects.create(
            sku=f"sku-{n:04d}",
            name=f"Product {n}",
            price=price,
            weight=weight,
            status=status,
        )

    return _make


@pytest.fixture()
def make_order(customer, make_product):
    """Pending order with one line whose weight is exactly *weight*.

    ``region=None`` leaves the address snapshot without a region.
    """

    def _make(region="R1", weight=Decimal("10"), address=None, owner=None):
        product = make_product(weight=weight)
        if address is None:
            address = {"region": region} if region is not None else {}
        order = Order.objects.create(
            customer=owner or customer,
            delivery_address=address,
        )
        OrderItem.objects.create(
            order=order,
            product=product,
            quantity=1,
            unit_price=product.price,
        )
        return order

    return _make


@pytest.fixture()
def saved_address(customer):
    def _make(region, **fields):
        return CustomerAddress.objects.create(customer=customer, region=region, **fields)

    return _make


@pytest.fixture()
def assignment_service():
    return build_assignment_service()


@pytest.fixture()
def batch_service():
    return build_batch_service()


@pytest.fixture()
def order_service():
    return build_order_service()
