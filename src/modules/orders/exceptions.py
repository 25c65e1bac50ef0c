"""Order domain exceptions.

Raised by the service layer; the views translate them into HTTP
responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist."""


class InvalidOrderStatus(Exception):
    """The approval transition is not allowed from the current state."""


class InactiveCustomer(Exception):
    """The customer is inactive and cannot place orders."""


class CustomerNotFound(Exception):
    """The customer referenced by the order does not exist."""


class ProductNotFound(Exception):
    """A product referenced by an order item does not exist."""


class InactiveProduct(Exception):
    """A product referenced by an order item is inactive."""
