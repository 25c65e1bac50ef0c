"""Translation of batching and order errors into HTTP responses."""

from __future__ import annotations

import math

from rest_framework import status
from rest_framework.response import Response

from modules.batching.exceptions import (
    AllocationRace,
    BatchNotFound,
    DriverNotAvailable,
    InvalidBatchTransition,
    LockTimeout,
    OrderExceedsCapacity,
    RegionNotResolvable,
)
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound

ERROR_STATUS = (
    ((OrderNotFound, BatchNotFound), status.HTTP_404_NOT_FOUND),
    ((RegionNotResolvable, OrderExceedsCapacity), status.HTTP_422_UNPROCESSABLE_ENTITY),
    ((AllocationRace, InvalidBatchTransition, DriverNotAvailable), status.HTTP_409_CONFLICT),
    ((InvalidOrderStatus,), status.HTTP_400_BAD_REQUEST),
    ((LockTimeout,), status.HTTP_503_SERVICE_UNAVAILABLE),
)

HANDLED_ERRORS = tuple(cls for classes, _ in ERROR_STATUS for cls in classes)


def error_response(exc: Exception) -> Response:
    """Response for one of ``HANDLED_ERRORS``; anything else is re-raised."""
    for classes, http_status in ERROR_STATUS:
        if isinstance(exc, classes):
            break
    else:
        raise exc

    body = {"detail": str(exc), "code": type(exc).__name__}
    headers = None
    if isinstance(exc, LockTimeout):
        body["retryable"] = True
        headers = {"Retry-After": str(max(1, math.ceil(exc.timeout)))}
    return Response(body, status=http_status, headers=headers)
