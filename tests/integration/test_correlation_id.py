import uuid

import pytest
import structlog

from modules.core.middleware import REQUEST_ID_HEADER, correlation_id_var

pytestmark = pytest.mark.integration


def test_incoming_request_id_is_echoed(api_client):
    response = api_client.get("/api/v1/orders/", HTTP_X_REQUEST_ID="dispatch-retry-42")

    assert response[REQUEST_ID_HEADER] == "dispatch-retry-42"
    assert correlation_id_var.get() == "dispatch-retry-42"


def test_request_id_is_generated_when_missing(api_client):
    response = api_client.get("/api/v1/orders/")

    assert response.status_code == 401
    assert uuid.UUID(response[REQUEST_ID_HEADER]).version == 4


def test_request_id_is_bound_to_log_context(auth_client):
    auth_client.get("/api/v1/batches/", HTTP_X_REQUEST_ID="trace-me")

    context = structlog.contextvars.get_contextvars()
    assert context["correlation_id"] == "trace-me"
    assert context["path"] == "/api/v1/batches/"
