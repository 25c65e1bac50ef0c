import pytest

from config.settings import mask_sensitive_data

pytestmark = pytest.mark.unit


def _mask(**event):
    return mask_sensitive_data(None, None, dict(event))


def test_masks_email():
    assert _mask(msg="sent to maria.santos@example.com")["msg"] == "sent to ***MASKED***"


@pytest.mark.parametrize("phone", ["09171234567", "+639171234567", "0917-123-4567"])
def test_masks_ph_mobile_numbers(phone):
    assert phone not in _mask(msg=f"call {phone} on arrival")["msg"]


@pytest.mark.parametrize("text", ["password=hunter2", "token: abc.def", 'secret="s3cr3t"'])
def test_masks_credentials(text):
    masked = _mask(msg=text)["msg"]
    assert "***MASKED***" in masked
    assert "hunter2" not in masked
    assert "abc.def" not in masked
    assert "s3cr3t" not in masked


def test_leaves_batching_fields_alone():
    event = _mask(event="batching.allocated", region_key="Carmen", weight="120.50")
    assert event == {
        "event": "batching.allocated",
        "region_key": "Carmen",
        "weight": "120.50",
    }


def test_non_string_values_untouched():
    assert _mask(order_count=3)["order_count"] == 3
