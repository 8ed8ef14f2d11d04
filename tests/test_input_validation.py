import pytest

from error_handler import InvalidInput, InvalidOrderCode, InvalidPhone
from input_validation import (
    InputValidator, coerce_order_code, format_phone, normalize_order_code,
    normalize_phone, sanitize_api_response, validate_request
)


@pytest.mark.parametrize("raw, expected", [
    ("55-1234-5678", "5512345678"),
    ("+52 1 55 1234 5678", "5512345678"),
    ("(55) 1234 5678", "5512345678"),
    ("12345", "12345"),
    (None, ""),
    (5512345678, "5512345678"),
])
def test_normalize_phone(raw, expected):
    assert normalize_phone(raw) == expected


def test_normalize_order_code_trims_and_uppercases():
    assert normalize_order_code("  st-1234 ") == "ST-1234"
    assert normalize_order_code(None) == ""


def test_normalize_order_code_keeps_prefix_as_is():
    assert normalize_order_code("1234") == "1234"


def test_validate_request_accepts_valid_keys():
    validate_request("5512345678", "ST-123")
    validate_request("5512345678", "ST-123456789")


@pytest.mark.parametrize("phone", ["", "551234567", "55123456789", "55a2345678"])
def test_validate_request_rejects_bad_phone(phone):
    with pytest.raises(InvalidPhone) as exc_info:
        validate_request(phone, "ST-1234")
    assert exc_info.value.status_code == 400
    assert exc_info.value.message == "El teléfono debe tener exactamente 10 dígitos."


@pytest.mark.parametrize("code", ["", "1234", "ST-12", "ST-1234567890", "ST1234", "ST-12A4"])
def test_validate_request_rejects_bad_order_code(code):
    with pytest.raises(InvalidOrderCode) as exc_info:
        validate_request("5512345678", code)
    assert exc_info.value.message == "El número de pedido debe tener formato ST-XXX."


def test_phone_is_checked_before_order_code():
    with pytest.raises(InvalidPhone):
        validate_request("123", "bad")


def test_format_phone_mask():
    assert format_phone("55") == "55"
    assert format_phone("551234") == "55-1234"
    assert format_phone("5512345678") == "55-1234-5678"
    assert format_phone("55-1234-5678-99") == "55-1234-5678"


def test_coerce_order_code():
    assert coerce_order_code("st 1234") == "ST-1234"
    assert coerce_order_code("#1234") == "ST-1234"
    assert coerce_order_code("ST-1234567890123") == "ST-123456789"
    assert coerce_order_code("abc") == ""


class TestInputValidator:

    def setup_method(self):
        self.validator = InputValidator()

    def test_email_is_lowercased(self):
        assert self.validator.validate_email_address("  Admin@Example.COM ") == "admin@example.com"

    def test_invalid_email_raises(self):
        with pytest.raises(InvalidInput):
            self.validator.validate_email_address("not-an-email")

    def test_sanitize_text_strips_markup(self):
        assert self.validator.sanitize_text("<b>Abbey</b>   Road\n") == "Abbey Road"

    def test_sanitize_text_truncates(self):
        assert self.validator.sanitize_text("1969-01-01", max_length=4) == "1969"

    def test_sanitize_text_handles_none(self):
        assert self.validator.sanitize_text(None) == ""

    def test_validate_url(self):
        assert self.validator.validate_url(" https://img.example.com/a.jpg ") == "https://img.example.com/a.jpg"
        with pytest.raises(InvalidInput):
            self.validator.validate_url("ftp://img.example.com/a.jpg")
        with pytest.raises(InvalidInput):
            self.validator.validate_url("img.example.com/a.jpg")


def test_sanitize_api_response_removes_control_characters():
    data = {"order": {"name": "#ST-1\x00234 ", "fulfillments": [{"status": "success\x07"}]}}
    assert sanitize_api_response(data) == {"order": {"name": "#ST-1234", "fulfillments": [{"status": "success"}]}}
