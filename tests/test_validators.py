"""
Tests for caller input validation.
"""

import pytest

from cert_hub.exceptions import InvalidInputError
from cert_hub.validators import (
    MAX_NAME_LENGTH,
    normalize_hex,
    validate_content_hash,
    validate_name,
    validate_text,
    validate_title,
    validate_wallet,
    validate_website,
)
from tests.conftest import assert_validation_error

VALID_HASH = "0x" + "ab" * 32


def test_validate_content_hash_normalizes_case_and_whitespace():
    assert validate_content_hash("  0X" + "AB" * 32 + " ") == VALID_HASH


@pytest.mark.parametrize(
    "value, message",
    [
        ("ab" * 32, "must start with '0x'"),
        ("0x" + "ab" * 31, "must have 64 hex characters"),
        ("0x" + "zz" * 32, "non-hex characters"),
        (None, "must be a string"),
        (b"0x00", "must be a string"),
    ],
)
def test_validate_content_hash_rejects_malformed(value, message):
    error = assert_validation_error(validate_content_hash, value, expected_message=message)
    assert isinstance(error, InvalidInputError)
    assert error.field == "content_hash"


def test_validate_wallet_lowercases():
    assert validate_wallet("0x" + "AbCd" * 10) == "0x" + "abcd" * 10


def test_validate_wallet_custom_field():
    with pytest.raises(InvalidInputError) as exc_info:
        validate_wallet("0x1234", "issuer_wallet")
    assert exc_info.value.field == "issuer_wallet"


def test_normalize_hex_length_message():
    with pytest.raises(InvalidInputError, match="got 4"):
        normalize_hex("0x1234", "thing", 40)


def test_validate_text_strips_and_checks_length():
    assert validate_text("  hello  ", "field", 10) == "hello"
    assert_validation_error(validate_text, "x" * 11, "field", 10, expected_message="exceeds maximum length")


def test_validate_text_optional_accepts_none():
    assert validate_text(None, "filename", 10, required=False) == ""


def test_validate_text_required():
    assert_validation_error(validate_text, "   ", "title", 10, expected_message="title is required")


def test_validate_name_limits():
    assert validate_name("A" * MAX_NAME_LENGTH) == "A" * MAX_NAME_LENGTH
    with pytest.raises(InvalidInputError):
        validate_name("A" * (MAX_NAME_LENGTH + 1))


def test_validate_title_required():
    with pytest.raises(InvalidInputError) as exc_info:
        validate_title("")
    assert exc_info.value.field == "title"


def test_validate_website():
    assert validate_website("") == ""
    assert validate_website("https://uni.example.com") == "https://uni.example.com"
    with pytest.raises(InvalidInputError, match="http or https"):
        validate_website("ftp://uni.example.com")
