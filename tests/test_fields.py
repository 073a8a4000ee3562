"""
Tests for custom model fields.
"""

from unittest.mock import MagicMock

import pytest
from django.core.exceptions import ValidationError
from django.forms import CharField

from cert_hub.fields import DigestField, SequenceField, WalletField

DIGEST = "0x" + "0f" * 32
WALLET = "0x" + "1e" * 20


def test_sequence_field_db_type():
    """Test SequenceField returns INTEGER for SQLite rowid usage."""
    field = SequenceField(primary_key=True)
    connection = MagicMock()
    assert field.db_type(connection) == "INTEGER"


def test_sequence_field_no_autoincrement():
    """Test SequenceField skips AUTOINCREMENT to stay gap-less."""
    field = SequenceField(primary_key=True)
    connection = MagicMock()
    assert field.db_type_suffix(connection) == ""


def test_digest_field_roundtrip_prep():
    field = DigestField()
    raw = field.get_prep_value(DIGEST)
    assert isinstance(raw, bytes)
    assert len(raw) == 32
    assert field.from_db_value(raw, None, None) == DIGEST


def test_digest_field_normalizes_uppercase():
    field = DigestField()
    assert field.to_python("0X" + "0F" * 32) == DIGEST


def test_wallet_field_length():
    field = WalletField()
    assert len(field.get_prep_value(WALLET)) == 20
    with pytest.raises(ValidationError) as exc_info:
        field.get_prep_value(DIGEST)
    assert exc_info.value.code == "invalid_length"


def test_field_rejects_missing_prefix():
    with pytest.raises(ValidationError) as exc_info:
        DigestField().to_python("0f" * 32)
    assert exc_info.value.code == "invalid_prefix"


def test_field_rejects_bad_hex():
    with pytest.raises(ValidationError) as exc_info:
        DigestField().get_prep_value("0x" + "zz" * 32)
    assert exc_info.value.code == "invalid_hex"


def test_field_rejects_other_types():
    with pytest.raises(ValidationError) as exc_info:
        DigestField().to_python(42)
    assert exc_info.value.code == "invalid_type"


def test_field_none_and_empty():
    field = WalletField()
    assert field.to_python(None) is None
    assert field.to_python("") is None
    assert field.get_prep_value(None) is None
    assert field.get_prep_value("") is None
    assert field.from_db_value(None, None, None) is None


def test_field_accepts_bytes():
    field = WalletField()
    assert field.to_python(bytes.fromhex("1e" * 20)) == WALLET
    assert field.get_prep_value(memoryview(bytes.fromhex("1e" * 20))) == bytes.fromhex("1e" * 20)


def test_formfield_is_charfield():
    formfield = DigestField().formfield()
    assert isinstance(formfield, CharField)
    assert formfield.max_length == 66
