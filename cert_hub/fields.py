import binascii

from django.core.exceptions import ValidationError
from django.db import models
from django.forms import CharField


class SequenceField(models.AutoField):
    """
    Integer primary key backed by the SQLite rowid.

    Without AUTOINCREMENT a new row takes ``max(rowid) + 1``, so a rolled back
    insert frees its number again and committed events stay gapless.
    """

    description = "Gapless rowid primary key"

    def db_type(self, connection):
        # type: (object) -> str
        return "INTEGER"

    def db_type_suffix(self, connection):
        # type: (object) -> str
        """No AUTOINCREMENT suffix, the rowid alone assigns the sequence."""
        return ""


class PrefixedHexField(models.BinaryField):
    """
    Store `0x`-prefixed hex strings as fixed-length binary, cutting storage in half.

    Python side always sees the canonical lower-case `0x...` string, the database
    sees raw bytes. Subclasses fix the byte length.
    """

    description = "0x-prefixed hex string stored as binary"
    byte_length = 32

    def __init__(self, *args, **kwargs):
        # type: (*object, **object) -> None
        kwargs["max_length"] = self.byte_length
        kwargs.setdefault("editable", False)
        super().__init__(*args, **kwargs)

    def _to_bytes(self, value):
        # type: (str) -> bytes
        """Decode a `0x`-prefixed hex string to bytes of the configured length."""
        candidate = value.strip().lower()
        if not candidate.startswith("0x"):
            raise ValidationError("Hex value must start with '0x'", code="invalid_prefix")
        try:
            raw = binascii.unhexlify(candidate[2:])
        except binascii.Error as e:
            raise ValidationError(f"Invalid hex: {e}", code="invalid_hex") from e
        if len(raw) != self.byte_length:
            raise ValidationError(f"Value must be exactly {self.byte_length} bytes", code="invalid_length")
        return raw

    def to_python(self, value):
        # type: (object) -> str | None
        """Convert value to canonical `0x` hex string."""
        if value is None:
            return None

        if isinstance(value, str):
            if value == "":
                return None
            return "0x" + self._to_bytes(value).hex()

        if isinstance(value, bytes | bytearray | memoryview):
            raw = bytes(value)
            if len(raw) != self.byte_length:
                raise ValidationError(f"Value must be exactly {self.byte_length} bytes", code="invalid_length")
            return "0x" + raw.hex()

        raise ValidationError("Value must be bytes or a 0x hex string", code="invalid_type")

    def from_db_value(self, value, expression, connection):
        # type: (bytes | None, object, object) -> str | None
        """Convert database bytes to `0x` hex string."""
        if value is None:
            return None
        return "0x" + bytes(value).hex()

    def get_prep_value(self, value):
        # type: (object) -> bytes | None
        """Convert `0x` hex string to bytes for database storage."""
        if value is None or value == "":
            return None

        if isinstance(value, bytes | bytearray | memoryview):
            raw = bytes(value)
            if len(raw) != self.byte_length:
                raise ValidationError(f"Value must be exactly {self.byte_length} bytes", code="invalid_length")
            return raw

        if isinstance(value, str):
            return self._to_bytes(value)

        raise ValidationError("Value must be bytes or a 0x hex string", code="invalid_type")

    def value_to_string(self, obj):
        # type: (object) -> str | None
        """Convert field value to hex string for serialization."""
        value = self.value_from_object(obj)  # type: ignore[arg-type]
        if value is None:
            return None
        return self.to_python(value)

    def formfield(self, **kwargs):
        # type: (**object) -> CharField
        """Return a CharField for forms and admin interface."""
        defaults = {
            "form_class": CharField,
            "max_length": 2 + self.byte_length * 2,
        }  # type: dict[str, object]
        defaults.update(kwargs)
        return super(models.BinaryField, self).formfield(**defaults)  # type: ignore[return-value]


class DigestField(PrefixedHexField):
    """SHA-256 digest (content hash or identity key) stored as 32-byte binary."""

    description = "SHA-256 digest stored as 32-byte binary"
    byte_length = 32


class WalletField(PrefixedHexField):
    """EVM wallet address stored as 20-byte binary, compared case-insensitively."""

    description = "Wallet address stored as 20-byte binary"
    byte_length = 20
