"""Syntactic validation of caller-supplied identifiers, hashes, wallets and names."""

import re

from cert_hub.exceptions import InvalidInputError

# Constants for better maintainability
HASH_PREFIX = "0x"
HASH_HEX_LENGTH = 64
WALLET_HEX_LENGTH = 40
MAX_NAME_LENGTH = 200
MAX_TITLE_LENGTH = 300
MAX_FILENAME_LENGTH = 255
MAX_CONTENT_REF_LENGTH = 512
MAX_WEBSITE_LENGTH = 2048

PRIMARY_ID_PATTERN = re.compile(r"^[0-9]{12}$")
SECONDARY_ID_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
DIGEST_PATTERN = re.compile(r"^0x[0-9a-f]{64}$")
WALLET_PATTERN = re.compile(r"^0x[0-9a-f]{40}$")


def normalize_hex(value, field, hex_length):
    # type: (object, str, int) -> str
    """
    Normalize a `0x`-prefixed hex string to lower case and check its length.

    :param value: Candidate value
    :param field: Field name used in error details
    :param hex_length: Required number of hex characters after the prefix
    :return: Lower-case `0x`-prefixed string
    :raises InvalidInputError: If value is not a string of the expected shape
    """
    if not isinstance(value, str):
        raise InvalidInputError(f"{field} must be a string", field=field)

    candidate = value.strip().lower()
    if not candidate.startswith(HASH_PREFIX):
        raise InvalidInputError(f"{field} must start with '{HASH_PREFIX}'", field=field)

    body = candidate[len(HASH_PREFIX) :]
    if len(body) != hex_length:
        raise InvalidInputError(
            f"{field} must have {hex_length} hex characters after the prefix, got {len(body)}", field=field
        )

    if not all(c in "0123456789abcdef" for c in body):
        raise InvalidInputError(f"{field} contains non-hex characters", field=field)

    return candidate


def validate_content_hash(value, field="content_hash"):
    # type: (object, str) -> str
    """
    Validate and normalize a document content hash (`0x` + 64 hex).

    :param value: The content hash as supplied by the caller
    :param field: Field name used in error details
    :return: Canonical lower-case content hash
    :raises InvalidInputError: If the hash is malformed
    """
    return normalize_hex(value, field, HASH_HEX_LENGTH)


def validate_identity_key(value, field="identity_key"):
    # type: (object, str) -> str
    """Validate and normalize a derived identity key (`0x` + 64 hex)."""
    return normalize_hex(value, field, HASH_HEX_LENGTH)


def validate_wallet(value, field="wallet_address"):
    # type: (object, str) -> str
    """
    Validate and normalize a wallet address (`0x` + 40 hex).

    Addresses are compared case-insensitively, so the checksum casing is dropped.

    :param value: The wallet address
    :param field: Field name used in error details
    :return: Lower-case wallet address
    :raises InvalidInputError: If the address is malformed
    """
    return normalize_hex(value, field, WALLET_HEX_LENGTH)


def validate_primary_id(raw_number):
    # type: (object) -> str
    """
    Check the shape of a 12-digit numeric identity number.

    :param raw_number: Raw identity number
    :return: Stripped identity number
    :raises InvalidInputError: If the number is not exactly 12 digits
    """
    if not isinstance(raw_number, str):
        raise InvalidInputError("Identity number must be a string", field="identity_number")

    candidate = raw_number.strip()
    if not PRIMARY_ID_PATTERN.match(candidate):
        # Never echo the raw value back
        raise InvalidInputError("Identity number must be exactly 12 digits", field="identity_number")
    return candidate


def validate_secondary_id(raw_id):
    # type: (object) -> str
    """
    Check the shape of a 10-character secondary identifier (5 letters, 4 digits, 1 letter).

    :param raw_id: Raw secondary identifier, any letter case
    :return: Stripped, upper-cased identifier
    :raises InvalidInputError: If the identifier does not match the pattern
    """
    if not isinstance(raw_id, str):
        raise InvalidInputError("Secondary identifier must be a string", field="secondary_id")

    candidate = raw_id.strip().upper()
    if not SECONDARY_ID_PATTERN.match(candidate):
        raise InvalidInputError(
            "Secondary identifier must be 5 letters, 4 digits and 1 letter", field="secondary_id"
        )
    return candidate


def validate_text(value, field, max_length, required=True):
    # type: (object, str, int, bool) -> str
    """
    Validate a free-text field (names, titles).

    :param value: Candidate value
    :param field: Field name used in error details
    :param max_length: Maximum length after stripping
    :param required: Whether an empty value is rejected
    :return: Stripped text
    :raises InvalidInputError: If the value is missing, not a string or too long
    """
    if value is None:
        value = ""
    if not isinstance(value, str):
        raise InvalidInputError(f"{field} must be a string", field=field)

    text = value.strip()
    if required and not text:
        raise InvalidInputError(f"{field} is required", field=field)
    if len(text) > max_length:
        raise InvalidInputError(f"{field} exceeds maximum length of {max_length}", field=field)
    return text


def validate_name(value, field="name"):
    # type: (object, str) -> str
    """Validate a display name for an identity or institution."""
    return validate_text(value, field, MAX_NAME_LENGTH)


def validate_title(value):
    # type: (object) -> str
    """Validate a certificate (course) title."""
    return validate_text(value, "title", MAX_TITLE_LENGTH)


def validate_website(value):
    # type: (object) -> str
    """Validate an optional institution website (http/https only)."""
    website = validate_text(value, "website", MAX_WEBSITE_LENGTH, required=False)
    if website and not website.lower().startswith(("http://", "https://")):
        raise InvalidInputError("website must use http or https", field="website")
    return website
