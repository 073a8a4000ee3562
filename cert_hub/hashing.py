"""
Deterministic digests for identity numbers and documents.

Identity keys and content hashes are both unsalted SHA-256 rendered as
`0x` + 64 lower-case hex characters, the same representation the ledger
contract stores, so a locally computed value compares bit-for-bit with
the on-chain one.
"""

import hashlib

from cert_hub.validators import HASH_PREFIX, validate_primary_id, validate_secondary_id

CHUNK_SIZE = 64 * 1024


def _digest(data):
    # type: (bytes) -> str
    return HASH_PREFIX + hashlib.sha256(data).hexdigest()


class IdentityHasher:
    """
    One-way mapping from raw identity numbers to opaque identity keys.

    Stateless. No salt: the same raw number must map to the same key across
    calls and processes so lookup-by-number keeps working.
    """

    def derive(self, raw_number):
        # type: (str) -> str
        """
        Derive the identity key for a 12-digit identity number.

        :param raw_number: Raw 12-digit identity number
        :return: `0x`-prefixed SHA-256 hex digest
        :raises InvalidInputError: If the number fails the format check
        """
        return _digest(validate_primary_id(raw_number).encode("ascii"))

    def derive_secondary(self, raw_id):
        # type: (str) -> str
        """
        Derive the key for a 10-character secondary identifier.

        Letter case is normalized before hashing.
        """
        return _digest(validate_secondary_id(raw_id).encode("ascii"))

    def derive_pair(self, raw_number, raw_secondary=None):
        # type: (str, str|None) -> tuple[str, str|None]
        """
        Derive the primary key and, when given, the secondary key.

        Both inputs are validated before anything is hashed.

        :return: Tuple of (primary_key, secondary_key or None)
        """
        primary = validate_primary_id(raw_number)
        secondary = validate_secondary_id(raw_secondary) if raw_secondary else None
        return (
            _digest(primary.encode("ascii")),
            _digest(secondary.encode("ascii")) if secondary else None,
        )


def content_hash(document):
    # type: (bytes|bytearray|memoryview|object) -> str
    """
    Compute the content hash of a document.

    :param document: Raw bytes or a binary file-like object (read in chunks from its current position)
    :return: `0x`-prefixed SHA-256 hex digest
    :raises TypeError: If the document is neither bytes nor a readable binary stream
    """
    if isinstance(document, bytes | bytearray | memoryview):
        return _digest(bytes(document))

    if not hasattr(document, "read"):
        raise TypeError(f"Expected bytes or a binary file object, got {type(document).__name__}")

    hasher = hashlib.sha256()
    while True:
        chunk = document.read(CHUNK_SIZE)
        if not chunk:
            break
        if isinstance(chunk, str):
            raise TypeError("Document stream must be opened in binary mode")
        hasher.update(chunk)
    return HASH_PREFIX + hasher.hexdigest()
