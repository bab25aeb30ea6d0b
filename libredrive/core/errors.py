"""
LibreDrive Error Taxonomy
=========================

Every failure raised by the storage core is one of the classes below.

Lower layers raise the most precise class available; the storage service
propagates them unchanged. Third-party exceptions (InvalidTag, JSON and
struct decoding errors) never escape: they are re-raised as one of these
with the original attached as ``__cause__``.

Hierarchy:
    LibreDriveError
    ├── KeyUnavailable
    ├── AuthenticationFailure
    ├── IntegrityViolation
    ├── NotEnoughShards
    ├── MetadataNotFound
    ├── FileNotReady
    ├── CorruptMetadata
    └── CorruptShard
        └── CorruptContainer
"""

from __future__ import annotations

from typing import Optional


class LibreDriveError(Exception):
    """Base class for all storage core failures."""
    pass


class KeyUnavailable(LibreDriveError):
    """Raised when no usable master secret can be obtained."""
    pass


class AuthenticationFailure(LibreDriveError):
    """
    Raised when AEAD tag verification fails.

    Tampered ciphertext, a wrong key, or a corrupted nonce/tag all end up
    here. The cause is deliberately not distinguished.
    """
    pass


class IntegrityViolation(LibreDriveError):
    """
    Raised when a recomputed plaintext hash does not match its record.

    Attributes:
        chunk_index: Index of the offending chunk, or None for file-level
            mismatches (whole-file hash, size, Merkle root).
    """

    def __init__(self, message: str, chunk_index: Optional[int] = None) -> None:
        super().__init__(message)
        self.chunk_index = chunk_index


class NotEnoughShards(LibreDriveError):
    """Raised when the required data-shard slots are not all available."""

    def __init__(self, available: int, required: int) -> None:
        super().__init__(f"Not enough shards: have {available}, need {required}")
        self.available = available
        self.required = required


class MetadataNotFound(LibreDriveError):
    """Raised when no metadata record exists for a file id."""

    def __init__(self, file_id: str) -> None:
        super().__init__(f"File not found: {file_id}")
        self.file_id = file_id


class CorruptMetadata(LibreDriveError):
    """Raised when a stored metadata or index record cannot be decoded."""
    pass


class CorruptShard(LibreDriveError):
    """Raised when a stored shard record cannot be decoded."""
    pass


class CorruptContainer(CorruptShard):
    """Raised when reassembled shard data does not decode to a container."""
    pass


class FileNotReady(LibreDriveError):
    """Raised when a file's status says its shard set is not complete."""
    pass
