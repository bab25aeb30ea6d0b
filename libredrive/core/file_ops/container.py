"""
Encrypted File Container
========================

The self-describing artifact produced by chunked encryption.

Binary format (version 1):
    HEADER (10 bytes):
        - MAGIC: 4 bytes ("LDEC")
        - VERSION: 2 bytes (big-endian)
        - HEADER_LEN: 4 bytes (big-endian, length of the JSON header)
    JSON_HEADER: UTF-8 JSON, keys sorted, no whitespace
        {
          "fileId", "merkleRoot", "originalHash", "originalSize",
          "chunkSize", "createdAt",
          "chunks": [{"index", "originalHash", "length"}, ...]
        }
    CHUNK_BLOBS: EncryptedData serializations in chunk-table order

Encoding is deterministic: decoding and re-encoding reproduces the input
byte for byte.
"""

from __future__ import annotations

import json
import struct
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Final

from libredrive.core.crypto.aes_gcm import EncryptedData
from libredrive.core.errors import CorruptContainer

MAGIC_BYTES: Final[bytes] = b"LDEC"  # LibreDrive Encrypted Container
CONTAINER_FORMAT_VERSION: Final[int] = 1

_PREAMBLE: Final[struct.Struct] = struct.Struct(">4sHI")


@dataclass(frozen=True, slots=True)
class EncryptedChunk:
    """One encrypted chunk plus the hash of its plaintext."""

    index: int
    data: EncryptedData
    original_hash: str


@dataclass(frozen=True, slots=True)
class EncryptedFileContainer:
    """
    Ordered encrypted chunks of one file with their integrity summary.

    ``merkle_root`` is computed over ``chunks[i].original_hash`` in index
    order; ``original_hash`` is the SHA-256 of the whole plaintext.
    """

    file_id: str
    chunks: tuple[EncryptedChunk, ...]
    merkle_root: str
    original_hash: str
    original_size: int
    chunk_size: int
    created_at: datetime

    @property
    def chunk_hashes(self) -> list[str]:
        return [chunk.original_hash for chunk in self.chunks]

    def to_bytes(self) -> bytes:
        """Serialize the container to its versioned binary form."""
        blobs = [chunk.data.to_bytes() for chunk in self.chunks]
        header = {
            "fileId": self.file_id,
            "merkleRoot": self.merkle_root,
            "originalHash": self.original_hash,
            "originalSize": self.original_size,
            "chunkSize": self.chunk_size,
            "createdAt": self.created_at.isoformat(),
            "chunks": [
                {"index": chunk.index, "originalHash": chunk.original_hash, "length": len(blob)}
                for chunk, blob in zip(self.chunks, blobs)
            ],
        }
        header_bytes = json.dumps(header, sort_keys=True, separators=(",", ":")).encode("utf-8")

        return b"".join([
            _PREAMBLE.pack(MAGIC_BYTES, CONTAINER_FORMAT_VERSION, len(header_bytes)),
            header_bytes,
            *blobs,
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedFileContainer":
        """
        Deserialize and schema-check a container.

        Raises:
            CorruptContainer: If the data is malformed in any way
        """
        if len(data) < _PREAMBLE.size:
            raise CorruptContainer("Data too short for container header")

        magic, version, header_len = _PREAMBLE.unpack_from(data, 0)
        if magic != MAGIC_BYTES:
            raise CorruptContainer("Invalid container format (bad magic bytes)")
        if version != CONTAINER_FORMAT_VERSION:
            raise CorruptContainer(f"Unsupported container format version: {version}")

        header_start = _PREAMBLE.size
        header_end = header_start + header_len
        if len(data) < header_end:
            raise CorruptContainer("Data truncated (incomplete header)")

        try:
            header = json.loads(data[header_start:header_end].decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptContainer("Container header is not valid JSON") from e
        if not isinstance(header, dict):
            raise CorruptContainer("Container header must be an object")

        file_id = _require(header, "fileId", str)
        merkle_root = _require(header, "merkleRoot", str)
        original_hash = _require(header, "originalHash", str)
        original_size = _require(header, "originalSize", int)
        chunk_size = _require(header, "chunkSize", int)
        created_at = _parse_timestamp(_require(header, "createdAt", str))
        table = _require(header, "chunks", list)

        if original_size < 0 or chunk_size <= 0:
            raise CorruptContainer("Invalid size fields in container header")

        chunks = []
        offset = header_end
        for position, entry in enumerate(table):
            if not isinstance(entry, dict):
                raise CorruptContainer(f"Chunk table entry {position} must be an object")
            index = _require(entry, "index", int)
            if index != position:
                raise CorruptContainer(f"Chunk table out of order at position {position}")
            length = _require(entry, "length", int)
            if length < 0 or offset + length > len(data):
                raise CorruptContainer(f"Chunk {index} overruns container data")

            chunks.append(EncryptedChunk(
                index=index,
                data=EncryptedData.from_bytes(data[offset:offset + length]),
                original_hash=_require(entry, "originalHash", str),
            ))
            offset += length

        if offset != len(data):
            raise CorruptContainer("Trailing data after last chunk")

        return cls(
            file_id=file_id,
            chunks=tuple(chunks),
            merkle_root=merkle_root,
            original_hash=original_hash,
            original_size=original_size,
            chunk_size=chunk_size,
            created_at=created_at,
        )

    def __repr__(self) -> str:
        return f"EncryptedFileContainer(file_id={self.file_id[:12]!r}, chunks={len(self.chunks)})"


def _require(mapping: dict, key: str, expected: type) -> Any:
    """Fetch a key and check its JSON type (bool is not accepted as int)."""
    if key not in mapping:
        raise CorruptContainer(f"Missing field: {key}")
    value = mapping[key]
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise CorruptContainer(f"Field {key} must be of type {expected.__name__}")
    return value


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise CorruptContainer(f"Invalid timestamp: {value!r}") from e
