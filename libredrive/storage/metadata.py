"""
File Metadata and Reports
=========================

The durable record tying a file id to its shard set, its lifecycle
status, and the report/stat types returned by the storage service.

Metadata is stored as versioned JSON:
    {"version": 1, "fileId": ..., "fileName": ..., ..., "status": "encrypted"}
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Final, Optional

from libredrive.core.errors import CorruptMetadata

METADATA_FORMAT_VERSION: Final[int] = 1


class FileStatus(Enum):
    """Lifecycle of a stored file."""

    PENDING = "pending"
    ENCRYPTING = "encrypting"
    ENCRYPTED = "encrypted"
    DISTRIBUTING = "distributing"
    DISTRIBUTED = "distributed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return not _TRANSITIONS[self]

    def can_transition_to(self, target: "FileStatus") -> bool:
        return target in _TRANSITIONS[self]


# ERROR is reachable from every non-terminal state
_TRANSITIONS: Final[dict[FileStatus, frozenset[FileStatus]]] = {
    FileStatus.PENDING: frozenset({FileStatus.ENCRYPTING, FileStatus.ERROR}),
    FileStatus.ENCRYPTING: frozenset({FileStatus.ENCRYPTED, FileStatus.ERROR}),
    FileStatus.ENCRYPTED: frozenset({FileStatus.DISTRIBUTING, FileStatus.ERROR}),
    FileStatus.DISTRIBUTING: frozenset({FileStatus.DISTRIBUTED, FileStatus.ERROR}),
    FileStatus.DISTRIBUTED: frozenset({FileStatus.ERROR}),
    FileStatus.ERROR: frozenset(),
}


@dataclass(frozen=True, slots=True)
class FileMetadata:
    """Everything needed to locate, rebuild and verify one stored file."""

    file_id: str
    file_name: str
    original_size: int
    encrypted_size: int
    merkle_root: str
    original_hash: str
    shard_ids: tuple[str, ...]
    total_shards: int
    data_shards: int
    parity_shards: int
    created_at: datetime
    status: FileStatus
    folder_id: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps({
            "version": METADATA_FORMAT_VERSION,
            "fileId": self.file_id,
            "fileName": self.file_name,
            "originalSize": self.original_size,
            "encryptedSize": self.encrypted_size,
            "merkleRoot": self.merkle_root,
            "originalHash": self.original_hash,
            "shardIds": list(self.shard_ids),
            "totalShards": self.total_shards,
            "dataShards": self.data_shards,
            "parityShards": self.parity_shards,
            "folderId": self.folder_id,
            "createdAt": self.created_at.isoformat(),
            "status": self.status.value,
        }, ensure_ascii=False, sort_keys=True)

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "FileMetadata":
        """
        Deserialize and schema-check a metadata record.

        Raises:
            CorruptMetadata: If the record is malformed or from an
                unsupported version
        """
        data = load_json_object(json_str)

        version = require(data, "version", int)
        if version != METADATA_FORMAT_VERSION:
            raise CorruptMetadata(f"Unsupported metadata version: {version}")

        shard_ids = require(data, "shardIds", list)
        if not all(isinstance(s, str) for s in shard_ids):
            raise CorruptMetadata("shardIds must be a list of strings")

        metadata = cls(
            file_id=require(data, "fileId", str),
            file_name=require(data, "fileName", str),
            original_size=require(data, "originalSize", int),
            encrypted_size=require(data, "encryptedSize", int),
            merkle_root=require(data, "merkleRoot", str),
            original_hash=require(data, "originalHash", str),
            shard_ids=tuple(shard_ids),
            total_shards=require(data, "totalShards", int),
            data_shards=require(data, "dataShards", int),
            parity_shards=require(data, "parityShards", int),
            folder_id=require(data, "folderId", str, optional=True),
            created_at=parse_timestamp(require(data, "createdAt", str)),
            status=parse_status(require(data, "status", str)),
        )

        if metadata.total_shards != len(metadata.shard_ids):
            raise CorruptMetadata("totalShards does not match shardIds")
        if metadata.data_shards <= 0 or metadata.parity_shards <= 0:
            raise CorruptMetadata("dataShards and parityShards must be positive")
        if metadata.data_shards + metadata.parity_shards != metadata.total_shards:
            raise CorruptMetadata("dataShards + parityShards does not match totalShards")
        return metadata

    def __repr__(self) -> str:
        return f"FileMetadata(file_name={self.file_name!r}, size={self.original_size}, status={self.status.value})"


@dataclass(frozen=True, slots=True)
class IntegrityReport:
    """
    Outcome of a shard-level integrity check.

    ``is_valid`` means the file is recoverable: every data slot is present
    and intact. ``errors`` lists every problem found, parity included.
    """

    file_id: str
    is_valid: bool
    errors: tuple[str, ...] = field(default_factory=tuple)
    shards_checked: int = 0
    shards_valid: int = 0


@dataclass(frozen=True, slots=True)
class StorageStats:
    """Aggregate sizes over every stored file."""

    total_files: int
    total_original_size: int
    total_encrypted_size: int
    total_shards: int
    encryption_overhead: float


def load_json_object(json_str: str | bytes) -> dict:
    try:
        data = json.loads(json_str)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CorruptMetadata("Record is not valid JSON") from e
    if not isinstance(data, dict):
        raise CorruptMetadata("Record must be a JSON object")
    return data


def require(mapping: dict, key: str, expected: type, optional: bool = False) -> Any:
    """Fetch a key and check its JSON type; bool never passes as int."""
    if key not in mapping:
        raise CorruptMetadata(f"Missing field: {key}")
    value = mapping[key]
    if value is None and optional:
        return None
    if not isinstance(value, expected) or (expected is int and isinstance(value, bool)):
        raise CorruptMetadata(f"Field {key} must be of type {expected.__name__}")
    return value


def parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise CorruptMetadata(f"Invalid timestamp: {value!r}") from e


def parse_status(value: str) -> FileStatus:
    try:
        return FileStatus(value)
    except ValueError as e:
        raise CorruptMetadata(f"Unknown status: {value!r}") from e
