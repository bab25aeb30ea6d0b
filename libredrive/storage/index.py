"""
General File Index
==================

Lightweight listing records mirrored from the storage service for
browsing and search. The index never holds key material, hashes or shard
locations; FileMetadata remains the authoritative record.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from libredrive.storage.metadata import (
    FileStatus,
    load_json_object,
    parse_status,
    parse_timestamp,
    require,
)
from libredrive.storage.stores import KeyValueStore


@dataclass(frozen=True, slots=True)
class FileIndexRecord:
    id: str
    name: str
    size: int
    mime_type: str
    created_at: datetime
    modified_at: datetime
    status: FileStatus
    folder_id: Optional[str] = None
    path: str = ""

    def to_json(self) -> str:
        return json.dumps({
            "id": self.id,
            "name": self.name,
            "path": self.path,
            "size": self.size,
            "mimeType": self.mime_type,
            "createdAt": self.created_at.isoformat(),
            "modifiedAt": self.modified_at.isoformat(),
            "folderId": self.folder_id,
            "status": self.status.value,
        }, ensure_ascii=False, sort_keys=True)

    @classmethod
    def from_json(cls, json_str: str | bytes) -> "FileIndexRecord":
        data = load_json_object(json_str)
        return cls(
            id=require(data, "id", str),
            name=require(data, "name", str),
            path=require(data, "path", str),
            size=require(data, "size", int),
            mime_type=require(data, "mimeType", str),
            created_at=parse_timestamp(require(data, "createdAt", str)),
            modified_at=parse_timestamp(require(data, "modifiedAt", str)),
            folder_id=require(data, "folderId", str, optional=True),
            status=parse_status(require(data, "status", str)),
        )


class FileIndex:
    """File index persisted as JSON records in a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def save(self, record: FileIndexRecord) -> None:
        self._store.put(record.id, record.to_json().encode("utf-8"))

    def get(self, file_id: str) -> Optional[FileIndexRecord]:
        raw = self._store.get(file_id)
        return FileIndexRecord.from_json(raw) if raw is not None else None

    def delete(self, file_id: str) -> bool:
        return self._store.delete(file_id)

    def list_records(self, folder_id: Optional[str] = None) -> list[FileIndexRecord]:
        """
        List records, newest first.

        Args:
            folder_id: Restrict to one folder; None lists every record
        """
        records = []
        for key in self._store.keys():
            record = self.get(key)
            if record is None:
                continue
            if folder_id is not None and record.folder_id != folder_id:
                continue
            records.append(record)
        records.sort(key=lambda r: r.modified_at, reverse=True)
        return records
