"""
Storage module - Sharding, persistence and the storage service.
"""

from libredrive.storage.index import FileIndex, FileIndexRecord
from libredrive.storage.metadata import FileMetadata, FileStatus, IntegrityReport, StorageStats
from libredrive.storage.service import SecureStorageService
from libredrive.storage.shards import Shard, ShardManager
from libredrive.storage.stores import InMemoryStore, KeyValueStore, SqliteStore

__all__ = [
    "FileIndex",
    "FileIndexRecord",
    "FileMetadata",
    "FileStatus",
    "IntegrityReport",
    "StorageStats",
    "SecureStorageService",
    "Shard",
    "ShardManager",
    "InMemoryStore",
    "KeyValueStore",
    "SqliteStore",
]
