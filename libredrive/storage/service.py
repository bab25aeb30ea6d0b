"""
Secure Storage Service
======================

Composes key derivation, chunked encryption, sharding and persistence
into the public storage operations.

Upload Flow:
1. Derive a content-addressed file id (content + name + timestamp)
2. Encrypt into a container (chunks, Merkle root, whole-file hash)
3. Cut the container into data + parity shards
4. Persist every shard under its shard id
5. Persist FileMetadata (status: encrypted)
6. Mirror a listing record into the file index

Download reverses the flow and verifies the final hash against metadata
before returning anything.

Known gap:
    Upload is not transactional. If it fails after some shards were
    written but before metadata commits, those shards are orphaned. The
    failure is logged with the orphaned shard slots and re-raised;
    delete_file on the same id removes them.

Concurrency:
    Writers to the same file id (upload, delete) are serialized by a
    per-id lock. Distinct ids share no mutable state.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from libredrive.core.config import StorageConfig
from libredrive.core.crypto.hashing import digests_equal, sha256_hex
from libredrive.core.crypto.kdf import FileKeyDeriver, MasterKeyProvider
from libredrive.core.errors import (
    CorruptMetadata,
    CorruptShard,
    FileNotReady,
    IntegrityViolation,
    MetadataNotFound,
)
from libredrive.core.file_ops.decrypt import FileDecryptor
from libredrive.core.file_ops.encrypt import FileEncryptor
from libredrive.core.logging import short_id
from libredrive.core.result import Result, attempt
from libredrive.storage.index import FileIndex, FileIndexRecord
from libredrive.storage.locks import KeyedLock
from libredrive.storage.metadata import (
    FileMetadata,
    FileStatus,
    IntegrityReport,
    StorageStats,
)
from libredrive.storage.shards import Shard, ShardManager, make_shard_id
from libredrive.storage.stores import KeyValueStore, SqliteStore
from libredrive.utils.mime import guess_mime_type
from libredrive.utils.validators import validate_file_name

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "libredrive.db"


def generate_file_id(data: bytes, file_name: str, timestamp: datetime) -> str:
    """Content-addressed file id: SHA-256 of content, name and timestamp."""
    return sha256_hex(data + file_name.encode("utf-8") + timestamp.isoformat().encode("utf-8"))


def _advance(current: FileStatus, target: FileStatus) -> FileStatus:
    if not current.can_transition_to(target):
        raise RuntimeError(f"Illegal status transition {current.value} -> {target.value}")
    return target


class SecureStorageService:
    """
    Encrypted, sharded file storage over key-value stores.

    Usage:
        service = SecureStorageService(
            key_provider=StaticKeyProvider(master_key),
            shard_store=InMemoryStore(),
            metadata_store=InMemoryStore(),
        )
        metadata = service.upload_file(data, "report.pdf")
        data = service.download_file(metadata.file_id)

    Every operation either succeeds with verified data or raises a
    LibreDriveError subclass. The try_* variants return Ok/Err instead.
    """

    def __init__(
        self,
        key_provider: MasterKeyProvider,
        shard_store: KeyValueStore,
        metadata_store: KeyValueStore,
        file_index: Optional[FileIndex] = None,
        config: Optional[StorageConfig] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._config = config or StorageConfig()
        self._shard_store = shard_store
        self._metadata_store = metadata_store
        self._file_index = file_index
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._locks = KeyedLock()

        deriver = FileKeyDeriver(key_provider, info=self._config.crypto.key_info)
        workers = self._config.performance.max_workers
        self._encryptor = FileEncryptor(
            deriver,
            chunk_size=self._config.crypto.chunk_size,
            max_workers=workers,
            clock=self._clock,
        )
        self._decryptor = FileDecryptor(deriver, max_workers=workers)
        self._shards = ShardManager(
            data_shards=self._config.erasure.data_shards,
            parity_shards=self._config.erasure.parity_shards,
        )

    @classmethod
    def from_config(
        cls,
        config: StorageConfig,
        key_provider: MasterKeyProvider,
    ) -> "SecureStorageService":
        """
        Build a service with SQLite-backed stores under the data directory.

        Shards, metadata and the file index live in separate tables of
        one database file.
        """
        config.ensure_directories()
        db_path = config.paths.data_dir / DATABASE_FILENAME
        return cls(
            key_provider=key_provider,
            shard_store=SqliteStore(db_path, table="shards"),
            metadata_store=SqliteStore(db_path, table="metadata"),
            file_index=FileIndex(SqliteStore(db_path, table="file_index")),
            config=config,
        )

    @property
    def config(self) -> StorageConfig:
        return self._config

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def upload_file(
        self,
        data: bytes,
        file_name: str,
        folder_id: Optional[str] = None,
    ) -> FileMetadata:
        """
        Encrypt, shard and persist a file.

        Args:
            data: File contents
            file_name: Display name (also feeds the file id)
            folder_id: Optional folder for the index record

        Returns:
            The persisted FileMetadata

        Raises:
            KeyUnavailable: If no master key is available
            ValidationError: If file_name is unusable
        """
        validate_file_name(file_name)
        created_at = self._clock()
        file_id = generate_file_id(data, file_name, created_at)
        status = FileStatus.PENDING

        with self._locks.hold(file_id):
            written: list[str] = []
            try:
                status = _advance(status, FileStatus.ENCRYPTING)
                container = self._encryptor.encrypt_file(data, file_id)
                shards = self._shards.create_shards(container)

                for shard in shards:
                    self._shard_store.put(shard.shard_id, shard.to_bytes())
                    written.append(shard.shard_id)

                status = _advance(status, FileStatus.ENCRYPTED)
                metadata = FileMetadata(
                    file_id=file_id,
                    file_name=file_name,
                    original_size=len(data),
                    encrypted_size=sum(len(s.data) for s in shards if not s.is_parity_shard),
                    merkle_root=container.merkle_root,
                    original_hash=container.original_hash,
                    shard_ids=tuple(s.shard_id for s in shards),
                    total_shards=len(shards),
                    data_shards=self._shards.data_shards,
                    parity_shards=self._shards.parity_shards,
                    folder_id=folder_id,
                    created_at=created_at,
                    status=status,
                )
                self._metadata_store.put(file_id, metadata.to_json().encode("utf-8"))
            except Exception:
                status = _advance(status, FileStatus.ERROR)
                logger.error(
                    "Upload of %s failed (status=%s, %d shards written)",
                    short_id(file_id), status.value, len(written),
                )
                if written:
                    logger.error(
                        "Orphaned shards of %s at slots: %s",
                        short_id(file_id), ", ".join(s.rsplit("_", 1)[1] for s in written),
                    )
                raise

        if self._file_index is not None:
            self._file_index.save(FileIndexRecord(
                id=file_id,
                name=file_name,
                size=len(data),
                mime_type=guess_mime_type(file_name),
                created_at=created_at,
                modified_at=created_at,
                folder_id=folder_id,
                status=metadata.status,
            ))

        logger.info(
            "Stored %s (%d bytes, %d shards)",
            short_id(file_id), metadata.original_size, metadata.total_shards,
        )
        return metadata

    def download_file(self, file_id: str) -> bytes:
        """
        Rebuild, decrypt and verify a stored file.

        Raises:
            MetadataNotFound: If the file id is unknown
            FileNotReady: If the file never reached the encrypted state
            NotEnoughShards: If a data shard is missing or corrupt
            CorruptShard: If a stored data shard record cannot be decoded
            AuthenticationFailure: If a chunk fails tag verification
            IntegrityViolation: If any plaintext hash check fails
        """
        metadata = self.get_metadata(file_id)

        match metadata.status:
            case FileStatus.ENCRYPTED | FileStatus.DISTRIBUTING | FileStatus.DISTRIBUTED:
                pass
            case FileStatus.PENDING | FileStatus.ENCRYPTING | FileStatus.ERROR:
                raise FileNotReady(f"File {short_id(file_id)} is {metadata.status.value}")

        # Parity shards are never read; only data slots feed reconstruction
        data_ids = metadata.shard_ids[:metadata.data_shards]
        shards = [self._load_shard(shard_id) for shard_id in data_ids]
        manager = ShardManager(metadata.data_shards, metadata.parity_shards)
        container = manager.reconstruct_from_shards(shards, file_id=file_id)

        if container.file_id != file_id:
            raise IntegrityViolation("Reconstructed container belongs to another file")
        if not digests_equal(container.merkle_root, metadata.merkle_root):
            raise IntegrityViolation("Merkle root does not match metadata")

        plaintext = self._decryptor.decrypt_file(container)

        if not digests_equal(sha256_hex(plaintext), metadata.original_hash):
            raise IntegrityViolation("File integrity verification failed")

        logger.info("Retrieved %s (%d bytes)", short_id(file_id), len(plaintext))
        return plaintext

    def delete_file(self, file_id: str) -> bool:
        """
        Best-effort removal of a file's shards, metadata and index record.

        When metadata is missing or unreadable, shards are located by their
        id prefix instead, which also clears orphans of a failed upload.

        Returns:
            True if a metadata record existed
        """
        with self._locks.hold(file_id):
            raw = self._metadata_store.get(file_id)
            shard_ids: list[str] = []
            if raw is not None:
                try:
                    shard_ids = list(FileMetadata.from_json(raw).shard_ids)
                except CorruptMetadata:
                    logger.warning("Metadata for %s unreadable; deleting by prefix", short_id(file_id))
            if not shard_ids:
                prefix = make_shard_id(file_id, 0)[:-1]
                shard_ids = [key for key in self._shard_store.keys() if key.startswith(prefix)]

            removed = sum(1 for shard_id in shard_ids if self._shard_store.delete(shard_id))
            self._metadata_store.delete(file_id)
            if self._file_index is not None:
                self._file_index.delete(file_id)

        logger.info("Deleted %s (%d shards removed)", short_id(file_id), removed)
        return raw is not None

    def verify_file_integrity(self, file_id: str) -> IntegrityReport:
        """
        Check every shard's content hash without decrypting.

        The report is valid when all data slots are present and intact,
        i.e. when download_file can rebuild the container.

        Raises:
            MetadataNotFound: If the file id is unknown
        """
        metadata = self.get_metadata(file_id)

        errors: list[str] = []
        shards_valid = 0
        intact_data_slots = 0

        for position, shard_id in enumerate(metadata.shard_ids):
            try:
                shard = self._load_shard(shard_id)
            except CorruptShard:
                errors.append(f"Shard unreadable: {shard_id}")
                continue

            if shard is None:
                errors.append(f"Shard missing: {shard_id}")
                continue
            if not shard.verify():
                errors.append(f"Shard corrupted: {shard_id}")
                continue

            shards_valid += 1
            if position < metadata.data_shards:
                intact_data_slots += 1

        report = IntegrityReport(
            file_id=file_id,
            is_valid=intact_data_slots == metadata.data_shards,
            errors=tuple(errors),
            shards_checked=len(metadata.shard_ids),
            shards_valid=shards_valid,
        )
        if errors:
            logger.warning(
                "Integrity check of %s: %d/%d shards valid, recoverable=%s",
                short_id(file_id), shards_valid, report.shards_checked, report.is_valid,
            )
        return report

    def get_stats(self) -> StorageStats:
        """
        Aggregate sizes and shard counts over every stored file.

        The overhead compares serialized container sizes with plaintext, so
        it includes container framing, nonces and GCM tags.
        """
        files = self.list_files()

        total_original = sum(m.original_size for m in files)
        total_encrypted = sum(m.encrypted_size for m in files)

        return StorageStats(
            total_files=len(files),
            total_original_size=total_original,
            total_encrypted_size=total_encrypted,
            total_shards=sum(m.total_shards for m in files),
            encryption_overhead=(
                (total_encrypted - total_original) / total_original if total_original > 0 else 0.0
            ),
        )

    def get_metadata(self, file_id: str) -> FileMetadata:
        """
        Load the metadata record for a file.

        Raises:
            MetadataNotFound: If no record exists
            CorruptMetadata: If the record cannot be decoded
        """
        raw = self._metadata_store.get(file_id)
        if raw is None:
            raise MetadataNotFound(file_id)
        return FileMetadata.from_json(raw)

    def list_files(self, folder_id: Optional[str] = None) -> list[FileMetadata]:
        """List stored files, newest first, optionally within one folder."""
        files = [self.get_metadata(key) for key in self._metadata_store.keys()]
        if folder_id is not None:
            files = [m for m in files if m.folder_id == folder_id]
        files.sort(key=lambda m: m.created_at, reverse=True)
        return files

    # ------------------------------------------------------------------
    # Result-returning variants
    # ------------------------------------------------------------------

    def try_upload_file(self, data: bytes, file_name: str, folder_id: Optional[str] = None) -> Result[FileMetadata]:
        return attempt(self.upload_file, data, file_name, folder_id)

    def try_download_file(self, file_id: str) -> Result[bytes]:
        return attempt(self.download_file, file_id)

    def try_delete_file(self, file_id: str) -> Result[bool]:
        return attempt(self.delete_file, file_id)

    def try_verify_file_integrity(self, file_id: str) -> Result[IntegrityReport]:
        return attempt(self.verify_file_integrity, file_id)

    def try_get_stats(self) -> Result[StorageStats]:
        return attempt(self.get_stats)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load_shard(self, shard_id: str) -> Optional[Shard]:
        raw = self._shard_store.get(shard_id)
        if raw is None:
            return None
        shard = Shard.from_bytes(raw)
        if shard.shard_id != shard_id:
            raise CorruptShard(f"Shard record stored under wrong key: {shard_id}")
        return shard
