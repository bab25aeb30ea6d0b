"""End-to-end tests for SecureStorageService."""

import dataclasses
import logging
import os
import threading
from datetime import datetime, timezone

import pytest

from libredrive.core.config import CryptoConfig, PerformanceConfig, StorageConfig
from libredrive.core.crypto.kdf import EnvironmentKeyProvider, StaticKeyProvider
from libredrive.core.errors import (
    AuthenticationFailure,
    CorruptMetadata,
    CorruptShard,
    FileNotReady,
    IntegrityViolation,
    KeyUnavailable,
    MetadataNotFound,
    NotEnoughShards,
)
from libredrive.core.result import Err, Ok
from libredrive.storage.index import FileIndex
from libredrive.storage.metadata import FileMetadata, FileStatus
from libredrive.storage.service import DATABASE_FILENAME, SecureStorageService
from libredrive.storage.shards import Shard
from libredrive.storage.stores import InMemoryStore
from libredrive.utils.validators import ValidationError

from conftest import StepClock


def _rewrite_metadata(metadata_store, metadata, **changes):
    updated = dataclasses.replace(metadata, **changes)
    metadata_store.put(metadata.file_id, updated.to_json().encode("utf-8"))
    return updated


class TestUploadDownload:

    def test_hello_world(self, service, shard_store, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")

        assert len(metadata.file_id) == 64
        assert metadata.total_shards == 14
        assert len(metadata.shard_ids) == 14
        assert metadata.status == FileStatus.ENCRYPTED
        assert metadata.original_size == 11
        assert len(shard_store) == 14
        assert metadata.file_id in metadata_store

        assert service.download_file(metadata.file_id) == b"hello world"

    def test_empty_file(self, service):
        metadata = service.upload_file(b"", "empty.bin")
        assert metadata.original_size == 0
        assert service.download_file(metadata.file_id) == b""

    def test_multi_chunk_file(self, service):
        data = os.urandom(200_000)
        metadata = service.upload_file(data, "big.bin")
        assert service.download_file(metadata.file_id) == data

    def test_small_chunks_with_workers(self, tmp_path, key_provider, config):
        parallel = StorageConfig(
            paths=config.paths,
            crypto=CryptoConfig(chunk_size=1024),
            performance=PerformanceConfig(max_workers=4),
        )
        service = SecureStorageService(
            key_provider=key_provider,
            shard_store=InMemoryStore(),
            metadata_store=InMemoryStore(),
            config=parallel,
        )
        data = os.urandom(10_000)
        metadata = service.upload_file(data, "chunks.bin")
        assert service.download_file(metadata.file_id) == data

    def test_same_content_gets_distinct_ids(self, service):
        first = service.upload_file(b"same", "same.txt")
        second = service.upload_file(b"same", "same.txt")
        assert first.file_id != second.file_id

    def test_encrypted_size_covers_container(self, service):
        metadata = service.upload_file(b"hello world", "hello.txt")
        assert metadata.encrypted_size > metadata.original_size

    def test_index_record_mirrored(self, service, index_store):
        metadata = service.upload_file(b"%PDF-1.7", "report.pdf", folder_id="docs")

        record = FileIndex(index_store).get(metadata.file_id)
        assert record.name == "report.pdf"
        assert record.mime_type == "application/pdf"
        assert record.size == 8
        assert record.folder_id == "docs"
        assert record.status == FileStatus.ENCRYPTED

    def test_invalid_name(self, service, shard_store):
        with pytest.raises(ValidationError):
            service.upload_file(b"data", "")
        with pytest.raises(ValidationError):
            service.upload_file(b"data", "x" * 256)
        assert len(shard_store) == 0

    def test_wrong_master_key(self, service, shard_store, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        other = SecureStorageService(
            key_provider=StaticKeyProvider(bytes(32)),
            shard_store=shard_store,
            metadata_store=metadata_store,
        )
        with pytest.raises(AuthenticationFailure):
            other.download_file(metadata.file_id)

    def test_no_master_key(self, monkeypatch, shard_store, metadata_store):
        monkeypatch.delenv("LIBREDRIVE_TEST_UNSET_KEY", raising=False)
        service = SecureStorageService(
            key_provider=EnvironmentKeyProvider("LIBREDRIVE_TEST_UNSET_KEY"),
            shard_store=shard_store,
            metadata_store=metadata_store,
        )
        with pytest.raises(KeyUnavailable):
            service.upload_file(b"data", "a.txt")
        assert len(shard_store) == 0
        assert len(metadata_store) == 0

    def test_master_key_from_environment(self, monkeypatch, master_key):
        monkeypatch.setenv("LIBREDRIVE_MASTER_KEY", master_key.hex())
        service = SecureStorageService(
            key_provider=EnvironmentKeyProvider(),
            shard_store=InMemoryStore(),
            metadata_store=InMemoryStore(),
        )
        metadata = service.upload_file(b"env", "env.txt")
        assert service.download_file(metadata.file_id) == b"env"

    def test_concurrent_uploads(self, service):
        results = {}

        def upload(n):
            data = f"file number {n}".encode() * 100
            results[n] = (data, service.upload_file(data, f"file{n}.txt"))

        threads = [threading.Thread(target=upload, args=(n,)) for n in range(6)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len({m.file_id for _, m in results.values()}) == 6
        for data, metadata in results.values():
            assert service.download_file(metadata.file_id) == data

    def test_concurrent_uploads_of_same_file(self, key_provider, shard_store, metadata_store, config):
        fixed = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
        service = SecureStorageService(
            key_provider=key_provider,
            shard_store=shard_store,
            metadata_store=metadata_store,
            config=config,
            clock=lambda: fixed,
        )
        data = b"shared content" * 500
        results = []
        start = threading.Barrier(2)

        def upload():
            start.wait()
            results.append(service.upload_file(data, "shared.txt"))

        threads = [threading.Thread(target=upload) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 2
        assert results[0].file_id == results[1].file_id
        file_id = results[0].file_id

        metadata = service.get_metadata(file_id)
        for shard_id in metadata.shard_ids:
            shard = Shard.from_bytes(shard_store.get(shard_id))
            assert shard.shard_id == shard_id
            assert shard.verify()
        assert len(shard_store) == 14
        assert service.verify_file_integrity(file_id).shards_valid == 14
        assert service.download_file(file_id) == data


class TestMissingAndDamaged:

    def test_unknown_file(self, service):
        with pytest.raises(MetadataNotFound, match="nonexistent"):
            service.download_file("nonexistent")
        with pytest.raises(MetadataNotFound):
            service.verify_file_integrity("nonexistent")

    def test_parity_loss_is_tolerated(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.delete(metadata.shard_ids[12])
        shard_store.delete(metadata.shard_ids[13])

        report = service.verify_file_integrity(metadata.file_id)

        assert report.shards_checked == 14
        assert report.shards_valid == 12
        assert report.is_valid
        assert len(report.errors) == 2
        assert all(e.startswith("Shard missing") for e in report.errors)
        assert service.download_file(metadata.file_id) == b"hello world"

    def test_data_shard_loss_is_fatal(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.delete(metadata.shard_ids[3])

        report = service.verify_file_integrity(metadata.file_id)
        assert not report.is_valid
        assert report.shards_valid == 13

        with pytest.raises(NotEnoughShards) as exc_info:
            service.download_file(metadata.file_id)
        assert exc_info.value.available == 9
        assert exc_info.value.required == 10

    def test_corrupted_shard_content(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_id = metadata.shard_ids[0]
        shard = Shard.from_bytes(shard_store.get(shard_id))
        tampered = dataclasses.replace(shard, data=bytes(len(shard.data)))
        shard_store.put(shard_id, tampered.to_bytes())

        report = service.verify_file_integrity(metadata.file_id)
        assert report.errors == (f"Shard corrupted: {shard_id}",)
        assert not report.is_valid

        with pytest.raises(NotEnoughShards):
            service.download_file(metadata.file_id)

    def test_unreadable_shard_record(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.put(metadata.shard_ids[5], b"junk")

        report = service.verify_file_integrity(metadata.file_id)
        assert report.errors == (f"Shard unreadable: {metadata.shard_ids[5]}",)

        with pytest.raises(CorruptShard):
            service.download_file(metadata.file_id)

    def test_unreadable_parity_record_is_tolerated(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.put(metadata.shard_ids[12], b"junk")

        assert service.verify_file_integrity(metadata.file_id).is_valid
        assert service.download_file(metadata.file_id) == b"hello world"

    def test_shard_under_wrong_key(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.put(metadata.shard_ids[0], shard_store.get(metadata.shard_ids[1]))

        with pytest.raises(CorruptShard, match="wrong key"):
            service.download_file(metadata.file_id)

    def test_merkle_root_mismatch(self, service, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        _rewrite_metadata(metadata_store, metadata, merkle_root="0" * 64)

        with pytest.raises(IntegrityViolation, match="Merkle"):
            service.download_file(metadata.file_id)

    def test_original_hash_mismatch(self, service, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        _rewrite_metadata(metadata_store, metadata, original_hash="0" * 64)

        with pytest.raises(IntegrityViolation, match="integrity"):
            service.download_file(metadata.file_id)

    @pytest.mark.parametrize("status", [FileStatus.PENDING, FileStatus.ENCRYPTING, FileStatus.ERROR])
    def test_not_ready(self, service, metadata_store, status):
        metadata = service.upload_file(b"hello world", "hello.txt")
        _rewrite_metadata(metadata_store, metadata, status=status)

        with pytest.raises(FileNotReady):
            service.download_file(metadata.file_id)

    def test_distributed_is_downloadable(self, service, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        _rewrite_metadata(metadata_store, metadata, status=FileStatus.DISTRIBUTED)
        assert service.download_file(metadata.file_id) == b"hello world"

    def test_non_positive_layout_in_metadata(self, service, metadata_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        _rewrite_metadata(metadata_store, metadata, data_shards=0, parity_shards=14)

        with pytest.raises(CorruptMetadata):
            service.download_file(metadata.file_id)
        result = service.try_download_file(metadata.file_id)
        assert isinstance(result, Err)
        assert isinstance(result.error, CorruptMetadata)

    def test_corrupt_metadata(self, service, metadata_store, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        metadata_store.put(metadata.file_id, b"{}")

        with pytest.raises(CorruptMetadata):
            service.download_file(metadata.file_id)

        assert service.delete_file(metadata.file_id) is True
        assert len(shard_store) == 0


class TestDelete:

    def test_delete_removes_everything(self, service, shard_store, metadata_store, index_store):
        metadata = service.upload_file(b"hello world", "hello.txt")

        assert service.delete_file(metadata.file_id) is True

        assert len(shard_store) == 0
        assert len(metadata_store) == 0
        assert len(index_store) == 0
        with pytest.raises(MetadataNotFound):
            service.download_file(metadata.file_id)

    def test_delete_is_idempotent(self, service):
        metadata = service.upload_file(b"hello world", "hello.txt")
        assert service.delete_file(metadata.file_id) is True
        assert service.delete_file(metadata.file_id) is False

    def test_delete_tolerates_missing_shards(self, service, shard_store):
        metadata = service.upload_file(b"hello world", "hello.txt")
        shard_store.delete(metadata.shard_ids[0])
        assert service.delete_file(metadata.file_id) is True
        assert len(shard_store) == 0

    def test_delete_leaves_other_files(self, service, shard_store):
        keep = service.upload_file(b"keep me", "keep.txt")
        drop = service.upload_file(b"drop me", "drop.txt")

        service.delete_file(drop.file_id)

        assert len(shard_store) == 14
        assert service.download_file(keep.file_id) == b"keep me"


class FailingShardStore(InMemoryStore):
    """Shard store that fails after a fixed number of writes."""

    def __init__(self, fail_after):
        super().__init__()
        self._remaining = fail_after

    def put(self, key, value):
        if self._remaining == 0:
            raise OSError("disk full")
        self._remaining -= 1
        super().put(key, value)


class TestFailedUpload:

    def test_failure_is_logged_and_raised(self, key_provider, metadata_store, config, caplog):
        shard_store = FailingShardStore(fail_after=5)
        service = SecureStorageService(
            key_provider=key_provider,
            shard_store=shard_store,
            metadata_store=metadata_store,
            config=config,
            clock=StepClock(),
        )

        with caplog.at_level(logging.ERROR, logger="libredrive"):
            with pytest.raises(OSError, match="disk full"):
                service.upload_file(b"hello world", "hello.txt")

        assert len(shard_store) == 5
        assert len(metadata_store) == 0
        assert "status=error" in caplog.text
        assert "Orphaned shards" in caplog.text

        file_id = shard_store.keys()[0].split("_shard_")[0]
        assert service.delete_file(file_id) is False
        assert len(shard_store) == 0


class TestStatsAndListing:

    def test_empty_stats(self, service):
        stats = service.get_stats()
        assert stats.total_files == 0
        assert stats.total_original_size == 0
        assert stats.total_encrypted_size == 0
        assert stats.total_shards == 0
        assert stats.encryption_overhead == 0.0

    def test_stats(self, service):
        first = service.upload_file(b"hello world", "hello.txt")
        second = service.upload_file(os.urandom(5000), "noise.bin")

        stats = service.get_stats()

        assert stats.total_files == 2
        assert stats.total_shards == 28
        assert stats.total_original_size == 5011
        assert stats.total_encrypted_size == first.encrypted_size + second.encrypted_size
        assert stats.encryption_overhead == pytest.approx(
            (stats.total_encrypted_size - 5011) / 5011
        )
        assert stats.encryption_overhead > 0

    def test_list_files_by_folder(self, service):
        a = service.upload_file(b"a", "a.txt", folder_id="docs")
        service.upload_file(b"b", "b.txt", folder_id="pics")
        c = service.upload_file(b"c", "c.txt", folder_id="docs")

        assert [m.file_id for m in service.list_files(folder_id="docs")] == [c.file_id, a.file_id]
        assert len(service.list_files()) == 3

    def test_get_metadata(self, service):
        metadata = service.upload_file(b"hello world", "hello.txt")
        assert service.get_metadata(metadata.file_id) == metadata


class TestResultVariants:

    def test_try_upload_and_download(self, service):
        uploaded = service.try_upload_file(b"hello world", "hello.txt")
        assert isinstance(uploaded, Ok)

        downloaded = service.try_download_file(uploaded.value.file_id)
        assert downloaded == Ok(b"hello world")

    def test_try_download_missing(self, service):
        result = service.try_download_file("nonexistent")
        assert isinstance(result, Err)
        assert isinstance(result.error, MetadataNotFound)

    def test_try_verify_and_delete(self, service):
        metadata = service.upload_file(b"hello world", "hello.txt")

        report = service.try_verify_file_integrity(metadata.file_id).unwrap()
        assert report.is_valid
        assert report.errors == ()

        assert service.try_delete_file(metadata.file_id) == Ok(True)
        assert isinstance(service.try_verify_file_integrity(metadata.file_id), Err)

    def test_try_stats(self, service):
        assert service.try_get_stats().unwrap().total_files == 0

    def test_validation_errors_are_not_captured(self, service):
        with pytest.raises(ValidationError):
            service.try_upload_file(b"data", "")


class TestFromConfig:

    def test_sqlite_backed_service(self, config, key_provider):
        service = SecureStorageService.from_config(config, key_provider)
        metadata = service.upload_file(b"persisted", "p.txt", folder_id="docs")

        assert (config.paths.data_dir / DATABASE_FILENAME).exists()

        reopened = SecureStorageService.from_config(config, key_provider)
        assert reopened.download_file(metadata.file_id) == b"persisted"
        assert [m.file_id for m in reopened.list_files()] == [metadata.file_id]
        assert reopened.verify_file_integrity(metadata.file_id).shards_valid == 14

        assert reopened.delete_file(metadata.file_id) is True
        assert reopened.list_files() == []

    def test_metadata_round_trips_through_sqlite(self, config, key_provider):
        service = SecureStorageService.from_config(config, key_provider)
        metadata = service.upload_file(b"persisted", "p.txt")
        assert isinstance(service.get_metadata(metadata.file_id), FileMetadata)
        assert service.get_metadata(metadata.file_id) == metadata
