"""Shared pytest fixtures for all tests."""

from datetime import datetime, timezone

import pytest

from libredrive.core.config import ErasureConfig, PathConfig, StorageConfig
from libredrive.core.crypto.kdf import FileKeyDeriver, StaticKeyProvider
from libredrive.core.file_ops.decrypt import FileDecryptor
from libredrive.core.file_ops.encrypt import FileEncryptor
from libredrive.storage.index import FileIndex
from libredrive.storage.service import SecureStorageService
from libredrive.storage.stores import InMemoryStore

MASTER_KEY = bytes(range(32))
FIXED_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Clock that advances one second per call, so file ids never repeat."""

    def __init__(self, start: datetime = FIXED_TIME) -> None:
        self._current = start.timestamp()

    def __call__(self) -> datetime:
        value = datetime.fromtimestamp(self._current, tz=timezone.utc)
        self._current += 1
        return value


@pytest.fixture
def master_key():
    return MASTER_KEY


@pytest.fixture
def key_provider(master_key):
    return StaticKeyProvider(master_key)


@pytest.fixture
def key_deriver(key_provider):
    return FileKeyDeriver(key_provider)


@pytest.fixture
def encryptor(key_deriver):
    return FileEncryptor(key_deriver, clock=lambda: FIXED_TIME)


@pytest.fixture
def decryptor(key_deriver):
    return FileDecryptor(key_deriver)


@pytest.fixture
def config(tmp_path):
    return StorageConfig(
        paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
        erasure=ErasureConfig(data_shards=10, parity_shards=4),
    )


@pytest.fixture
def shard_store():
    return InMemoryStore()


@pytest.fixture
def metadata_store():
    return InMemoryStore()


@pytest.fixture
def index_store():
    return InMemoryStore()


@pytest.fixture
def service(key_provider, shard_store, metadata_store, index_store, config):
    return SecureStorageService(
        key_provider=key_provider,
        shard_store=shard_store,
        metadata_store=metadata_store,
        file_index=FileIndex(index_store),
        config=config,
        clock=StepClock(),
    )
