"""Tests for StorageConfig."""

from pathlib import Path

import pytest

from libredrive.core.config import (
    DEFAULT_CHUNK_SIZE,
    CryptoConfig,
    ErasureConfig,
    LoggingConfig,
    PathConfig,
    PerformanceConfig,
    StorageConfig,
)


class TestDefaults:

    def test_defaults(self):
        config = StorageConfig()
        assert config.crypto.chunk_size == DEFAULT_CHUNK_SIZE == 65536
        assert config.crypto.key_info == b"libredrive-file-key-v1"
        assert config.erasure.data_shards == 10
        assert config.erasure.parity_shards == 4
        assert config.performance.max_workers == 1

    def test_erasure_derived_values(self):
        erasure = ErasureConfig(data_shards=10, parity_shards=4)
        assert erasure.total_shards == 14
        assert erasure.min_shards == 10
        assert erasure.max_losses == 4
        assert erasure.overhead == pytest.approx(1.4)


class TestValidation:

    def test_relative_path_rejected(self):
        with pytest.raises(ValueError, match="absolute"):
            PathConfig(data_dir=Path("relative"), log_dir=Path("/tmp/logs"))

    @pytest.mark.parametrize("kwargs", [
        {"data_shards": 0},
        {"parity_shards": 0},
    ])
    def test_erasure_rejects_non_positive(self, kwargs):
        with pytest.raises(ValueError):
            ErasureConfig(**kwargs)

    def test_chunk_size_positive(self):
        with pytest.raises(ValueError):
            CryptoConfig(chunk_size=0)

    def test_log_level(self):
        with pytest.raises(ValueError, match="log level"):
            LoggingConfig(level="LOUD")

    def test_workers(self):
        with pytest.raises(ValueError):
            PerformanceConfig(max_workers=0)


class TestImmutability:

    def test_cannot_set_attributes(self):
        config = StorageConfig()
        with pytest.raises(AttributeError):
            config.foo = "bar"

    def test_sections_frozen(self):
        config = StorageConfig()
        with pytest.raises(AttributeError):
            config.erasure.data_shards = 3

    def test_hash_tracks_content(self):
        assert StorageConfig().config_hash == StorageConfig().config_hash
        other = StorageConfig(erasure=ErasureConfig(data_shards=6))
        assert other.config_hash != StorageConfig().config_hash


class TestEnvironmentOverrides:

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("LIBREDRIVE_ERASURE__DATA_SHARDS", "6")
        monkeypatch.setenv("LIBREDRIVE_CRYPTO__CHUNK_SIZE", "1024")
        monkeypatch.setenv("LIBREDRIVE_LOGGING__LEVEL", "debug")
        monkeypatch.setenv("LIBREDRIVE_LOGGING__ENABLE_JSON", "true")
        monkeypatch.setenv("LIBREDRIVE_PERFORMANCE__MAX_WORKERS", "4")
        monkeypatch.setenv("LIBREDRIVE_PATHS__DATA_DIR", str(tmp_path / "data"))

        config = StorageConfig.load()

        assert config.erasure.data_shards == 6
        assert config.erasure.parity_shards == 4
        assert config.crypto.chunk_size == 1024
        assert config.logging.level == "DEBUG"
        assert config.logging.enable_json is True
        assert config.performance.max_workers == 4
        assert config.paths.data_dir == tmp_path / "data"

    def test_sensitive_keys_ignored(self, monkeypatch):
        monkeypatch.setenv("LIBREDRIVE_MASTER_KEY", "00" * 32)
        monkeypatch.setenv("LIBREDRIVE_CRYPTO__KEY_INFO", "other")

        overrides = StorageConfig._parse_env_overrides("LIBREDRIVE")

        assert "master_key" not in overrides
        assert "crypto.key_info" not in overrides
        assert StorageConfig.load().crypto.key_info == b"libredrive-file-key-v1"

    def test_custom_prefix(self, monkeypatch):
        monkeypatch.setenv("MYAPP_ERASURE__PARITY_SHARDS", "2")
        assert StorageConfig.load(env_prefix="MYAPP").erasure.parity_shards == 2

    def test_invalid_override(self, monkeypatch):
        monkeypatch.setenv("LIBREDRIVE_ERASURE__DATA_SHARDS", "0")
        with pytest.raises(ValueError):
            StorageConfig.load()


def test_ensure_directories(tmp_path):
    config = StorageConfig(paths=PathConfig(data_dir=tmp_path / "d", log_dir=tmp_path / "l"))
    config.ensure_directories()
    assert (tmp_path / "d").is_dir()
    assert (tmp_path / "l").is_dir()
