"""
Storage Configuration Module
============================

Provides immutable, environment-aware configuration for the storage core.

Features:
- Immutable configuration after initialization
- Environment variable override support (LIBREDRIVE_ prefix)
- Sensitive keys can never be set from the environment
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt", "master",
})

DEFAULT_CHUNK_SIZE: Final[int] = 64 * 1024
DEFAULT_KEY_INFO: Final[bytes] = b"libredrive-file-key-v1"
DEFAULT_DATA_SHARDS: Final[int] = 10
DEFAULT_PARITY_SHARDS: Final[int] = 4


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "LibreDrive"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "LibreDrive" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "LibreDrive"
    else:
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "LibreDrive" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        for field_name in ["data_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Immutable chunking and key-derivation settings."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    key_info: bytes = DEFAULT_KEY_INFO

    def __post_init__(self) -> None:
        if self.chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        if not self.key_info:
            raise ValueError("Key derivation info cannot be empty")


@dataclass(frozen=True, slots=True)
class ErasureConfig:
    """Immutable shard layout: data shards plus parity shards."""

    data_shards: int = DEFAULT_DATA_SHARDS
    parity_shards: int = DEFAULT_PARITY_SHARDS

    def __post_init__(self) -> None:
        if self.data_shards <= 0:
            raise ValueError("data_shards must be positive")
        if self.parity_shards <= 0:
            raise ValueError("parity_shards must be positive")

    @property
    def total_shards(self) -> int:
        return self.data_shards + self.parity_shards

    @property
    def min_shards(self) -> int:
        """Shards needed for reconstruction (the data slots themselves)."""
        return self.data_shards

    @property
    def max_losses(self) -> int:
        """Parity shards that may be lost without affecting recovery."""
        return self.parity_shards

    @property
    def overhead(self) -> float:
        return self.total_shards / self.data_shards


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


@dataclass(frozen=True, slots=True)
class PerformanceConfig:
    """Worker settings for per-chunk encryption and decryption."""

    max_workers: int = 1

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError("max_workers must be at least 1")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class StorageConfig:
    """
    Immutable configuration container with environment override support.

    Usage:
        config = StorageConfig.load()
        config.erasure.data_shards
        config.crypto.chunk_size

    There is no global instance; construct one and pass it to the
    components that need it.
    """

    __slots__ = (
        "_paths", "_crypto", "_erasure", "_logging", "_performance",
        "_frozen", "_config_hash",
    )

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        crypto: Optional[CryptoConfig] = None,
        erasure: Optional[ErasureConfig] = None,
        logging: Optional[LoggingConfig] = None,
        performance: Optional[PerformanceConfig] = None,
    ) -> None:
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_erasure", erasure or ErasureConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_performance", performance or PerformanceConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = (
            f"{self._paths}|{self._crypto}|{self._erasure}|"
            f"{self._logging}|{self._performance}"
        )
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def erasure(self) -> ErasureConfig:
        return self._erasure

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def performance(self) -> PerformanceConfig:
        return self._performance

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "LIBREDRIVE") -> StorageConfig:
        """
        Load configuration with environment variable overrides.

        Variables use the prefix followed by SECTION__FIELD:

            LIBREDRIVE_LOGGING__LEVEL=DEBUG
            LIBREDRIVE_ERASURE__DATA_SHARDS=6
            LIBREDRIVE_CRYPTO__CHUNK_SIZE=131072
            LIBREDRIVE_PATHS__DATA_DIR=/srv/libredrive

        Args:
            env_prefix: Prefix for environment variables

        Returns:
            Configured StorageConfig instance

        Raises:
            ValueError: If an override has an invalid value
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for name in ("data_dir", "log_dir"):
            if f"paths.{name}" in env_overrides:
                paths_kwargs[name] = Path(env_overrides[f"paths.{name}"])

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.chunk_size" in env_overrides:
            crypto_kwargs["chunk_size"] = int(env_overrides["crypto.chunk_size"])

        erasure_kwargs: dict[str, Any] = {}
        for name in ("data_shards", "parity_shards"):
            if f"erasure.{name}" in env_overrides:
                erasure_kwargs[name] = int(env_overrides[f"erasure.{name}"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"].upper()
        for name in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{name}" in env_overrides:
                logging_kwargs[name] = _parse_bool(env_overrides[f"logging.{name}"])

        performance_kwargs: dict[str, Any] = {}
        if "performance.max_workers" in env_overrides:
            performance_kwargs["max_workers"] = int(env_overrides["performance.max_workers"])

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            erasure=ErasureConfig(**erasure_kwargs) if erasure_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
            performance=PerformanceConfig(**performance_kwargs) if performance_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # LIBREDRIVE_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create data and log directories with owner-only permissions."""
        for directory in (self._paths.data_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700

    def __repr__(self) -> str:
        return f"StorageConfig(hash={self._config_hash})"

    def __setattr__(self, name: str, value: Any) -> None:
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("StorageConfig is immutable after initialization")
        super().__setattr__(name, value)
