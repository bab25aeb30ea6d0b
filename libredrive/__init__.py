"""
LibreDrive - Encrypted, Sharded File Storage Core
=================================================

Turns raw file bytes into a self-describing encrypted artifact, cuts it
into shards for persistence, and rebuilds, decrypts and verifies it on
the way back.

Security Notice:
- Per-file keys derived with HKDF-SHA256 from an external master secret
- AES-256-GCM per 64 KiB chunk, Merkle root over chunk hashes
- No key material is ever persisted or logged
- Fail-closed: no partial plaintext is returned on any failure
"""

from libredrive.core.config import StorageConfig
from libredrive.core.crypto.kdf import EnvironmentKeyProvider, StaticKeyProvider
from libredrive.core.errors import LibreDriveError
from libredrive.core.logging import configure_logging, get_secure_logger
from libredrive.core.result import Err, Ok, attempt
from libredrive.storage.service import SecureStorageService

__version__ = "0.1.0"
__author__ = "LibreDrive Team"

__all__ = [
    "StorageConfig",
    "SecureStorageService",
    "StaticKeyProvider",
    "EnvironmentKeyProvider",
    "LibreDriveError",
    "Ok",
    "Err",
    "attempt",
    "configure_logging",
    "get_secure_logger",
    "__version__",
]
