"""
Key Derivation
==============

Per-file symmetric keys derived from the identity's master secret.

    file_key = HKDF-SHA256(ikm=master_key, salt=file_id, info=key_info, L=32)

Identical (master_key, file_id) pairs always produce the same key, so file
keys are never persisted; they are recomputed whenever needed. The master
secret itself comes from an external identity provider exposed through
the MasterKeyProvider protocol.
"""

from __future__ import annotations

import binascii
import os
from typing import Final, Optional, Protocol

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from libredrive.core.config import DEFAULT_KEY_INFO
from libredrive.core.errors import KeyUnavailable

MASTER_KEY_SIZE: Final[int] = 32
FILE_KEY_SIZE: Final[int] = 32
MASTER_KEY_ENV_VAR: Final[str] = "LIBREDRIVE_MASTER_KEY"


class MasterKeyProvider(Protocol):
    """Source of the logged-in identity's 256-bit master secret."""

    def get_master_key(self) -> Optional[bytes]:
        """Return the master secret, or None if no identity is available."""
        ...


class StaticKeyProvider:
    """Provider holding a master secret handed over by the identity layer."""

    __slots__ = ("_key",)

    def __init__(self, key: bytes) -> None:
        if len(key) != MASTER_KEY_SIZE:
            raise ValueError(f"Master key must be exactly {MASTER_KEY_SIZE} bytes")
        self._key = bytes(key)

    def get_master_key(self) -> Optional[bytes]:
        return self._key

    def __repr__(self) -> str:
        return "StaticKeyProvider(key=<hidden>)"


class EnvironmentKeyProvider:
    """
    Provider reading a hex-encoded master secret from the environment.

    Returns None when the variable is unset. A value that is not valid
    hex is treated as unavailable rather than silently ignored.
    """

    __slots__ = ("_variable",)

    def __init__(self, variable: str = MASTER_KEY_ENV_VAR) -> None:
        self._variable = variable

    def get_master_key(self) -> Optional[bytes]:
        value = os.environ.get(self._variable)
        if value is None:
            return None
        try:
            return binascii.unhexlify(value.strip())
        except (binascii.Error, ValueError) as e:
            raise KeyUnavailable(f"{self._variable} is not valid hex") from e


def derive_file_key(
    master_key: bytes,
    file_id: str,
    info: bytes = DEFAULT_KEY_INFO,
) -> bytes:
    """
    Derive the 256-bit key for one file.

    Args:
        master_key: 32-byte master secret (input key material)
        file_id: File identifier, used as the HKDF salt
        info: Domain-separation string

    Returns:
        32-byte file key
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=FILE_KEY_SIZE,
        salt=file_id.encode("utf-8"),
        info=info,
    )
    return hkdf.derive(master_key)


class FileKeyDeriver:
    """
    Derives file keys from whatever master secret the provider supplies.

    The master secret is fetched on every call so that a logout (provider
    returning None) takes effect immediately.
    """

    __slots__ = ("_provider", "_info")

    def __init__(self, provider: MasterKeyProvider, info: bytes = DEFAULT_KEY_INFO) -> None:
        self._provider = provider
        self._info = info

    def derive_file_key(self, file_id: str) -> bytes:
        """
        Derive the key for a file.

        Raises:
            KeyUnavailable: If the provider has no usable master secret
        """
        master_key = self._provider.get_master_key()
        if master_key is None:
            raise KeyUnavailable("No master key available from identity provider")
        if len(master_key) != MASTER_KEY_SIZE:
            raise KeyUnavailable(f"Master key must be exactly {MASTER_KEY_SIZE} bytes")
        return derive_file_key(master_key, file_id, self._info)
