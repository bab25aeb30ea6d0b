"""
AES-256-GCM Chunk Encryption
============================

Authenticated encryption of a single byte block under a caller-supplied key.

Security Properties:
    - 256-bit key
    - 96-bit random nonce per call (NIST SP 800-38D)
    - 128-bit authentication tag, verified before plaintext is released

Nonce uniqueness:
    Nonces are drawn at random for every call, so uniqueness per key is
    probabilistic, not structural. For n encryptions under one key the
    collision probability is about n^2 / 2^97. Every file has its own
    derived key, so n is the chunk count of a single file; at 64 KiB per
    chunk the risk stays negligible well past 2^32 chunks (256 TiB).

Serialized form (big-endian length prefixes):
    NONCE_LEN (4) | NONCE | TAG_LEN (4) | TAG | CIPHERTEXT
"""

from __future__ import annotations

import secrets
import struct
from dataclasses import dataclass
from typing import Final, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from libredrive.core.errors import AuthenticationFailure, CorruptContainer

AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits
AES_TAG_SIZE: Final[int] = 16  # 128 bits

_LEN_PREFIX: Final[struct.Struct] = struct.Struct(">I")


@dataclass(frozen=True, slots=True)
class EncryptedData:
    """
    Immutable result of encrypting one block.

    Attributes:
        ciphertext: Encrypted bytes, same length as the plaintext
        nonce: The 12-byte nonce used for this block
        tag: The 16-byte GCM authentication tag
    """

    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def to_bytes(self) -> bytes:
        """Serialize as length-prefixed nonce, tag, then ciphertext."""
        return b"".join([
            _LEN_PREFIX.pack(len(self.nonce)),
            self.nonce,
            _LEN_PREFIX.pack(len(self.tag)),
            self.tag,
            self.ciphertext,
        ])

    @classmethod
    def from_bytes(cls, data: bytes) -> "EncryptedData":
        """
        Deserialize from the length-prefixed form.

        Raises:
            CorruptContainer: If a length prefix overruns the buffer
        """
        try:
            offset = 0
            (nonce_len,) = _LEN_PREFIX.unpack_from(data, offset)
            offset += _LEN_PREFIX.size
            nonce = bytes(data[offset:offset + nonce_len])
            offset += nonce_len
            if len(nonce) != nonce_len:
                raise ValueError("truncated nonce")

            (tag_len,) = _LEN_PREFIX.unpack_from(data, offset)
            offset += _LEN_PREFIX.size
            tag = bytes(data[offset:offset + tag_len])
            offset += tag_len
            if len(tag) != tag_len:
                raise ValueError("truncated tag")
        except (struct.error, ValueError) as e:
            raise CorruptContainer(f"Malformed encrypted block: {e}") from e

        return cls(ciphertext=bytes(data[offset:]), nonce=nonce, tag=tag)

    def __repr__(self) -> str:
        return f"EncryptedData(ciphertext_len={len(self.ciphertext)})"


class AesGcmCipher:
    """
    AES-256-GCM authenticated encryption for single blocks.

    Usage:
        cipher = AesGcmCipher()
        encrypted = cipher.encrypt(b"block", key)
        plaintext = cipher.decrypt(encrypted, key)

    The key is always supplied by the caller; this class never generates
    or stores keys.
    """

    __slots__ = ()

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a fresh random 96-bit nonce."""
        return secrets.token_bytes(AES_NONCE_SIZE)

    def encrypt(
        self,
        plaintext: bytes,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> EncryptedData:
        """
        Encrypt a block with a fresh random nonce.

        Args:
            plaintext: Data to encrypt (can be empty)
            key: 32-byte key
            aad: Optional additional authenticated data

        Returns:
            EncryptedData with ciphertext, nonce and tag

        Raises:
            ValueError: If the key has the wrong size
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")

        nonce = self.generate_nonce()
        sealed = AESGCM(key).encrypt(nonce, plaintext, aad)

        # AESGCM appends the tag to the ciphertext
        return EncryptedData(
            ciphertext=sealed[:-AES_TAG_SIZE],
            nonce=nonce,
            tag=sealed[-AES_TAG_SIZE:],
        )

    def decrypt(
        self,
        data: EncryptedData,
        key: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Verify and decrypt a block.

        Args:
            data: EncryptedData produced by encrypt()
            key: 32-byte key
            aad: Additional authenticated data used at encryption time

        Returns:
            Plaintext bytes

        Raises:
            ValueError: If the key has the wrong size
            AuthenticationFailure: If the tag does not verify, including a
                malformed nonce or tag
        """
        if len(key) != AES_KEY_SIZE:
            raise ValueError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(data.nonce) != AES_NONCE_SIZE or len(data.tag) != AES_TAG_SIZE:
            raise AuthenticationFailure("Authentication failed: malformed nonce or tag")

        try:
            return AESGCM(key).decrypt(data.nonce, data.ciphertext + data.tag, aad)
        except InvalidTag as e:
            raise AuthenticationFailure("Authentication failed: data tampered or wrong key") from e
