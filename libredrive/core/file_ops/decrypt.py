"""
Chunked File Decryption
=======================

Recovers plaintext from an EncryptedFileContainer with full verification.

Decryption Flow:
1. Check the Merkle root against the recorded chunk hashes
2. Decrypt every chunk (AEAD tag verified first)
3. Compare each chunk's plaintext hash with its record
4. Concatenate in index order
5. Compare size and whole-file hash with the container

Plaintext is returned only after every check passes; any failure raises
and no partial output is produced.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from libredrive.core.crypto.aes_gcm import AesGcmCipher
from libredrive.core.crypto.hashing import (
    digests_equal,
    merkle_proof,
    merkle_root,
    sha256_hex,
    verify_merkle_proof,
)
from libredrive.core.crypto.kdf import FileKeyDeriver
from libredrive.core.errors import IntegrityViolation
from libredrive.core.file_ops.container import EncryptedChunk, EncryptedFileContainer
from libredrive.core.logging import short_id

logger = logging.getLogger(__name__)


class FileDecryptor:
    """
    Verified decryption of containers produced by FileEncryptor.

    Usage:
        decryptor = FileDecryptor(FileKeyDeriver(provider))
        plaintext = decryptor.decrypt_file(container)
        first_chunk = decryptor.decrypt_chunk(container, 0)
    """

    __slots__ = ("_deriver", "_cipher", "_max_workers")

    def __init__(self, key_deriver: FileKeyDeriver, max_workers: int = 1) -> None:
        self._deriver = key_deriver
        self._cipher = AesGcmCipher()
        self._max_workers = max_workers

    def _decrypt_chunk(self, chunk: EncryptedChunk, key: bytes) -> bytes:
        plaintext = self._cipher.decrypt(chunk.data, key)
        if not digests_equal(sha256_hex(plaintext), chunk.original_hash):
            raise IntegrityViolation(
                f"Chunk {chunk.index} integrity check failed",
                chunk_index=chunk.index,
            )
        return plaintext

    def decrypt_file(self, container: EncryptedFileContainer) -> bytes:
        """
        Decrypt and verify a whole container.

        Raises:
            KeyUnavailable: If no master key is available
            AuthenticationFailure: If any chunk fails tag verification
            IntegrityViolation: On any chunk- or file-level hash mismatch
        """
        for position, chunk in enumerate(container.chunks):
            if chunk.index != position:
                raise IntegrityViolation(
                    f"Chunk {chunk.index} found at position {position}",
                    chunk_index=chunk.index,
                )

        if not digests_equal(merkle_root(container.chunk_hashes), container.merkle_root):
            raise IntegrityViolation("Merkle root mismatch")

        key = self._deriver.derive_file_key(container.file_id)

        if self._max_workers > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                parts = list(pool.map(lambda c: self._decrypt_chunk(c, key), container.chunks))
        else:
            parts = [self._decrypt_chunk(chunk, key) for chunk in container.chunks]

        plaintext = b"".join(parts)

        if len(plaintext) != container.original_size:
            raise IntegrityViolation("File size mismatch")
        if not digests_equal(sha256_hex(plaintext), container.original_hash):
            raise IntegrityViolation("File integrity check failed")

        logger.debug(
            "Decrypted file %s: %d chunks verified",
            short_id(container.file_id), len(parts),
        )
        return plaintext

    def decrypt_chunk(self, container: EncryptedFileContainer, index: int) -> bytes:
        """
        Decrypt and verify a single chunk.

        Besides the chunk's own hash, the chunk hash is checked against the
        container's Merkle root through its audit path.

        Raises:
            IndexError: If index is out of range
            AuthenticationFailure: If the chunk fails tag verification
            IntegrityViolation: If the chunk hash or its Merkle path mismatch
        """
        if not 0 <= index < len(container.chunks):
            raise IndexError(f"Chunk index {index} out of range")

        hashes = container.chunk_hashes
        chunk = container.chunks[index]
        if not verify_merkle_proof(chunk.original_hash, merkle_proof(hashes, index), container.merkle_root):
            raise IntegrityViolation(f"Chunk {index} not covered by Merkle root", chunk_index=index)

        key = self._deriver.derive_file_key(container.file_id)
        return self._decrypt_chunk(chunk, key)
