"""
Chunked File Encryption
=======================

Turns plaintext into an EncryptedFileContainer.

Process:
    1. Split plaintext into fixed-size chunks (last may be shorter; empty
       input yields zero chunks)
    2. Hash each plaintext chunk and encrypt it with the file key
    3. Build the Merkle root over the chunk hashes, in index order
    4. Hash the whole plaintext

Each chunk gets its own random nonce under the per-file key. Chunks are
independent and may be encrypted on a thread pool; the container always
lists them in index order.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Callable, Final, Iterator, Optional

from libredrive.core.config import DEFAULT_CHUNK_SIZE
from libredrive.core.crypto.aes_gcm import AesGcmCipher
from libredrive.core.crypto.hashing import merkle_root, sha256_hex
from libredrive.core.crypto.kdf import FileKeyDeriver
from libredrive.core.file_ops.container import EncryptedChunk, EncryptedFileContainer
from libredrive.core.logging import short_id

logger = logging.getLogger(__name__)

MAX_FILE_SIZE: Final[int] = 10 * 1024 * 1024 * 1024  # 10 GB


def split_chunks(data: bytes, chunk_size: int) -> Iterator[bytes]:
    """Yield consecutive chunk_size slices of data."""
    view = memoryview(data)
    for start in range(0, len(data), chunk_size):
        yield bytes(view[start:start + chunk_size])


class FileEncryptor:
    """
    Chunked AES-256-GCM encryption with a Merkle integrity summary.

    Usage:
        encryptor = FileEncryptor(FileKeyDeriver(provider))
        container = encryptor.encrypt_file(data, file_id)
    """

    __slots__ = ("_deriver", "_cipher", "_chunk_size", "_max_workers", "_clock")

    def __init__(
        self,
        key_deriver: FileKeyDeriver,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        max_workers: int = 1,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("Chunk size must be positive")
        self._deriver = key_deriver
        self._cipher = AesGcmCipher()
        self._chunk_size = chunk_size
        self._max_workers = max_workers
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    def encrypt_file(self, plaintext: bytes, file_id: str) -> EncryptedFileContainer:
        """
        Encrypt a whole file.

        Args:
            plaintext: File contents
            file_id: Identifier the file key is derived from

        Returns:
            EncryptedFileContainer with chunks in index order

        Raises:
            KeyUnavailable: If no master key is available
            ValueError: If the file exceeds MAX_FILE_SIZE
        """
        if len(plaintext) > MAX_FILE_SIZE:
            raise ValueError(f"File too large (max {MAX_FILE_SIZE} bytes)")

        file_key = self._deriver.derive_file_key(file_id)

        def encrypt_chunk(item: tuple[int, bytes]) -> EncryptedChunk:
            index, chunk = item
            return EncryptedChunk(
                index=index,
                data=self._cipher.encrypt(chunk, file_key),
                original_hash=sha256_hex(chunk),
            )

        items = enumerate(split_chunks(plaintext, self._chunk_size))
        if self._max_workers > 1:
            with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
                chunks = tuple(pool.map(encrypt_chunk, items))
        else:
            chunks = tuple(map(encrypt_chunk, items))

        container = EncryptedFileContainer(
            file_id=file_id,
            chunks=chunks,
            merkle_root=merkle_root([chunk.original_hash for chunk in chunks]),
            original_hash=sha256_hex(plaintext),
            original_size=len(plaintext),
            chunk_size=self._chunk_size,
            created_at=self._clock(),
        )

        logger.debug(
            "Encrypted file %s: %d bytes in %d chunks",
            short_id(file_id), len(plaintext), len(chunks),
        )
        return container
