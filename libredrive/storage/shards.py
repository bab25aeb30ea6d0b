"""
Shard Manager
=============

Splits a serialized container into data and parity shards and reassembles
it from the data shards.

Layout:
    The serialized container is cut into ``data_shards`` slices of
    ceil(len / data_shards) bytes; trailing slices may be shorter or
    empty. Each parity shard is the XOR of all data slices (zero-padded to
    the slice size), XORed again with a pseudorandom byte stream seeded by
    the parity index.

Recovery limits:
    This is NOT a systematic erasure code. Parity shards are never used
    for recovery: reconstruction needs every data slot 0..data_shards-1
    present and intact. Losing any data shard loses the file, regardless
    of how many parity shards survive.

Shard record format (version 1, big-endian):
    MAGIC (4, "LDSH") | VERSION (2) | FLAGS (1) | INDEX (4) |
    FILE_ID_LEN (2) | FILE_ID | HASH (64, ASCII hex) | DATA
"""

from __future__ import annotations

import logging
import random
import struct
from dataclasses import dataclass
from typing import Final, Optional, Sequence

from libredrive.core.config import DEFAULT_DATA_SHARDS, DEFAULT_PARITY_SHARDS
from libredrive.core.crypto.hashing import digests_equal, sha256_hex
from libredrive.core.errors import CorruptShard, NotEnoughShards
from libredrive.core.file_ops.container import EncryptedFileContainer
from libredrive.core.logging import short_id

logger = logging.getLogger(__name__)

MAGIC_BYTES: Final[bytes] = b"LDSH"  # LibreDrive Shard
SHARD_FORMAT_VERSION: Final[int] = 1
FLAG_PARITY: Final[int] = 0x01

_HEADER: Final[struct.Struct] = struct.Struct(">4sHBIH")
_HASH_LEN: Final[int] = 64


def make_shard_id(file_id: str, index: int) -> str:
    """Stable, location-independent identifier of a shard."""
    return f"{file_id}_shard_{index}"


@dataclass(frozen=True, slots=True)
class Shard:
    """One positional fragment of a serialized container."""

    index: int
    data: bytes
    hash: str
    is_parity_shard: bool
    file_id: str

    @property
    def shard_id(self) -> str:
        return make_shard_id(self.file_id, self.index)

    def verify(self) -> bool:
        """Recompute the content hash and compare it with the stored one."""
        return digests_equal(sha256_hex(self.data), self.hash)

    def to_bytes(self) -> bytes:
        """Serialize the shard to its versioned record form."""
        file_id_bytes = self.file_id.encode("utf-8")
        header = _HEADER.pack(
            MAGIC_BYTES,
            SHARD_FORMAT_VERSION,
            FLAG_PARITY if self.is_parity_shard else 0,
            self.index,
            len(file_id_bytes),
        )
        return b"".join([header, file_id_bytes, self.hash.encode("ascii"), self.data])

    @classmethod
    def from_bytes(cls, data: bytes) -> "Shard":
        """
        Deserialize a shard record.

        Raises:
            CorruptShard: If the record is malformed
        """
        if len(data) < _HEADER.size:
            raise CorruptShard("Data too short for shard header")

        magic, version, flags, index, file_id_len = _HEADER.unpack_from(data, 0)
        if magic != MAGIC_BYTES:
            raise CorruptShard("Invalid shard format (bad magic bytes)")
        if version != SHARD_FORMAT_VERSION:
            raise CorruptShard(f"Unsupported shard format version: {version}")
        if flags & ~FLAG_PARITY:
            raise CorruptShard(f"Unknown shard flags: {flags:#x}")

        offset = _HEADER.size
        hash_start = offset + file_id_len
        data_start = hash_start + _HASH_LEN
        if len(data) < data_start:
            raise CorruptShard("Data truncated (incomplete shard header)")

        try:
            file_id = data[offset:hash_start].decode("utf-8")
            digest = data[hash_start:data_start].decode("ascii")
        except UnicodeDecodeError as e:
            raise CorruptShard("Shard header is not valid text") from e

        return cls(
            index=index,
            data=bytes(data[data_start:]),
            hash=digest,
            is_parity_shard=bool(flags & FLAG_PARITY),
            file_id=file_id,
        )

    def __repr__(self) -> str:
        kind = "parity" if self.is_parity_shard else "data"
        return f"Shard({short_id(self.file_id)}#{self.index}, {kind}, {len(self.data)} bytes)"


def _xor_fold(slices: Sequence[bytes], size: int) -> int:
    # Slices are zero-padded on the right to the common size
    folded = 0
    for piece in slices:
        folded ^= int.from_bytes(piece.ljust(size, b"\x00"), "big")
    return folded


def _parity_slice(folded: int, parity_index: int, size: int) -> bytes:
    stream = int.from_bytes(random.Random(parity_index).randbytes(size), "big")
    return (folded ^ stream).to_bytes(size, "big")


class ShardManager:
    """
    Creates shards from containers and rebuilds containers from shards.

    Usage:
        manager = ShardManager(data_shards=10, parity_shards=4)
        shards = manager.create_shards(container)
        container = manager.reconstruct_from_shards(shards)
    """

    __slots__ = ("_data_shards", "_parity_shards")

    def __init__(
        self,
        data_shards: int = DEFAULT_DATA_SHARDS,
        parity_shards: int = DEFAULT_PARITY_SHARDS,
    ) -> None:
        if data_shards <= 0 or parity_shards <= 0:
            raise ValueError("Shard counts must be positive")
        self._data_shards = data_shards
        self._parity_shards = parity_shards

    @property
    def data_shards(self) -> int:
        return self._data_shards

    @property
    def parity_shards(self) -> int:
        return self._parity_shards

    @property
    def total_shards(self) -> int:
        return self._data_shards + self._parity_shards

    def create_shards(self, container: EncryptedFileContainer) -> list[Shard]:
        """
        Serialize a container into data shards followed by parity shards.

        Returns:
            data_shards + parity_shards shards, indexed 0..total-1
        """
        payload = container.to_bytes()
        shard_size = -(-len(payload) // self._data_shards)

        slices = [
            payload[i * shard_size:(i + 1) * shard_size]
            for i in range(self._data_shards)
        ]

        shards = [
            Shard(
                index=i,
                data=piece,
                hash=sha256_hex(piece),
                is_parity_shard=False,
                file_id=container.file_id,
            )
            for i, piece in enumerate(slices)
        ]

        folded = _xor_fold(slices, shard_size)
        for p in range(self._parity_shards):
            parity = _parity_slice(folded, p, shard_size)
            shards.append(Shard(
                index=self._data_shards + p,
                data=parity,
                hash=sha256_hex(parity),
                is_parity_shard=True,
                file_id=container.file_id,
            ))

        logger.debug(
            "Created %d shards (%d data + %d parity, %d bytes each) for %s",
            len(shards), self._data_shards, self._parity_shards,
            shard_size, short_id(container.file_id),
        )
        return shards

    def available_data_slots(
        self,
        shards: Sequence[Optional[Shard]],
        file_id: Optional[str] = None,
    ) -> dict[int, Shard]:
        """
        Map each usable data slot to its shard.

        A slot is usable when its shard is present, is not a parity shard,
        belongs to file_id (if given) and passes its hash check.
        """
        slots: dict[int, Shard] = {}
        for shard in shards:
            if shard is None or shard.is_parity_shard:
                continue
            if not 0 <= shard.index < self._data_shards:
                continue
            if file_id is not None and shard.file_id != file_id:
                logger.warning("Ignoring shard of another file in data slot %d", shard.index)
                continue
            if not shard.verify():
                logger.warning("Data shard %d failed hash check", shard.index)
                continue
            slots[shard.index] = shard
        return slots

    def reconstruct_from_shards(
        self,
        shards: Sequence[Optional[Shard]],
        data_shards: Optional[int] = None,
        file_id: Optional[str] = None,
    ) -> EncryptedFileContainer:
        """
        Rebuild a container from its data shards.

        Args:
            shards: Shards in any order, with None for missing entries
            data_shards: Data shard count (defaults to this manager's)
            file_id: If given, shards of other files are rejected

        Returns:
            The deserialized container

        Raises:
            NotEnoughShards: If any data slot is missing or corrupt
            CorruptContainer: If the reassembled bytes do not decode
        """
        if data_shards is not None and data_shards != self._data_shards:
            return ShardManager(data_shards, self._parity_shards).reconstruct_from_shards(
                shards, file_id=file_id,
            )

        slots = self.available_data_slots(shards, file_id)
        if len(slots) < self._data_shards:
            raise NotEnoughShards(available=len(slots), required=self._data_shards)

        payload = b"".join(slots[i].data for i in range(self._data_shards))
        return EncryptedFileContainer.from_bytes(payload)
