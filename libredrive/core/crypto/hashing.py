"""
Content Hashing and Merkle Trees
================================

SHA-256 content hashes and a Merkle tree over ordered chunk hashes.

Tree construction:
    - Adjacent hex digests are concatenated as strings, UTF-8 encoded and
      hashed to form the next level.
    - An odd level pairs its last digest with itself.
    - Zero leaves: the root is the hash of empty input.
    - One leaf: the root is that leaf, not re-hashed.

The root is a pure, order-sensitive function of the leaf list.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Final, Sequence

EMPTY_HASH: Final[str] = hashlib.sha256(b"").hexdigest()


def sha256_hex(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of data."""
    return hashlib.sha256(data).hexdigest()


def digests_equal(a: str, b: str) -> bool:
    """Constant-time comparison of two hex digests."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def _hash_pair(left: str, right: str) -> str:
    return sha256_hex((left + right).encode("utf-8"))


def _next_level(level: Sequence[str]) -> list[str]:
    next_level = []
    for i in range(0, len(level), 2):
        left = level[i]
        right = level[i + 1] if i + 1 < len(level) else left
        next_level.append(_hash_pair(left, right))
    return next_level


def merkle_root(hashes: Sequence[str]) -> str:
    """
    Compute the Merkle root of an ordered list of hex digests.

    Args:
        hashes: Leaf digests in chunk order

    Returns:
        Root digest as lowercase hex
    """
    if not hashes:
        return EMPTY_HASH
    if len(hashes) == 1:
        return hashes[0]

    level = list(hashes)
    while len(level) > 1:
        level = _next_level(level)
    return level[0]


def merkle_proof(hashes: Sequence[str], index: int) -> list[tuple[str, bool]]:
    """
    Build the audit path for one leaf.

    Args:
        hashes: Leaf digests in chunk order
        index: Leaf position

    Returns:
        List of (sibling_digest, sibling_is_left) from leaf level upwards

    Raises:
        IndexError: If index is out of range
    """
    if not 0 <= index < len(hashes):
        raise IndexError(f"Leaf index {index} out of range for {len(hashes)} leaves")

    proof: list[tuple[str, bool]] = []
    level = list(hashes)
    position = index
    while len(level) > 1:
        if position % 2 == 0:
            sibling = level[position + 1] if position + 1 < len(level) else level[position]
            proof.append((sibling, False))
        else:
            proof.append((level[position - 1], True))
        level = _next_level(level)
        position //= 2
    return proof


def verify_merkle_proof(leaf: str, proof: Sequence[tuple[str, bool]], root: str) -> bool:
    """Check that a leaf digest and its audit path reproduce the root."""
    current = leaf
    for sibling, sibling_is_left in proof:
        current = _hash_pair(sibling, current) if sibling_is_left else _hash_pair(current, sibling)
    return digests_equal(current, root)
