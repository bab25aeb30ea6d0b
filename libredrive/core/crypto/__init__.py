"""
LibreDrive Cryptographic Core
=============================

Architecture:
    1. HKDF-SHA256: per-file key from the identity's master secret
    2. AES-256-GCM: authenticated encryption of each chunk
    3. SHA-256 + Merkle tree: plaintext integrity per chunk and per file

Security Properties:
    - All encryption is authenticated (AEAD)
    - File keys are recomputed on demand, never stored
    - Constant-time digest comparisons
    - Fresh random nonce for every chunk
"""

from libredrive.core.crypto.aes_gcm import AesGcmCipher, EncryptedData
from libredrive.core.crypto.hashing import merkle_proof, merkle_root, sha256_hex, verify_merkle_proof
from libredrive.core.crypto.kdf import (
    EnvironmentKeyProvider,
    FileKeyDeriver,
    MasterKeyProvider,
    StaticKeyProvider,
    derive_file_key,
)

__all__ = [
    "AesGcmCipher",
    "EncryptedData",
    "sha256_hex",
    "merkle_root",
    "merkle_proof",
    "verify_merkle_proof",
    "MasterKeyProvider",
    "StaticKeyProvider",
    "EnvironmentKeyProvider",
    "FileKeyDeriver",
    "derive_file_key",
]
