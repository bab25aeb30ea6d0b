"""
LibreDrive File Operations Module
=================================

Chunked file encryption and verified decryption.

Components:
- container.py: EncryptedFileContainer and its binary format
- encrypt.py: plaintext -> container
- decrypt.py: container -> plaintext, whole-file or single chunk
"""

from libredrive.core.file_ops.container import EncryptedChunk, EncryptedFileContainer
from libredrive.core.file_ops.decrypt import FileDecryptor
from libredrive.core.file_ops.encrypt import FileEncryptor

__all__ = [
    "EncryptedChunk",
    "EncryptedFileContainer",
    "FileEncryptor",
    "FileDecryptor",
]
