"""
Core module - Configuration, logging, errors and the cryptographic pipeline.
"""

from libredrive.core.config import StorageConfig
from libredrive.core.errors import LibreDriveError
from libredrive.core.logging import SecureLogFilter, configure_logging, get_secure_logger

__all__ = [
    "StorageConfig",
    "LibreDriveError",
    "SecureLogFilter",
    "configure_logging",
    "get_secure_logger",
]
