"""
Utils module - Validation and naming helpers.
"""

from libredrive.utils.mime import guess_mime_type
from libredrive.utils.validators import ValidationError, validate_file_name

__all__ = [
    "guess_mime_type",
    "ValidationError",
    "validate_file_name",
]
