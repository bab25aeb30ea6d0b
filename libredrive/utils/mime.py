"""
MIME type inference from file names.
"""

from __future__ import annotations

from typing import Final

DEFAULT_MIME_TYPE: Final[str] = "application/octet-stream"

_MIME_TYPES: Final[dict[str, str]] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "pdf": "application/pdf",
    "doc": "application/msword",
    "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "xls": "application/vnd.ms-excel",
    "xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "mp4": "video/mp4",
    "mp3": "audio/mpeg",
    "zip": "application/zip",
    "txt": "text/plain",
}


def guess_mime_type(file_name: str) -> str:
    """Infer a MIME type from the extension; unknown extensions get octet-stream."""
    if "." not in file_name:
        return DEFAULT_MIME_TYPE
    extension = file_name.rsplit(".", 1)[1].lower()
    return _MIME_TYPES.get(extension, DEFAULT_MIME_TYPE)
