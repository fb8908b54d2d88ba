"""Data storage for captured frames.

Frames are kept in two alternating slot files plus a status record that
points at the newest complete one.
"""

from adaptive_capture.data.backends import LocalFileBackend, StorageBackend
from adaptive_capture.data.status import (
    PRIMARY_STEM,
    SECONDARY_STEM,
    STATUS_FILE_NAME,
    StatusRecord,
    image_name,
)
from adaptive_capture.data.storage import StorageManager

__all__ = [
    "LocalFileBackend",
    "StorageBackend",
    "StorageManager",
    "StatusRecord",
    "image_name",
    "PRIMARY_STEM",
    "SECONDARY_STEM",
    "STATUS_FILE_NAME",
]
