"""Alternating two-slot image storage.

Every stored frame goes to the slot that is *not* current, and only after
that write completes does the status record move to point at it. A crash
mid-write can therefore only damage the non-current slot; the slot named by
``status.json`` is always a complete image.

Sequence for one store:

1. target = not ``last_status.is_primary`` (the first store goes to primary)
2. upload image to ``primary.<ext>`` or ``secondary.<ext>``; on failure
   return False with the status untouched
3. update the in-memory status (slot, timestamp) and upload ``status.json``;
   on failure return False (the previous slot stays valid on disk)

Readers recover the latest image with ``read_status()`` and
``latest_image_name()``.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from dataclasses import replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, BinaryIO

from adaptive_capture.data.status import STATUS_FILE_NAME, StatusRecord, image_name
from adaptive_capture.observability import get_logger
from adaptive_capture.utils.streams import buffer_size

if TYPE_CHECKING:
    from adaptive_capture.data.backends import StorageBackend

logger = get_logger(__name__)

__all__ = ["StorageManager"]


def _utc_now() -> datetime:
    """Current UTC time, timezone-aware."""
    return datetime.now(UTC)


class StorageManager:
    """Persists frames into alternating slots plus a status record.

    Single writer. ``store_image`` never raises; every failure is logged and
    reported as False.

    Attributes:
        backend: Where slot files and the status record are written.
        image_extension: Extension of the slot files.
    """

    def __init__(
        self,
        backend: StorageBackend,
        now: Callable[[], datetime] | None = None,
        image_extension: str = "jpg",
    ) -> None:
        """Create a manager with a fresh status (``is_primary=False``).

        Args:
            backend: Blob storage for slots and status.
            now: Timestamp source, UTC by default. Injectable for tests.
            image_extension: Slot file extension without the dot.
        """
        self.backend = backend
        self.image_extension = image_extension
        self._now = now or _utc_now
        self._status = StatusRecord()

    @property
    def last_status(self) -> StatusRecord:
        """Point-in-time copy of the in-memory status record."""
        return replace(self._status)

    async def store_image(self, buffer: BinaryIO) -> bool:
        """Store one encoded frame in the non-current slot.

        Args:
            buffer: Frame bytes. Read from position 0 and left rewound.

        Returns:
            True when both the image and the status record were written.
        """
        target_is_primary = not self._status.is_primary
        slot = "primary" if target_is_primary else "secondary"
        try:
            name = image_name(target_is_primary, self.image_extension)
            logger.debug(
                "Storing image",
                slot=slot,
                size_kib=buffer_size(buffer) // 1024,
            )
            if not await self.backend.upload(buffer, name):
                logger.warning("Image upload failed", name=name)
                return False

            self._status = StatusRecord(
                is_primary=target_is_primary,
                timestamp=self._now(),
            )
            status_bytes = self._status.to_json().encode("utf-8")
            with io.BytesIO(status_bytes) as status_buffer:
                stored = await self.backend.upload(status_buffer, STATUS_FILE_NAME)
            if not stored:
                logger.warning("Could not store status file")
                return False
        except Exception as e:
            logger.exception("Storing image failed", slot=slot, error=str(e))
            return False

        logger.debug("Stored image", slot=slot)
        return True

    async def read_status(self) -> StatusRecord | None:
        """Load the persisted status record.

        Returns:
            The record, or None if it is missing or malformed.
        """
        data = await self.backend.download(STATUS_FILE_NAME)
        if data is None:
            return None
        try:
            return StatusRecord.from_json(data)
        except ValueError as e:
            logger.warning("Persisted status record unreadable", error=str(e))
            return None

    async def latest_image_name(self) -> str | None:
        """Name of the slot holding the newest complete image.

        Returns:
            ``primary.<ext>`` or ``secondary.<ext>``, or None before the first
            successful store.
        """
        status = await self.read_status()
        if status is None:
            return None
        return image_name(status.is_primary, self.image_extension)
