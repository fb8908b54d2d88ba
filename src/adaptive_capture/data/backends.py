"""Storage backends for image slots and the status record.

A backend stores named blobs. The storage manager only relies on
``upload`` replacing the whole blob or leaving the old one in place, never
leaving a half-written blob under the target name.

Implementations:
    LocalFileBackend: Files in a directory, written via temp file + rename
"""

from __future__ import annotations

import asyncio
import os
import shutil
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

from adaptive_capture.observability import get_logger
from adaptive_capture.utils.streams import buffer_size, rewind

logger = get_logger(__name__)

__all__ = ["StorageBackend", "LocalFileBackend"]

_TEMP_SUFFIX = ".tmp"


@runtime_checkable
class StorageBackend(Protocol):  # pragma: no cover
    """Named blob storage used by ``StorageManager``."""

    async def upload(self, content: BinaryIO, name: str) -> bool:
        """Replace blob ``name`` with all bytes of ``content``.

        The source is read from position 0 and rewound to 0 afterwards.

        Returns:
            True on success, False when the write failed.
        """
        ...

    async def download(self, name: str) -> bytes | None:
        """Return the blob contents, or None if it does not exist."""
        ...


class LocalFileBackend:
    """Stores blobs as files under a root directory.

    File I/O runs in a worker thread so the event loop keeps servicing
    cancellation while a write is in progress.

    Example:
        backend = LocalFileBackend(Path("output"))
        ok = await backend.upload(io.BytesIO(jpeg), "primary.jpg")
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def __repr__(self) -> str:
        return f"LocalFileBackend(root={str(self.root)!r})"

    def path_for(self, name: str) -> Path:
        """Resolve a blob name to its file path.

        Raises:
            ValueError: If ``name`` is not a plain file name.
        """
        if not name or Path(name).name != name or name in (".", ".."):
            raise ValueError(f"Invalid blob name: {name!r}")
        return self.root / name

    async def upload(self, content: BinaryIO, name: str) -> bool:
        """Write ``content`` to ``root/name`` atomically.

        Returns:
            True on success, False when the file system refused the write.
        """
        path = self.path_for(name)
        size = buffer_size(content)
        logger.debug("Uploading", name=name, size_bytes=size)
        try:
            await asyncio.to_thread(self._write, content, path)
        except OSError as e:
            logger.error("Upload failed", name=name, error=str(e))
            return False
        logger.debug("Upload complete", name=name)
        return True

    def _write(self, content: BinaryIO, path: Path) -> None:
        rewind(content)
        tmp_path = path.with_name(path.name + _TEMP_SUFFIX)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "wb") as f:
                shutil.copyfileobj(content, f)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, path)
        except OSError:
            tmp_path.unlink(missing_ok=True)
            raise
        finally:
            rewind(content)

    async def download(self, name: str) -> bytes | None:
        """Read ``root/name``.

        Returns:
            File contents, or None if the file is missing or unreadable.
        """
        path = self.path_for(name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Download failed", name=name, error=str(e))
            return None
