"""Helpers for reusable in-memory frame buffers.

A frame buffer is a seekable binary stream (``io.BytesIO``) that is reused
across captures by truncating and rewinding instead of reallocating. An
empty buffer means "no valid capture".
"""

from __future__ import annotations

import io
import shutil
from typing import BinaryIO

__all__ = ["clear", "rewind", "copy_and_reset", "buffer_size"]


def clear(stream: BinaryIO) -> None:
    """Truncate ``stream`` to zero length and rewind it."""
    stream.seek(0, io.SEEK_SET)
    stream.truncate(0)


def rewind(stream: BinaryIO) -> None:
    """Move the position of ``stream`` back to its first byte."""
    stream.seek(0, io.SEEK_SET)


def buffer_size(stream: BinaryIO) -> int:
    """Total length of ``stream`` in bytes, leaving its position unchanged."""
    position = stream.tell()
    size = stream.seek(0, io.SEEK_END)
    stream.seek(position, io.SEEK_SET)
    return size


def copy_and_reset(source: BinaryIO, target: BinaryIO) -> int:
    """Move the contents of ``source`` into ``target``.

    ``target`` is cleared first, the whole of ``source`` is copied from its
    first byte, ``target`` is rewound so it can be read straight away, and
    ``source`` is cleared so the next capture starts empty.

    Args:
        source: Buffer holding the captured bytes.
        target: Buffer receiving them.

    Returns:
        Number of bytes copied.
    """
    clear(target)
    rewind(source)
    shutil.copyfileobj(source, target)
    copied = target.tell()
    rewind(target)
    clear(source)
    return copied
