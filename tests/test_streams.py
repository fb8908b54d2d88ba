"""Unit tests for adaptive_capture.utils.streams."""

import io

from adaptive_capture.utils.streams import buffer_size, clear, copy_and_reset, rewind


class TestStreamHelpers:
    """Tests for clear, rewind and buffer_size."""

    def test_clear_truncates_and_rewinds(self) -> None:
        stream = io.BytesIO(b"frame")
        stream.seek(3)

        clear(stream)

        assert stream.getvalue() == b""
        assert stream.tell() == 0

    def test_rewind_keeps_contents(self) -> None:
        stream = io.BytesIO(b"frame")
        stream.seek(0, io.SEEK_END)

        rewind(stream)

        assert stream.tell() == 0
        assert stream.read() == b"frame"

    def test_buffer_size_preserves_position(self) -> None:
        stream = io.BytesIO(b"0123456789")
        stream.seek(4)

        assert buffer_size(stream) == 10
        assert stream.tell() == 4


class TestCopyAndReset:
    """Tests for copy_and_reset."""

    def test_moves_all_bytes(self) -> None:
        """Bytes are copied from the start even if source was at its end."""
        source = io.BytesIO()
        source.write(b"\xff\xd8jpeg")
        target = io.BytesIO()

        copied = copy_and_reset(source, target)

        assert copied == 6
        assert target.getvalue() == b"\xff\xd8jpeg"

    def test_target_rewound_source_cleared(self) -> None:
        source = io.BytesIO(b"new")
        target = io.BytesIO(b"old-and-longer")
        target.seek(0, io.SEEK_END)

        copy_and_reset(source, target)

        assert target.tell() == 0
        assert target.read() == b"new"
        assert source.getvalue() == b""
        assert source.tell() == 0

    def test_empty_source(self) -> None:
        """An empty source leaves an empty target."""
        target = io.BytesIO(b"stale")
        assert copy_and_reset(io.BytesIO(), target) == 0
        assert target.getvalue() == b""
