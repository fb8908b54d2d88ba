"""Tests for LocalFileBackend."""

import io
from pathlib import Path

import pytest

from adaptive_capture.data import LocalFileBackend, StorageBackend


class TestLocalFileBackendUpload:
    """Tests for atomic uploads."""

    @pytest.mark.asyncio
    async def test_writes_whole_stream(self, tmp_path: Path) -> None:
        backend = LocalFileBackend(tmp_path)
        content = io.BytesIO(b"\xff\xd8jpeg bytes")
        content.seek(5)

        assert await backend.upload(content, "primary.jpg")

        assert (tmp_path / "primary.jpg").read_bytes() == b"\xff\xd8jpeg bytes"
        assert content.tell() == 0

    @pytest.mark.asyncio
    async def test_replaces_existing_without_temp_left(self, tmp_path: Path) -> None:
        (tmp_path / "status.json").write_text("old")
        backend = LocalFileBackend(tmp_path)

        assert await backend.upload(io.BytesIO(b"new"), "status.json")

        assert (tmp_path / "status.json").read_text() == "new"
        assert sorted(p.name for p in tmp_path.iterdir()) == ["status.json"]

    @pytest.mark.asyncio
    async def test_creates_root(self, tmp_path: Path) -> None:
        backend = LocalFileBackend(tmp_path / "nested" / "out")
        assert await backend.upload(io.BytesIO(b"x"), "secondary.jpg")
        assert (tmp_path / "nested" / "out" / "secondary.jpg").exists()

    @pytest.mark.asyncio
    async def test_os_error_returns_false(self, tmp_path: Path) -> None:
        """A root that is a regular file cannot hold blobs."""
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        content = io.BytesIO(b"data")

        assert not await LocalFileBackend(blocker).upload(content, "primary.jpg")
        assert content.tell() == 0

    @pytest.mark.asyncio
    async def test_failed_write_keeps_previous_file(self, tmp_path: Path) -> None:
        (tmp_path / "primary.jpg").write_bytes(b"previous")

        class BrokenStream(io.BytesIO):
            def read(self, *args):
                raise OSError("device unplugged")

        ok = await LocalFileBackend(tmp_path).upload(BrokenStream(b"x"), "primary.jpg")

        assert not ok
        assert (tmp_path / "primary.jpg").read_bytes() == b"previous"
        assert not (tmp_path / "primary.jpg.tmp").exists()

    @pytest.mark.parametrize("name", ["", ".", "..", "../escape.jpg", "a/b.jpg"])
    def test_invalid_names(self, tmp_path: Path, name: str) -> None:
        with pytest.raises(ValueError, match="Invalid blob name"):
            LocalFileBackend(tmp_path).path_for(name)


class TestLocalFileBackendDownload:
    """Tests for reading blobs back."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path: Path) -> None:
        backend = LocalFileBackend(tmp_path)
        await backend.upload(io.BytesIO(b"abc"), "status.json")
        assert await backend.download("status.json") == b"abc"

    @pytest.mark.asyncio
    async def test_missing_is_none(self, tmp_path: Path) -> None:
        assert await LocalFileBackend(tmp_path).download("status.json") is None

    @pytest.mark.asyncio
    async def test_unreadable_is_none(self, tmp_path: Path) -> None:
        (tmp_path / "status.json").mkdir()
        assert await LocalFileBackend(tmp_path).download("status.json") is None


class TestBackendProtocol:
    """LocalFileBackend satisfies StorageBackend."""

    def test_isinstance(self, tmp_path: Path) -> None:
        assert isinstance(LocalFileBackend(tmp_path), StorageBackend)

    def test_repr(self, tmp_path: Path) -> None:
        assert str(tmp_path) in repr(LocalFileBackend(tmp_path))
