"""Image codec abstractions for dependency injection.

The camera session only needs to turn an encoded calibration frame back into
pixels; the simulated pipeline needs to encode synthetic frames. Both go
through small protocols so tests can substitute fakes, and OpenCV is only
imported when a real codec is instantiated.

Architecture:
    ImageDecoder (Protocol) <- CV2ImageDecoder (real)
    ImageEncoder (Protocol) <- CV2ImageEncoder (real)

Usage:
    decoder = CV2ImageDecoder()
    pixels = decoder.decode(jpeg_bytes)  # (H, W, 3) BGR uint8, or None
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ["ImageDecoder", "ImageEncoder", "CV2ImageDecoder", "CV2ImageEncoder"]


@runtime_checkable
class ImageDecoder(Protocol):
    """Turns an encoded image into a BGR pixel array."""

    def decode(self, data: bytes) -> NDArray[Any] | None:
        """Decode an encoded image.

        Args:
            data: Encoded image bytes (JPEG from the camera encoder).

        Returns:
            ``(H, W, 3)`` uint8 array in BGR order, or None when the data is
            not a decodable image.
        """
        ...  # pragma: no cover


@runtime_checkable
class ImageEncoder(Protocol):
    """Turns a pixel array into JPEG bytes."""

    def encode_jpeg(self, img: NDArray[Any], quality: int = 90) -> bytes:
        """Encode a BGR or grayscale array as JPEG.

        Args:
            img: uint8 image array.
            quality: JPEG quality 1-100.

        Returns:
            JPEG bytes starting with the 0xFFD8 marker.

        Raises:
            ValueError: If quality is out of range or encoding fails.
        """
        ...  # pragma: no cover


class CV2ImageDecoder(ImageDecoder):
    """OpenCV decoder using ``cv2.imdecode`` with ``IMREAD_COLOR``.

    ``IMREAD_COLOR`` always yields three channels, so grayscale JPEGs are
    metered the same way as color ones.
    """

    def __init__(self) -> None:
        """Import OpenCV and numpy on first instantiation.

        Raises:
            ImportError: If opencv-python-headless is not installed.
        """
        import cv2
        import numpy as np

        self._cv2 = cv2
        self._np = np

    def decode(self, data: bytes) -> NDArray[Any] | None:
        """Decode ``data``; empty or corrupt input yields None."""
        if not data:
            return None
        raw = self._np.frombuffer(data, dtype=self._np.uint8)
        img = self._cv2.imdecode(raw, self._cv2.IMREAD_COLOR)
        if img is None or img.size == 0:
            return None
        return img


class CV2ImageEncoder(ImageEncoder):
    """OpenCV JPEG encoder using ``cv2.imencode``."""

    def __init__(self) -> None:
        """Import OpenCV on first instantiation.

        Raises:
            ImportError: If opencv-python-headless is not installed.
        """
        import cv2

        self._cv2 = cv2

    def encode_jpeg(self, img: NDArray[Any], quality: int = 90) -> bytes:
        """Encode ``img`` as JPEG at the given quality.

        Raises:
            ValueError: If quality is outside 1-100 or OpenCV reports failure.

        Example:
            >>> encoder = CV2ImageEncoder()
            >>> encoder.encode_jpeg(np.zeros((8, 8, 3), np.uint8))[:2]
            b'\\xff\\xd8'
        """
        if not 1 <= quality <= 100:
            raise ValueError(f"quality must be 1-100, got {quality}")
        success, data = self._cv2.imencode(
            ".jpg", img, [self._cv2.IMWRITE_JPEG_QUALITY, quality]
        )
        if not success:
            raise ValueError(
                f"JPEG encoding failed for image shape={img.shape}, dtype={img.dtype}"
            )
        return data.tobytes()
