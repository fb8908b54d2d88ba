"""Scene lightness metering.

Reduces a frame to one number in [0, 1] describing how bright the scene is,
using the perceived-luminance weighting::

    Y = 0.114 * B + 0.587 * G + 0.299 * R

averaged over every pixel and divided by 255. The exposure policy turns this
number into shutter/ISO settings.

Pixel buffers are row-major with blue, green, red (and optionally alpha)
byte order. Rows may be padded, so the row stride is passed explicitly.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from adaptive_capture.utils.image import ImageDecoder

__all__ = [
    "LUMA_WEIGHTS_BGR",
    "measure_lightness",
    "measure_image_lightness",
    "measure_encoded_lightness",
]

#: Perceived luminance weights in buffer order (blue, green, red).
LUMA_WEIGHTS_BGR: tuple[float, float, float] = (0.114, 0.587, 0.299)

_SUPPORTED_PIXEL_SIZES = (3, 4)


def measure_lightness(
    buffer: bytes | bytearray | memoryview | NDArray[Any],
    width: int,
    height: int,
    stride: int | None = None,
    bytes_per_pixel: int = 3,
) -> float:
    """Average perceived luminance of a raw BGR/BGRA buffer, normalized.

    Only the first ``width * bytes_per_pixel`` bytes of each row are read;
    any row padding and the alpha byte are ignored.

    Args:
        buffer: Raw pixel bytes, at least
            ``(height - 1) * stride + width * bytes_per_pixel`` long.
        width: Image width in pixels.
        height: Image height in pixels.
        stride: Bytes from the start of one row to the next. Defaults to
            ``width * bytes_per_pixel`` (no padding).
        bytes_per_pixel: 3 for BGR, 4 for BGRA.

    Returns:
        Brightness in [0, 1]: 0.0 for an all-black image, 1.0 for all-white.

    Raises:
        ValueError: If the image is empty, the pixel size is unsupported,
            the stride is shorter than a row, or the buffer is too short.

    Example:
        >>> round(measure_lightness(b"\\xff" * 12, width=2, height=2), 6)
        1.0
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Cannot meter an empty image ({width}x{height})")
    if bytes_per_pixel not in _SUPPORTED_PIXEL_SIZES:
        raise ValueError(
            f"bytes_per_pixel must be 3 or 4, got {bytes_per_pixel}"
        )

    row_bytes = width * bytes_per_pixel
    if stride is None:
        stride = row_bytes
    if stride < row_bytes:
        raise ValueError(f"stride {stride} is shorter than a row ({row_bytes} bytes)")

    if isinstance(buffer, np.ndarray):
        flat = np.ascontiguousarray(buffer, dtype=np.uint8).reshape(-1)
    else:
        flat = np.frombuffer(buffer, dtype=np.uint8)
    required = (height - 1) * stride + row_bytes
    if flat.size < required:
        raise ValueError(
            f"Buffer holds {flat.size} bytes, {required} needed for "
            f"{width}x{height} at stride {stride}"
        )

    pixels = np.lib.stride_tricks.as_strided(
        flat,
        shape=(height, width, bytes_per_pixel),
        strides=(stride, bytes_per_pixel, 1),
        writeable=False,
    )
    bgr = pixels[..., :3].astype(np.float64)
    total = float(np.tensordot(bgr, LUMA_WEIGHTS_BGR, axes=([2], [0])).sum())

    return total / (width * height) / 255.0


def measure_image_lightness(image: NDArray[Any]) -> float:
    """Meter a decoded ``(H, W, 3)`` BGR or ``(H, W, 4)`` BGRA uint8 array.

    Raises:
        ValueError: If the array is not a 3- or 4-channel uint8 image or is
            empty.
    """
    if image.dtype != np.uint8 or image.ndim != 3:
        raise ValueError(
            f"Expected (H, W, 3|4) uint8 image, got shape={image.shape} "
            f"dtype={image.dtype}"
        )
    height, width, channels = image.shape
    contiguous = np.ascontiguousarray(image)
    return measure_lightness(
        contiguous.reshape(-1),
        width=width,
        height=height,
        stride=width * channels,
        bytes_per_pixel=channels,
    )


def measure_encoded_lightness(data: bytes, decoder: ImageDecoder) -> float | None:
    """Decode an encoded frame and meter it.

    Args:
        data: Encoded frame (JPEG).
        decoder: Decoder producing BGR arrays.

    Returns:
        Brightness in [0, 1], or None when the frame cannot be decoded or
        decodes to an empty image.
    """
    image = decoder.decode(data)
    if image is None or image.size == 0:
        return None
    return measure_image_lightness(image)
