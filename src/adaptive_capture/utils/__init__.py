"""Utility modules for adaptive-capture.

The OpenCV codec classes are loaded lazily through ``__getattr__`` so that
importing this package (for the stream helpers, say) never imports cv2.

Available exports:
    ImageDecoder, ImageEncoder: codec protocols (lazy)
    CV2ImageDecoder, CV2ImageEncoder: OpenCV implementations (lazy)
    measure_lightness, measure_image_lightness, measure_encoded_lightness
    clear, rewind, copy_and_reset, buffer_size

Example:
    from adaptive_capture.utils import CV2ImageDecoder, measure_encoded_lightness
    brightness = measure_encoded_lightness(jpeg_bytes, CV2ImageDecoder())
"""

from adaptive_capture.utils.lightness import (
    measure_encoded_lightness,
    measure_image_lightness,
    measure_lightness,
)
from adaptive_capture.utils.streams import (
    buffer_size,
    clear,
    copy_and_reset,
    rewind,
)

_LAZY_CODEC_NAMES = (
    "ImageDecoder",
    "ImageEncoder",
    "CV2ImageDecoder",
    "CV2ImageEncoder",
)

__all__ = [
    *_LAZY_CODEC_NAMES,
    "measure_lightness",
    "measure_image_lightness",
    "measure_encoded_lightness",
    "buffer_size",
    "clear",
    "copy_and_reset",
    "rewind",
]


def __getattr__(name: str) -> type:
    """Import the codec classes on first access and cache them.

    Raises:
        AttributeError: If ``name`` is not a public export.
    """
    if name in _LAZY_CODEC_NAMES:
        from adaptive_capture.utils import image

        for exported in _LAZY_CODEC_NAMES:
            globals()[exported] = getattr(image, exported)
        return globals()[name]
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    """List public exports, including the not-yet-loaded codec classes."""
    return [*__all__, "__all__", "__doc__", "__name__", "__file__"]
