"""Raspberry Pi camera pipeline via picamera2.

Maps the pipeline capabilities onto picamera2/libcamera:

- sensor still port -> resizer: still configuration with a ``main`` stream
  of the configured size (libcamera scales on the ISP)
- encoder: picamera2's JPEG encoder at the configured quality
- preview -> null sink: no preview is started
- exposure preset: ``ExposureTime`` in microseconds and ``AnalogueGain`` =
  ISO / 100 with auto exposure disabled; the auto preset re-enables AE

picamera2 (and libcamera's Python bindings) exist only on Raspberry Pi OS,
so the import happens when the first pipeline is created.

Example:
    driver = Picamera2PipelineDriver(width=1024, height=768, rotation=180)
    pipeline = driver.create_pipeline()
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, BinaryIO

from adaptive_capture.devices.exposure import AUTO_PRESET, ExposurePreset
from adaptive_capture.observability import get_logger

if TYPE_CHECKING:
    from picamera2 import Picamera2

logger = get_logger(__name__)

__all__ = ["Picamera2PipelineDriver", "Picamera2Pipeline", "preset_controls"]

_ISO_PER_UNIT_GAIN = 100


def preset_controls(preset: ExposurePreset) -> dict[str, Any]:
    """libcamera controls for an exposure preset.

    Example:
        >>> preset_controls(ExposurePreset(1_200_000, 800, "dim"))
        {'AeEnable': False, 'ExposureTime': 1200000, 'AnalogueGain': 8.0}
    """
    if preset.is_auto:
        return {"AeEnable": True}

    controls: dict[str, Any] = {"AeEnable": False}
    if preset.shutter_us:
        controls["ExposureTime"] = preset.shutter_us
    if preset.iso:
        controls["AnalogueGain"] = preset.iso / _ISO_PER_UNIT_GAIN
    return controls


class Picamera2PipelineDriver:
    """Owns the single ``Picamera2`` instance for the process."""

    def __init__(
        self,
        width: int = 1024,
        height: int = 768,
        rotation: int = 180,
        jpeg_quality: int = 90,
        camera_num: int = 0,
    ) -> None:
        """Remember pipeline settings; the camera is opened lazily.

        Args:
            width: Still width after scaling.
            height: Still height after scaling.
            rotation: 0 or 180 degrees.
            jpeg_quality: Encoder quality 1-100.
            camera_num: libcamera camera index.

        Raises:
            ValueError: If rotation is not 0 or 180.
        """
        if rotation not in (0, 180):
            raise ValueError(f"rotation must be 0 or 180, got {rotation}")
        self.width = width
        self.height = height
        self.rotation = rotation
        self.jpeg_quality = jpeg_quality
        self.camera_num = camera_num
        self._camera: Picamera2 | None = None

    def _acquire(self) -> Picamera2:
        if self._camera is None:
            from picamera2 import Picamera2

            self._camera = Picamera2(self.camera_num)
            logger.info("Camera acquired", camera_num=self.camera_num)
        return self._camera

    def create_pipeline(self) -> Picamera2Pipeline:
        """Acquire the camera if needed and return a fresh pipeline."""
        return Picamera2Pipeline(self, self._acquire())

    def cleanup(self) -> None:
        """Close the camera so other processes can use it. Idempotent."""
        if self._camera is not None:
            camera, self._camera = self._camera, None
            camera.close()
            logger.info("Unmanaged camera resources cleaned up")


class Picamera2Pipeline:
    """One configured still pipeline on a shared ``Picamera2``."""

    def __init__(self, driver: Picamera2PipelineDriver, camera: Picamera2) -> None:
        self._driver = driver
        self._camera = camera
        self._preset: ExposurePreset = AUTO_PRESET
        self._output: BinaryIO | None = None
        self._started = False

    def configure(self, preset: ExposurePreset) -> None:
        """Build the still configuration and apply the exposure controls."""
        from libcamera import Transform

        flip = 1 if self._driver.rotation == 180 else 0
        still = self._camera.create_still_configuration(
            main={"size": (self._driver.width, self._driver.height)},
            transform=Transform(hflip=flip, vflip=flip),
            controls=preset_controls(preset),
        )
        self._camera.configure(still)
        self._camera.options["quality"] = self._driver.jpeg_quality
        self._preset = preset
        logger.debug(
            "Sensor configured",
            shutter_us=preset.shutter_us,
            iso=preset.iso,
        )

    def connect(self, output: BinaryIO) -> None:
        """Start the sensor and route encoded stills into ``output``."""
        self._output = output
        self._camera.start()
        self._started = True

    async def run_once(self) -> None:
        """Capture one JPEG without blocking the event loop.

        Raises:
            RuntimeError: If the pipeline is not connected.
        """
        if self._output is None or not self._started:
            raise RuntimeError("Pipeline output not connected")
        output = self._output
        await asyncio.to_thread(self._camera.capture_file, output, format="jpeg")

    def dispose(self) -> None:
        """Stop the sensor; the camera itself stays open for the next build."""
        if self._started:
            self._started = False
            self._camera.stop()
        self._output = None
