"""Digital Twin Camera Pipeline - Simulated Hardware for Testing.

Stands in for the Raspberry Pi camera pipeline during development and in
tests. Frames are rendered from a simulated scene whose ambient light level
can be changed at runtime, and the configured exposure preset brightens the
frame the way a long shutter and high ISO would on a real sensor, so the
calibration loop converges like it does outdoors.

Image Sources:
    Synthetic: Uniform scene at ``scene_lightness`` with a faint grid
    File: Same image every capture
    Directory: Cycle through the images in a folder

Fault injection:
    ``fail_next_runs(n)``: next n captures produce no bytes
    ``error_next_runs(n)``: next n captures raise RuntimeError
    ``TwinPipelineConfig.fail_on_build``: every ``create_pipeline()`` raises

The driver counts builds, runs, disposals and cleanups and remembers every
preset it was configured with, so tests can observe recalibration.

Example:
    driver = DigitalTwinPipelineDriver(TwinPipelineConfig(scene_lightness=0.05))
    pipeline = driver.create_pipeline()
    pipeline.configure(DIM_PRESET)
    pipeline.connect(buffer)
    await pipeline.run_once()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, BinaryIO, final

import numpy as np

from adaptive_capture.devices.exposure import AUTO_PRESET, ExposurePreset
from adaptive_capture.observability import get_logger

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from adaptive_capture.utils.image import ImageEncoder

logger = get_logger(__name__)

__all__ = [
    "DigitalTwinPipeline",
    "DigitalTwinPipelineDriver",
    "ImageSource",
    "TwinPipelineConfig",
]

# Auto exposure reference: 1/60 s at ISO 100 renders the scene as-is
_REFERENCE_SHUTTER_S = 1 / 60
_REFERENCE_ISO = 100

_SYNTHETIC_GRID_SPACING = 64
_IMAGE_SUFFIXES = (".jpg", ".jpeg", ".png", ".bmp")


class ImageSource(Enum):
    """Image source for the digital twin pipeline."""

    SYNTHETIC = "synthetic"
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class TwinPipelineConfig:
    """Configuration for the simulated pipeline.

    Attributes:
        scene_lightness: Ambient light of the synthetic scene in [0, 1].
        image_source: Where frames come from.
        image_path: File or directory for FILE/DIRECTORY sources.
        width: Output width after the resizer.
        height: Output height after the resizer.
        jpeg_quality: Encoder quality 1-100.
        fail_on_build: Make ``create_pipeline()`` raise, simulating a camera
            that cannot be acquired.
    """

    scene_lightness: float = 0.5
    image_source: ImageSource = ImageSource.SYNTHETIC
    image_path: Path | None = None
    width: int = 1024
    height: int = 768
    jpeg_quality: int = 90
    fail_on_build: bool = False


def exposure_gain(preset: ExposurePreset) -> float:
    """How much brighter than auto exposure a preset renders the scene.

    Auto presets return 1.0. Manual presets scale with shutter time and ISO
    relative to 1/60 s at ISO 100; a zero field falls back to the reference
    value for that field.

    Example:
        >>> exposure_gain(AUTO_PRESET)
        1.0
    """
    if preset.is_auto:
        return 1.0
    shutter_s = preset.shutter_s or _REFERENCE_SHUTTER_S
    iso = preset.iso or _REFERENCE_ISO
    return (shutter_s / _REFERENCE_SHUTTER_S) * (iso / _REFERENCE_ISO)


@final
class DigitalTwinPipelineDriver:
    """Creates simulated pipelines and records how they were used."""

    def __init__(
        self,
        config: TwinPipelineConfig | None = None,
        encoder: ImageEncoder | None = None,
    ) -> None:
        """Create the driver.

        Args:
            config: Scene and output settings. Defaults to a synthetic scene
                at lightness 0.5.
            encoder: JPEG encoder. Defaults to the OpenCV encoder, created
                on first capture.
        """
        self.config = config or TwinPipelineConfig()
        self.scene_lightness = self.config.scene_lightness
        self._encoder = encoder
        self._image_files: list[Path] = []
        self._image_index = 0
        self._empty_runs_pending = 0
        self._error_runs_pending = 0

        self.builds = 0
        self.runs = 0
        self.disposals = 0
        self.cleanups = 0
        self.presets: list[ExposurePreset] = []

        if self.config.image_source == ImageSource.DIRECTORY:
            self._load_image_files()

        logger.info(
            "Digital twin pipeline driver initialized",
            image_source=self.config.image_source.value,
            scene_lightness=self.scene_lightness,
        )

    def __repr__(self) -> str:
        return (
            f"DigitalTwinPipelineDriver(source={self.config.image_source.value}, "
            f"scene_lightness={self.scene_lightness})"
        )

    @property
    def encoder(self) -> ImageEncoder:
        """JPEG encoder, created lazily so tests can run without one."""
        if self._encoder is None:
            from adaptive_capture.utils.image import CV2ImageEncoder

            self._encoder = CV2ImageEncoder()
        return self._encoder

    def fail_next_runs(self, count: int = 1) -> None:
        """Make the next ``count`` captures produce no bytes."""
        self._empty_runs_pending += count

    def error_next_runs(self, count: int = 1) -> None:
        """Make the next ``count`` captures raise RuntimeError."""
        self._error_runs_pending += count

    def create_pipeline(self) -> DigitalTwinPipeline:
        """Return a fresh simulated pipeline.

        Raises:
            RuntimeError: If ``fail_on_build`` is set.
        """
        if self.config.fail_on_build:
            raise RuntimeError("Simulated camera could not be acquired")
        self.builds += 1
        return DigitalTwinPipeline(self)

    def cleanup(self) -> None:
        """Count the cleanup call; nothing to release in simulation."""
        self.cleanups += 1

    def _load_image_files(self) -> None:
        """Collect image files from the configured directory, sorted by name."""
        path = self.config.image_path
        if path is None or not Path(path).is_dir():
            logger.warning("Image directory not found", path=str(path))
            return
        self._image_files = sorted(
            p for p in Path(path).iterdir() if p.suffix.lower() in _IMAGE_SUFFIXES
        )
        logger.info("Loaded image directory", count=len(self._image_files))

    def _take_fault(self) -> str | None:
        """Consume one pending injected fault, if any."""
        if self._error_runs_pending:
            self._error_runs_pending -= 1
            return "error"
        if self._empty_runs_pending:
            self._empty_runs_pending -= 1
            return "empty"
        return None

    def render(self, preset: ExposurePreset) -> bytes:
        """Produce one encoded frame for ``preset``.

        Raises:
            RuntimeError: When an injected error is pending.
        """
        self.runs += 1
        fault = self._take_fault()
        if fault == "error":
            raise RuntimeError("Simulated capture error")
        if fault == "empty":
            return b""

        source = self.config.image_source
        img: NDArray[Any] | None = None
        if source == ImageSource.FILE:
            img = self._read_image(self.config.image_path)
        elif source == ImageSource.DIRECTORY and self._image_files:
            img = self._read_image(self._image_files[self._image_index])
            self._image_index = (self._image_index + 1) % len(self._image_files)
        if img is None:
            img = self._synthetic_frame()

        gain = exposure_gain(preset)
        if gain != 1.0:
            img = np.clip(img.astype(np.float64) * gain, 0, 255).astype(np.uint8)

        return self.encoder.encode_jpeg(img, quality=self.config.jpeg_quality)

    def _read_image(self, path: Path | None) -> NDArray[Any] | None:
        """Load and resize an image file; None if it cannot be read."""
        if path is None or not Path(path).is_file():
            return None

        import cv2

        img = cv2.imread(str(path))
        if img is None:
            return None
        if img.shape[1] != self.config.width or img.shape[0] != self.config.height:
            img = cv2.resize(img, (self.config.width, self.config.height))
        return img

    def _synthetic_frame(self) -> NDArray[Any]:
        """Uniform gray frame at the scene lightness with a faint grid."""
        level = int(round(min(max(self.scene_lightness, 0.0), 1.0) * 255))
        img = np.full((self.config.height, self.config.width, 3), level, np.uint8)
        grid = max(level - 8, 0)
        img[::_SYNTHETIC_GRID_SPACING, :] = grid
        img[:, ::_SYNTHETIC_GRID_SPACING] = grid
        return img


class DigitalTwinPipeline:
    """One simulated pipeline; see ``CameraPipeline`` for the contract."""

    def __init__(self, driver: DigitalTwinPipelineDriver) -> None:
        self._driver = driver
        self._preset: ExposurePreset = AUTO_PRESET
        self._output: BinaryIO | None = None
        self.disposed = False

    @property
    def preset(self) -> ExposurePreset:
        """Preset applied by ``configure()``."""
        return self._preset

    def configure(self, preset: ExposurePreset) -> None:
        """Store the preset and record it on the driver."""
        self._preset = preset
        self._driver.presets.append(preset)

    def connect(self, output: BinaryIO) -> None:
        """Attach the encoder output buffer."""
        self._output = output

    async def run_once(self) -> None:
        """Render one frame into the connected output.

        Raises:
            RuntimeError: If the pipeline is disposed, not connected, or an
                injected error is pending.
        """
        if self.disposed:
            raise RuntimeError("Pipeline already disposed")
        if self._output is None:
            raise RuntimeError("Pipeline output not connected")

        # Yield like real hardware completion would
        await asyncio.sleep(0)
        data = self._driver.render(self._preset)
        if data:
            self._output.write(data)

    def dispose(self) -> None:
        """Mark the pipeline disposed; counted once."""
        if not self.disposed:
            self.disposed = True
            self._output = None
            self._driver.disposals += 1
