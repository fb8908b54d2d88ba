"""Driver configuration and factory.

Supports switching between the Raspberry Pi camera and the digital twin
pipeline for testing and development without physical hardware, and holds
the capture loop settings shared by the CLI and the device layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from adaptive_capture.drivers.pipelines import (
    DigitalTwinPipelineDriver,
    ImageSource,
    Picamera2PipelineDriver,
    PipelineDriver,
    TwinPipelineConfig,
)

if TYPE_CHECKING:
    from adaptive_capture.data.backends import StorageBackend

# =============================================================================
# Constants
# =============================================================================

DEFAULT_INTERVAL_S = 5.0
DEFAULT_SETTLE_S = 2.0
DEFAULT_STREAK_LENGTH = 12
DEFAULT_IMAGE_EXTENSION = "jpg"


class DriverMode(Enum):
    """Driver mode selection."""

    HARDWARE = "hardware"  # Raspberry Pi camera via picamera2
    DIGITAL_TWIN = "digital_twin"  # Simulated pipeline for testing


def _default_output_dir() -> Path:
    """Directory the image slots and status record are written to.

    Returns:
        ``./output`` relative to the working directory.
    """
    return Path("output")


@dataclass
class CaptureConfig:
    """Configuration for driver selection and capture loop settings.

    Attributes:
        mode: HARDWARE for the real camera, DIGITAL_TWIN for simulation.
        output_dir: Where primary/secondary images and status.json live.
        interval_s: Target period between capture starts, in seconds.
        settle_s: Delay after every pipeline rebuild before capturing.
        streak_length: Successful-path captures between recalibrations.
        image_extension: Extension of the slot files (without dot).
        width: Still width after the resizer.
        height: Still height after the resizer.
        jpeg_quality: Encoder quality 1-100.
        rotation: Sensor rotation, 0 or 180 degrees.
        twin_scene_lightness: Ambient light of the simulated scene.
        twin_image_path: Image file or directory for the twin (None=synthetic).
    """

    mode: DriverMode = DriverMode.DIGITAL_TWIN

    # Storage settings
    output_dir: Path = field(default_factory=_default_output_dir)
    image_extension: str = DEFAULT_IMAGE_EXTENSION

    # Loop settings
    interval_s: float = DEFAULT_INTERVAL_S
    settle_s: float = DEFAULT_SETTLE_S
    streak_length: int = DEFAULT_STREAK_LENGTH

    # Pipeline settings
    width: int = 1024
    height: int = 768
    jpeg_quality: int = 90
    rotation: int = 180

    # Digital twin settings
    twin_scene_lightness: float = 0.5
    twin_image_path: Path | None = None

    def __post_init__(self) -> None:
        """Validate ranges.

        Raises:
            ValueError: If any setting is out of range.
        """
        if self.interval_s < 0:
            raise ValueError(f"interval_s must be >= 0, got {self.interval_s}")
        if self.settle_s < 0:
            raise ValueError(f"settle_s must be >= 0, got {self.settle_s}")
        if self.streak_length < 1:
            raise ValueError(
                f"streak_length must be >= 1, got {self.streak_length}"
            )
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Image size must be positive, got {self.width}x{self.height}"
            )
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(
                f"jpeg_quality must be 1-100, got {self.jpeg_quality}"
            )
        if self.rotation not in (0, 180):
            raise ValueError(f"rotation must be 0 or 180, got {self.rotation}")
        if not 0.0 <= self.twin_scene_lightness <= 1.0:
            raise ValueError(
                "twin_scene_lightness must be in [0, 1], "
                f"got {self.twin_scene_lightness}"
            )
        self.image_extension = self.image_extension.lstrip(".")
        if not self.image_extension:
            raise ValueError("image_extension must not be empty")


class DriverFactory:
    """Factory for creating drivers based on configuration.

    Creates the camera pipeline driver and the storage backend for the
    configured mode. Hardware mode requires picamera2, which is imported
    only when the first pipeline is built.

    Thread Safety:
        Not thread-safe. Configure once at startup before the event loop
        starts capturing.
    """

    def __init__(self, config: CaptureConfig | None = None):
        """Initialize factory with hardware/simulation configuration.

        Args:
            config: CaptureConfig. None defaults to digital twin mode with all
                defaults.

        Example:
            >>> factory = DriverFactory()
            >>> driver = factory.create_pipeline_driver()  # digital twin
        """
        self.config = config or CaptureConfig()

    def create_pipeline_driver(self) -> PipelineDriver:
        """Create the camera pipeline driver for the configured mode.

        Returns:
            Picamera2PipelineDriver in HARDWARE mode, DigitalTwinPipelineDriver
            in DIGITAL_TWIN mode.
        """
        config = self.config
        if config.mode == DriverMode.HARDWARE:
            return Picamera2PipelineDriver(
                width=config.width,
                height=config.height,
                rotation=config.rotation,
                jpeg_quality=config.jpeg_quality,
            )

        image_source = ImageSource.SYNTHETIC
        if config.twin_image_path is not None:
            image_source = (
                ImageSource.DIRECTORY
                if Path(config.twin_image_path).is_dir()
                else ImageSource.FILE
            )
        return DigitalTwinPipelineDriver(
            TwinPipelineConfig(
                scene_lightness=config.twin_scene_lightness,
                image_source=image_source,
                image_path=config.twin_image_path,
                width=config.width,
                height=config.height,
                jpeg_quality=config.jpeg_quality,
            )
        )

    def create_storage_backend(self) -> StorageBackend:
        """Create the local file backend rooted at ``output_dir``."""
        from adaptive_capture.data.backends import LocalFileBackend

        return LocalFileBackend(self.config.output_dir)


# =============================================================================
# Global Singleton
# =============================================================================
# Not thread-safe. Configure once at startup.

_factory: DriverFactory | None = None


def get_factory() -> DriverFactory:
    """Get the global driver factory, creating a digital twin one if unset.

    Example:
        >>> factory = get_factory()
        >>> use_hardware()
        >>> get_factory().config.mode
        <DriverMode.HARDWARE: 'hardware'>
    """
    global _factory
    if _factory is None:
        _factory = DriverFactory()
    return _factory


def configure(config: CaptureConfig) -> None:
    """Replace the global factory with one using ``config``."""
    global _factory
    _factory = DriverFactory(config)


def use_digital_twin(preserve_config: bool = False) -> None:
    """Switch to the simulated pipeline.

    Args:
        preserve_config: Keep the current settings and only change the mode.
            If False (default), reset all settings to defaults.
    """
    if preserve_config:
        configure(replace(get_factory().config, mode=DriverMode.DIGITAL_TWIN))
    else:
        configure(CaptureConfig(mode=DriverMode.DIGITAL_TWIN))


def use_hardware(preserve_config: bool = False) -> None:
    """Switch to the Raspberry Pi camera.

    Configuration always succeeds; a missing camera surfaces when the
    session is enabled.

    Args:
        preserve_config: Keep the current settings and only change the mode.
            If False (default), reset all settings to defaults.
    """
    if preserve_config:
        configure(replace(get_factory().config, mode=DriverMode.HARDWARE))
    else:
        configure(CaptureConfig(mode=DriverMode.HARDWARE))
