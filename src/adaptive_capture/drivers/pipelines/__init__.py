"""Camera pipeline drivers.

A camera pipeline is the chain of hardware components that turns sensor
light into encoded still images: sensor still port -> resizer -> JPEG
encoder -> output sink, with the sensor preview port drained into a null
sink. The capture session only talks to it through the capabilities below,
so the real Raspberry Pi camera and the digital twin are interchangeable.

Protocols:
    CameraPipeline: One built pipeline (configure, connect, run_once, dispose)
    PipelineDriver: Factory for fresh pipelines plus process-wide cleanup

Implementations:
    DigitalTwinPipelineDriver: Simulated scene for development and tests
    Picamera2PipelineDriver: Raspberry Pi camera via picamera2 (lazy import)
"""

from __future__ import annotations

from typing import TYPE_CHECKING, BinaryIO, Protocol, runtime_checkable

from adaptive_capture.drivers.pipelines.picamera import Picamera2PipelineDriver
from adaptive_capture.drivers.pipelines.twin import (
    DigitalTwinPipeline,
    DigitalTwinPipelineDriver,
    ImageSource,
    TwinPipelineConfig,
)

if TYPE_CHECKING:
    from adaptive_capture.devices.exposure import ExposurePreset


@runtime_checkable
class CameraPipeline(Protocol):  # pragma: no cover
    """A built camera pipeline owned by exactly one capture session.

    Lifecycle: ``configure()`` then ``connect()`` once, any number of
    ``run_once()`` calls, then ``dispose()``. A pipeline is never
    reconfigured in place; a new exposure means a new pipeline.
    """

    def configure(self, preset: ExposurePreset) -> None:
        """Apply sensor settings for the next captures.

        Args:
            preset: Shutter/ISO to use; zero fields mean auto exposure.

        Raises:
            RuntimeError: If the hardware rejects the settings.
        """
        ...

    def connect(self, output: BinaryIO) -> None:
        """Wire sensor -> resizer -> encoder -> ``output``, preview -> null sink.

        Args:
            output: Buffer the encoder appends each still image to.

        Raises:
            RuntimeError: If components cannot be created or linked.
        """
        ...

    async def run_once(self) -> None:
        """Trigger one still capture and wait until the encoder finished.

        The encoded bytes are appended to the connected output. Producing no
        bytes is a valid (transient) outcome, not an exception.

        Raises:
            RuntimeError: If the hardware reports a capture error.
        """
        ...

    def dispose(self) -> None:
        """Release every component of this pipeline. Idempotent."""
        ...


@runtime_checkable
class PipelineDriver(Protocol):  # pragma: no cover
    """Creates pipelines for one physical (or simulated) camera."""

    def create_pipeline(self) -> CameraPipeline:
        """Acquire the camera and return a fresh, unconfigured pipeline.

        Raises:
            RuntimeError: If the camera is missing or busy.
        """
        ...

    def cleanup(self) -> None:
        """Release process-wide camera resources. Idempotent."""
        ...


__all__ = [
    # Protocols
    "CameraPipeline",
    "PipelineDriver",
    # Digital twin implementation
    "DigitalTwinPipeline",
    "DigitalTwinPipelineDriver",
    "ImageSource",
    "TwinPipelineConfig",
    # Hardware implementation
    "Picamera2PipelineDriver",
]
