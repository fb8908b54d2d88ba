"""Camera session: calibrated still capture on a rebuildable pipeline.

The session owns one camera pipeline at a time and keeps its exposure
matched to the scene. Enabling the session calibrates it:

1. build a pipeline with auto exposure and let the sensor settle
2. take a scratch capture and meter its lightness
3. pick the exposure preset for that lightness
4. rebuild the pipeline with the preset and let it settle again

After every ``streak_length`` capture attempts (12 by default) a successful
capture triggers the same calibration, so exposure follows sunrise and
sunset.

State machine::

    DISABLED -> ENABLING -> CALIBRATING -> READY <-> CAPTURING
                                             |          |
                                             +-> CALIBRATING (streak)
    any state -> DISABLING -> DISABLED

Lifecycle and capture failures never raise; they come back as
``LifecycleOutcome`` and ``CaptureOutcome`` values and the last error is
kept in ``last_error``.

Example:
    session = CameraSession(DigitalTwinPipelineDriver())
    if await session.enable():
        buffer = io.BytesIO()
        if await session.capture(buffer):
            jpeg = buffer.getvalue()
    await session.disable()
"""

from __future__ import annotations

import asyncio
import io
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, BinaryIO, Protocol

from adaptive_capture.devices.exposure import AUTO_PRESET, ExposurePreset, select_preset
from adaptive_capture.observability import get_logger
from adaptive_capture.utils.lightness import measure_encoded_lightness
from adaptive_capture.utils.streams import buffer_size, clear, copy_and_reset

if TYPE_CHECKING:
    from adaptive_capture.devices.controller import CancellationToken
    from adaptive_capture.drivers.pipelines import CameraPipeline, PipelineDriver
    from adaptive_capture.utils.image import ImageDecoder

logger = get_logger(__name__)

__all__ = [
    "CameraSession",
    "CaptureError",
    "CaptureOutcome",
    "Clock",
    "InvalidStateError",
    "LifecycleOutcome",
    "PipelineHandle",
    "SessionState",
    "SystemClock",
    "DEFAULT_SETTLE_S",
    "DEFAULT_STREAK_LENGTH",
    "EMPTY_CALIBRATION_LIGHTNESS",
]

DEFAULT_SETTLE_S = 2.0
DEFAULT_STREAK_LENGTH = 12

# Lightness assumed when the calibration frame has no usable pixels
EMPTY_CALIBRATION_LIGHTNESS = 1.0


# --- Clock ---


class Clock(Protocol):  # pragma: no cover
    """Time source for settle delays and loop pacing.

    Tests inject a fake whose ``sleep`` returns immediately and advances
    ``monotonic``.
    """

    def monotonic(self) -> float:
        """Return monotonic time in seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        ...


class SystemClock:
    """Clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def monotonic(self) -> float:
        """Return ``time.monotonic()``."""
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        """Await ``asyncio.sleep(seconds)``."""
        await asyncio.sleep(seconds)


# --- Exceptions ---


class CaptureError(Exception):
    """Base exception for capture programming errors."""

    pass


class InvalidStateError(CaptureError):
    """Raised when a pipeline handle is used after teardown."""

    pass


# --- Outcomes ---


class SessionState(Enum):
    """Camera session lifecycle state."""

    DISABLED = "disabled"
    ENABLING = "enabling"
    CALIBRATING = "calibrating"
    READY = "ready"
    CAPTURING = "capturing"
    DISABLING = "disabling"


class CaptureOutcome(Enum):
    """Result of one capture request.

    Only ``CAPTURED`` is truthy, so ``if await session.capture(buf):`` reads
    naturally.
    """

    CAPTURED = "captured"
    EMPTY = "empty"  # pipeline ran but produced no bytes (transient)
    FAILED = "failed"  # pipeline raised (transient)
    UNAVAILABLE = "unavailable"  # session not ready

    def __bool__(self) -> bool:
        return self is CaptureOutcome.CAPTURED


@dataclass(frozen=True)
class LifecycleOutcome:
    """Result of enable/disable.

    Attributes:
        usable: True when the session is ready to capture afterwards.
        error: Description of the failure, if any.
    """

    usable: bool
    error: str | None = None

    def __bool__(self) -> bool:
        return self.usable


# --- Pipeline Handle ---


class PipelineHandle:
    """A built pipeline together with its preset and capture buffer.

    The session replaces the whole handle on every rebuild; a disposed
    handle refuses further use.
    """

    def __init__(self, pipeline: CameraPipeline, preset: ExposurePreset) -> None:
        self.pipeline = pipeline
        self.preset = preset
        self.buffer: BinaryIO = io.BytesIO()
        self._disposed = False

    def __repr__(self) -> str:
        return f"PipelineHandle(preset={self.preset}, disposed={self._disposed})"

    @property
    def disposed(self) -> bool:
        """True after ``dispose()``."""
        return self._disposed

    def _require_live(self) -> None:
        if self._disposed:
            raise InvalidStateError("Pipeline handle used after teardown")

    def connect(self) -> None:
        """Configure the pipeline with the preset and wire it to the buffer."""
        self._require_live()
        self.pipeline.configure(self.preset)
        self.pipeline.connect(self.buffer)

    async def run_once(self) -> int:
        """Capture into a cleared buffer.

        Returns:
            Number of bytes captured; 0 for an empty capture.

        Raises:
            InvalidStateError: If the handle was disposed.
        """
        self._require_live()
        clear(self.buffer)
        await self.pipeline.run_once()
        return buffer_size(self.buffer)

    def captured_bytes(self) -> bytes:
        """Contents of the capture buffer."""
        self._require_live()
        return self.buffer.getvalue()

    def move_to(self, output: BinaryIO) -> int:
        """Copy the captured bytes into ``output`` and clear the buffer."""
        self._require_live()
        return copy_and_reset(self.buffer, output)

    def dispose(self) -> None:
        """Dispose the pipeline and release the buffer. Idempotent."""
        if self._disposed:
            return
        self._disposed = True
        try:
            self.pipeline.dispose()
        finally:
            self.buffer.close()


# --- Camera Session ---


class CameraSession:
    """Owns the camera pipeline and keeps its exposure calibrated.

    Thread Safety:
        Not thread-safe. All calls must come from one event loop; an
        ``asyncio.Lock`` serializes enable, capture and disable.
    """

    def __init__(
        self,
        driver: PipelineDriver,
        clock: Clock | None = None,
        decoder: ImageDecoder | None = None,
        settle_s: float = DEFAULT_SETTLE_S,
        streak_length: int = DEFAULT_STREAK_LENGTH,
    ) -> None:
        """Create a disabled session.

        Args:
            driver: Creates pipelines and releases the camera.
            clock: Settle-delay clock. Defaults to SystemClock.
            decoder: Decoder for metering the calibration frame. Defaults to
                the OpenCV decoder, created on first calibration.
            settle_s: Delay after every rebuild before capturing.
            streak_length: Capture attempts between recalibrations.

        Raises:
            ValueError: If settle_s is negative or streak_length < 1.
        """
        if settle_s < 0:
            raise ValueError(f"settle_s must be >= 0, got {settle_s}")
        if streak_length < 1:
            raise ValueError(f"streak_length must be >= 1, got {streak_length}")

        self._driver = driver
        self._clock = clock or SystemClock()
        self._decoder = decoder
        self._settle_s = settle_s
        self._streak_length = streak_length

        self._state = SessionState.DISABLED
        self._handle: PipelineHandle | None = None
        self._camera_acquired = False
        self._preset = AUTO_PRESET
        self._brightness: float | None = None
        self._streak = 0
        self._calibrations = 0
        self._last_error: str | None = None

        self._lock = asyncio.Lock()
        # Set whenever the session is not in the middle of a (re)build
        self._settled = asyncio.Event()
        self._settled.set()

    def __repr__(self) -> str:
        return (
            f"CameraSession(state={self._state.value}, "
            f"preset={self._preset.label}, streak={self._streak})"
        )

    # --- Observable state ---

    @property
    def state(self) -> SessionState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """True when a capture can start immediately."""
        return self._state is SessionState.READY

    @property
    def streak_count(self) -> int:
        """Capture attempts since the last calibration."""
        return self._streak

    @property
    def calibration_count(self) -> int:
        """Completed calibrations, including the one done by ``enable()``."""
        return self._calibrations

    @property
    def brightness(self) -> float | None:
        """Lightness measured by the last calibration."""
        return self._brightness

    @property
    def preset(self) -> ExposurePreset:
        """Exposure preset of the current pipeline."""
        return self._preset

    @property
    def last_error(self) -> str | None:
        """Description of the most recent failure, if any."""
        return self._last_error

    @property
    def decoder(self) -> ImageDecoder:
        """Decoder used to meter calibration frames."""
        if self._decoder is None:
            from adaptive_capture.utils.image import CV2ImageDecoder

            self._decoder = CV2ImageDecoder()
        return self._decoder

    async def wait_ready(self) -> bool:
        """Wait for any rebuild in progress to settle.

        Returns:
            True if the session is ready afterwards.
        """
        await self._settled.wait()
        return self.is_ready

    # --- Lifecycle ---

    async def enable(self) -> LifecycleOutcome:
        """Calibrate the camera and make it ready to capture.

        Resets the streak counter. Calling it on a ready session is a no-op.

        Returns:
            ``LifecycleOutcome(usable=True)`` when ready, otherwise the error.
        """
        async with self._lock:
            if self._state is SessionState.READY:
                return LifecycleOutcome(usable=True)

            logger.info("Enabling camera session")
            self._set_state(SessionState.ENABLING)
            self._streak = 0
            self._last_error = None
            try:
                await self._calibrate()
            except Exception as e:
                return self._fail("enable", e)

            logger.info(
                "Camera session enabled",
                brightness=self._brightness,
                preset=self._preset.label,
            )
            return LifecycleOutcome(usable=True)

    async def disable(self, token: CancellationToken | None = None) -> LifecycleOutcome:
        """Release the pipeline and the camera. Idempotent.

        Waits for an in-flight capture to finish. Teardown always runs to
        completion, even when ``token`` is already cancelled.

        Args:
            token: Cancellation token of the caller.

        Returns:
            ``LifecycleOutcome(usable=False)``, with the error if teardown
            failed.
        """
        if token is not None and token.cancelled:
            logger.debug("Disable requested with cancelled token; tearing down anyway")

        async with self._lock:
            if self._state is SessionState.DISABLED and not self._camera_acquired:
                return LifecycleOutcome(usable=False)

            logger.info("Disabling camera session")
            self._set_state(SessionState.DISABLING)
            error: str | None = None
            try:
                self._teardown()
                if self._camera_acquired:
                    self._camera_acquired = False
                    self._driver.cleanup()
            except Exception as e:
                error = f"{type(e).__name__}: {e}"
                self._last_error = error
                logger.error("Camera teardown failed", error=error)
            finally:
                self._set_state(SessionState.DISABLED)

            logger.info("Camera session disabled")
            return LifecycleOutcome(usable=False, error=error)

    # --- Capture ---

    async def capture(self, output: BinaryIO) -> CaptureOutcome:
        """Capture one frame into ``output``.

        A rebuild in progress holds the session lock, so the request waits
        for it to settle. Every attempt counts towards the streak; a
        successful capture that completes a streak recalibrates before
        returning.

        Args:
            output: Buffer that receives the encoded frame, rewound.

        Returns:
            CaptureOutcome; truthy only for CAPTURED.
        """
        async with self._lock:
            handle = self._handle
            if self._state is not SessionState.READY or handle is None:
                logger.warning(
                    "Capture requested while camera unavailable",
                    state=self._state.value,
                )
                return CaptureOutcome.UNAVAILABLE

            self._set_state(SessionState.CAPTURING)
            self._streak += 1
            try:
                size = await handle.run_once()
            except Exception as e:
                self._last_error = f"{type(e).__name__}: {e}"
                logger.error(
                    "Capture failed", error=self._last_error, streak=self._streak
                )
                self._set_state(SessionState.READY)
                return CaptureOutcome.FAILED

            if size == 0:
                logger.warning("Capture produced no data", streak=self._streak)
                self._set_state(SessionState.READY)
                return CaptureOutcome.EMPTY

            handle.move_to(output)
            self._set_state(SessionState.READY)
            logger.debug("Image captured", size_bytes=size, streak=self._streak)

            if self._streak % self._streak_length == 0:
                await self._recalibrate()
            return CaptureOutcome.CAPTURED

    # --- Internals ---

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        if state in (SessionState.ENABLING, SessionState.CALIBRATING):
            self._settled.clear()
        else:
            self._settled.set()

    async def _recalibrate(self) -> None:
        """Recalibrate after a streak; failures disable the session."""
        logger.info("Streak complete, recalibrating", streak=self._streak)
        try:
            await self._calibrate()
        except Exception as e:
            self._fail("recalibrate", e)

    async def _calibrate(self) -> None:
        """Meter the scene with auto exposure and rebuild with the preset."""
        self._set_state(SessionState.CALIBRATING)
        await self._rebuild(AUTO_PRESET)

        handle = self._handle
        if handle is None:
            raise InvalidStateError("No pipeline after rebuild")
        size = 0
        brightness = None
        try:
            size = await handle.run_once()
            if size:
                brightness = measure_encoded_lightness(
                    handle.captured_bytes(), self.decoder
                )
        except Exception as e:
            logger.warning(
                "Calibration capture failed", error=f"{type(e).__name__}: {e}"
            )
        if brightness is None:
            logger.warning(
                "Calibration frame unusable, assuming bright scene",
                size_bytes=size,
                brightness=EMPTY_CALIBRATION_LIGHTNESS,
            )
            brightness = EMPTY_CALIBRATION_LIGHTNESS

        preset = select_preset(brightness)
        logger.info(
            "Scene metered",
            brightness=round(brightness, 4),
            preset=preset.label,
            shutter_us=preset.shutter_us,
            iso=preset.iso,
        )
        await self._rebuild(preset)

        self._brightness = brightness
        self._streak = 0
        self._calibrations += 1
        self._set_state(SessionState.READY)

    async def _rebuild(self, preset: ExposurePreset) -> None:
        """Replace the pipeline with a fresh one using ``preset``, then settle."""
        self._teardown()
        self._camera_acquired = True
        pipeline = self._driver.create_pipeline()
        handle = PipelineHandle(pipeline, preset)
        self._handle = handle
        handle.connect()
        self._preset = preset
        logger.debug(
            "Pipeline rebuilt, settling",
            preset=preset.label,
            settle_s=self._settle_s,
        )
        await self._clock.sleep(self._settle_s)

    def _teardown(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.dispose()

    def _fail(self, operation: str, exc: Exception) -> LifecycleOutcome:
        """Record a lifecycle failure and leave the session disabled."""
        error = f"{type(exc).__name__}: {exc}"
        self._last_error = error
        logger.error("Camera lifecycle failed", operation=operation, error=error)
        try:
            self._teardown()
        except Exception as e:
            logger.warning("Pipeline dispose failed", error=str(e))
        self._set_state(SessionState.DISABLED)
        return LifecycleOutcome(usable=False, error=error)
