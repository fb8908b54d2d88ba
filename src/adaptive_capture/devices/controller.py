"""Capture loop controller.

Runs the capture loop until cancelled: capture a frame, store it, sleep
until the next period starts.

    while not cancelled:
        start = now
        capture into a fresh buffer   -> failure: count, go to pacing
        store the buffer               -> failure: count, go to pacing
        count success
        sleep max(0, interval - (now - start)), woken early by cancellation

Cancellation is cooperative. It is only observed between steps, so an
in-flight capture or store always finishes. When the loop ends, for any
reason, the camera session is disabled with a fresh token so cleanup runs
to completion.

Example:
    token = CancellationToken()
    controller = CaptureController(session, storage)
    summary = await controller.run(token)  # token.cancel() from elsewhere
"""

from __future__ import annotations

import asyncio
import io
from typing import TYPE_CHECKING

from adaptive_capture.devices.camera_session import CaptureOutcome, SystemClock
from adaptive_capture.observability import (
    FAILURE_CAMERA_UNAVAILABLE,
    FAILURE_CAPTURE_EMPTY,
    FAILURE_CAPTURE_FAILED,
    FAILURE_STORE_FAILED,
    CaptureStats,
    LogContext,
    StatsSummary,
    get_logger,
)

if TYPE_CHECKING:
    from adaptive_capture.data.storage import StorageManager
    from adaptive_capture.devices.camera_session import CameraSession, Clock

logger = get_logger(__name__)

__all__ = [
    "CancellationToken",
    "CaptureController",
    "interruptible_sleep",
    "DEFAULT_INTERVAL_S",
]

DEFAULT_INTERVAL_S = 5.0

_FAILURE_KINDS = {
    CaptureOutcome.EMPTY: FAILURE_CAPTURE_EMPTY,
    CaptureOutcome.FAILED: FAILURE_CAPTURE_FAILED,
    CaptureOutcome.UNAVAILABLE: FAILURE_CAMERA_UNAVAILABLE,
}


class CancellationToken:
    """One-shot cooperative cancellation signal.

    Once cancelled a token stays cancelled. Signal handlers call
    ``cancel()``; the loop checks ``cancelled`` between steps.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.cancelled})"

    @property
    def cancelled(self) -> bool:
        """True once ``cancel()`` was called."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    async def wait(self) -> None:
        """Wait until cancellation is requested."""
        await self._event.wait()


async def interruptible_sleep(
    clock: Clock, seconds: float, token: CancellationToken
) -> bool:
    """Sleep on ``clock`` unless ``token`` is cancelled first.

    Args:
        clock: Time source that does the actual sleeping.
        seconds: Requested delay; values <= 0 still yield to the clock once.
        token: Cancellation wakes the sleeper immediately.

    Returns:
        True if the sleep ended because of cancellation.
    """
    if token.cancelled:
        return True

    sleeper = asyncio.ensure_future(clock.sleep(max(0.0, seconds)))
    waiter = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (sleeper, waiter):
            if not task.done():
                task.cancel()
        await asyncio.gather(sleeper, waiter, return_exceptions=True)
    return token.cancelled


class CaptureController:
    """Periodically captures and stores frames until cancelled.

    Attributes:
        session: Camera session producing frames.
        storage: Alternating-slot storage for captured frames.
        stats: Per-iteration outcome statistics.
        interval_s: Target period between iteration starts.
    """

    def __init__(
        self,
        session: CameraSession,
        storage: StorageManager,
        clock: Clock | None = None,
        stats: CaptureStats | None = None,
        interval_s: float = DEFAULT_INTERVAL_S,
    ) -> None:
        """Create a controller.

        Args:
            session: Camera session, enabled by ``run()``.
            storage: Where captured frames go.
            clock: Pacing clock. Defaults to SystemClock.
            stats: Outcome collector. Defaults to a fresh CaptureStats.
            interval_s: Seconds between iteration starts.

        Raises:
            ValueError: If interval_s is negative.
        """
        if interval_s < 0:
            raise ValueError(f"interval_s must be >= 0, got {interval_s}")
        self.session = session
        self.storage = storage
        self.stats = stats or CaptureStats()
        self.interval_s = interval_s
        self._clock = clock or SystemClock()
        self._iteration = 0

    @property
    def iteration(self) -> int:
        """Number of iterations started so far."""
        return self._iteration

    async def run(self, token: CancellationToken) -> StatsSummary:
        """Run the loop until ``token`` is cancelled.

        An unusable camera does not stop the loop; its captures are counted
        as failures. An unexpected exception ends the loop after logging.
        The session is always disabled before returning.

        Args:
            token: Cooperative cancellation signal.

        Returns:
            Statistics of all iterations run.
        """
        logger.info("Capture loop starting", interval_s=self.interval_s)
        try:
            outcome = await self.session.enable()
            if not outcome:
                logger.error(
                    "Camera could not be enabled, continuing without it",
                    error=outcome.error,
                )

            while not token.cancelled:
                self._iteration += 1
                with LogContext(iteration=self._iteration):
                    started = self._clock.monotonic()
                    await self._run_iteration(started)

                    if token.cancelled:
                        break
                    elapsed = self._clock.monotonic() - started
                    delay = max(0.0, self.interval_s - elapsed)
                    logger.debug("Waiting for next iteration", delay_s=round(delay, 3))
                    await interruptible_sleep(self._clock, delay, token)
        except Exception as e:
            logger.exception(
                "Capture loop terminated by unexpected error", error=str(e)
            )
        finally:
            await self.session.disable(CancellationToken())

        summary = self.stats.get_summary()
        logger.info(
            "Capture loop stopped",
            iterations=summary.total_iterations,
            successful=summary.successful_iterations,
            failed=summary.failed_iterations,
        )
        return summary

    async def _run_iteration(self, started: float) -> None:
        """Capture one frame and store it, recording the outcome."""
        buffer = io.BytesIO()
        outcome = await self.session.capture(buffer)
        if not outcome:
            logger.warning("Capture unsuccessful", outcome=outcome.value)
            self._record(started, success=False, error_type=_FAILURE_KINDS[outcome])
            return

        if not await self.storage.store_image(buffer):
            logger.warning("Storing image failed")
            self._record(started, success=False, error_type=FAILURE_STORE_FAILED)
            return

        logger.info("Image captured and stored", size_bytes=len(buffer.getvalue()))
        self._record(started, success=True)

    def _record(
        self, started: float, success: bool, error_type: str | None = None
    ) -> None:
        duration_ms = (self._clock.monotonic() - started) * 1000
        self.stats.record_iteration(duration_ms, success, error_type)
