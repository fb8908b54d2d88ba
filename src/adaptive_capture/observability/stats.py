"""Capture loop statistics.

Counts successful and failed capture iterations, categorizes failures and
keeps a rolling window of iteration durations for timing percentiles.

Example:
    stats = CaptureStats()
    stats.record_iteration(duration_ms=812.0, success=True)
    stats.record_iteration(duration_ms=40.0, success=False,
                           error_type=FAILURE_CAPTURE_EMPTY)

    summary = stats.get_summary()
    print(f"{summary.successful_iterations}/{summary.total_iterations}")
"""

from __future__ import annotations

import time
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

#: Iterations retained for duration statistics. At the default 5 s cadence
#: this covers a little under an hour and a half.
DEFAULT_STATS_WINDOW_SIZE: int = 1000

# Failure categories recorded by the capture loop
FAILURE_CAPTURE_EMPTY = "capture_empty"
FAILURE_CAPTURE_FAILED = "capture_failed"
FAILURE_CAMERA_UNAVAILABLE = "camera_unavailable"
FAILURE_STORE_FAILED = "store_failed"


def _utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


@dataclass
class StatsSummary:
    """Point-in-time summary of the capture loop.

    Attributes:
        total_iterations: Iterations recorded since the last reset.
        successful_iterations: Iterations whose frame was captured and stored.
        failed_iterations: Iterations that produced no stored frame.
        success_rate: successful / total, 0.0 when nothing was recorded.
        min_duration_ms: Fastest iteration in the window.
        max_duration_ms: Slowest iteration in the window.
        avg_duration_ms: Mean iteration duration in the window.
        p95_duration_ms: 95th percentile iteration duration in the window.
        error_counts: Failures per category.
        last_iteration_time: Wall-clock time of the most recent record.
        uptime_seconds: Seconds since the collector was created or reset.
    """

    total_iterations: int = 0
    successful_iterations: int = 0
    failed_iterations: int = 0
    success_rate: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    avg_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    error_counts: dict[str, int] = field(default_factory=dict)
    last_iteration_time: datetime | None = None
    uptime_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-compatible primitives.

        Durations are rounded to 0.1 ms, the success rate to four decimals
        and the timestamp is rendered as ISO-8601.

        Returns:
            Dict with the same keys as the dataclass fields.
        """
        return {
            "total_iterations": self.total_iterations,
            "successful_iterations": self.successful_iterations,
            "failed_iterations": self.failed_iterations,
            "success_rate": round(self.success_rate, 4),
            "min_duration_ms": round(self.min_duration_ms, 1),
            "max_duration_ms": round(self.max_duration_ms, 1),
            "avg_duration_ms": round(self.avg_duration_ms, 1),
            "p95_duration_ms": round(self.p95_duration_ms, 1),
            "error_counts": dict(self.error_counts),
            "last_iteration_time": (
                self.last_iteration_time.isoformat()
                if self.last_iteration_time
                else None
            ),
            "uptime_seconds": round(self.uptime_seconds, 1),
        }


@dataclass
class IterationRecord:
    """One recorded capture iteration."""

    timestamp: datetime
    duration_ms: float
    success: bool
    error_type: str | None = None


class CaptureStats:
    """Collector for capture loop outcomes.

    Totals are exact for the lifetime of the collector; duration statistics
    are computed over the last ``window_size`` iterations only.

    The capture loop runs on a single event loop, so no locking is done.
    """

    def __init__(self, window_size: int = DEFAULT_STATS_WINDOW_SIZE) -> None:
        """Create an empty collector.

        Args:
            window_size: Number of iterations kept for duration statistics.

        Raises:
            ValueError: If window_size is not positive.
        """
        if window_size < 1:
            raise ValueError(f"window_size must be positive, got {window_size}")
        self._window_size = window_size
        self._records: deque[IterationRecord] = deque(maxlen=window_size)
        self._total = 0
        self._successful = 0
        self._error_counts: dict[str, int] = {}
        self._start_time = time.monotonic()

    @property
    def successes(self) -> int:
        """Number of successful iterations."""
        return self._successful

    @property
    def failures(self) -> int:
        """Number of failed iterations."""
        return self._total - self._successful

    def record_iteration(
        self,
        duration_ms: float,
        success: bool,
        error_type: str | None = None,
    ) -> None:
        """Record the outcome of one capture iteration.

        Args:
            duration_ms: Capture plus store time, excluding the pacing sleep.
            success: True when a frame was captured and stored.
            error_type: Failure category for unsuccessful iterations. Ignored
                when ``success`` is True.
        """
        record = IterationRecord(
            timestamp=_utc_now(),
            duration_ms=duration_ms,
            success=success,
            error_type=None if success else error_type,
        )
        self._records.append(record)
        self._total += 1
        if success:
            self._successful += 1
        elif error_type:
            self._error_counts[error_type] = self._error_counts.get(error_type, 0) + 1

    def get_summary(self) -> StatsSummary:
        """Compute the current summary."""
        uptime = time.monotonic() - self._start_time
        if self._total == 0:
            return StatsSummary(uptime_seconds=uptime)

        durations = sorted(r.duration_ms for r in self._records)
        return StatsSummary(
            total_iterations=self._total,
            successful_iterations=self._successful,
            failed_iterations=self._total - self._successful,
            success_rate=self._successful / self._total,
            min_duration_ms=durations[0],
            max_duration_ms=durations[-1],
            avg_duration_ms=sum(durations) / len(durations),
            p95_duration_ms=_percentile(durations, 95),
            error_counts=dict(self._error_counts),
            last_iteration_time=self._records[-1].timestamp,
            uptime_seconds=uptime,
        )

    def reset(self) -> None:
        """Clear all records and restart the uptime clock."""
        self._records.clear()
        self._total = 0
        self._successful = 0
        self._error_counts.clear()
        self._start_time = time.monotonic()


def _percentile(sorted_data: list[float], p: float) -> float:
    """Linear-interpolated percentile of pre-sorted data.

    Args:
        sorted_data: Values in ascending order.
        p: Percentile in [0, 100].

    Returns:
        The interpolated value, 0.0 for empty input.

    Example:
        >>> _percentile([10.0, 20.0, 30.0, 40.0], 50)
        25.0
    """
    if not sorted_data:
        return 0.0
    if len(sorted_data) == 1:
        return sorted_data[0]

    k = (len(sorted_data) - 1) * (p / 100)
    f = int(k)
    c = min(f + 1, len(sorted_data) - 1)
    return sorted_data[f] + (k - f) * (sorted_data[c] - sorted_data[f])
