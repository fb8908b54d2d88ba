"""Observability for adaptive-capture: structured logging and loop statistics.

Example:
    from adaptive_capture.observability import LogContext, get_logger

    logger = get_logger(__name__)

    with LogContext(iteration=3):
        logger.info("Frame stored", slot="secondary", size_kb=191.2)

Statistics Example:
    from adaptive_capture.observability import CaptureStats

    stats = CaptureStats()
    stats.record_iteration(duration_ms=820.0, success=True)
    print(stats.get_summary().success_rate)
"""

from adaptive_capture.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)
from adaptive_capture.observability.stats import (
    FAILURE_CAMERA_UNAVAILABLE,
    FAILURE_CAPTURE_EMPTY,
    FAILURE_CAPTURE_FAILED,
    FAILURE_STORE_FAILED,
    CaptureStats,
    StatsSummary,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Statistics
    "CaptureStats",
    "StatsSummary",
    "FAILURE_CAMERA_UNAVAILABLE",
    "FAILURE_CAPTURE_EMPTY",
    "FAILURE_CAPTURE_FAILED",
    "FAILURE_STORE_FAILED",
]
