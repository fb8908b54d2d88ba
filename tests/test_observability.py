"""Tests for structured logging and capture statistics."""

import io
import json
import logging

import pytest

from adaptive_capture.observability import (
    FAILURE_CAPTURE_EMPTY,
    FAILURE_STORE_FAILED,
    CaptureStats,
    LogContext,
    StatsSummary,
    StructuredLogger,
    configure_logging,
    get_logger,
)
from adaptive_capture.observability.logging import (
    ROOT_LOGGER_NAME,
    StructuredFormatter,
    _log_context,
)
from adaptive_capture.observability.stats import _percentile


def capture_logs(json_format: bool = False) -> io.StringIO:
    """Reconfigure logging into a string buffer at DEBUG."""
    stream = io.StringIO()
    configure_logging(level="DEBUG", json_format=json_format, stream=stream, force=True)
    return stream


# =============================================================================
# Logging
# =============================================================================


class TestStructuredLogging:
    """Tests for StructuredLogger output."""

    def test_logger_class(self) -> None:
        assert isinstance(get_logger("adaptive_capture.test_a"), StructuredLogger)

    def test_text_format_appends_pairs(self) -> None:
        stream = capture_logs()
        logger = get_logger("adaptive_capture.test_text")

        logger.info("Frame stored", slot="primary", size_kb=12)

        line = stream.getvalue().strip()
        assert "INFO - Frame stored | slot=primary size_kb=12" in line

    def test_json_format(self) -> None:
        stream = capture_logs(json_format=True)
        logger = get_logger("adaptive_capture.test_json")

        logger.warning("Capture empty", streak=7)

        record = json.loads(stream.getvalue())
        assert record["level"] == "WARNING"
        assert record["logger"] == "adaptive_capture.test_json"
        assert record["message"] == "Capture empty"
        assert record["streak"] == 7

    def test_exception_included_in_json(self) -> None:
        stream = capture_logs(json_format=True)
        logger = get_logger("adaptive_capture.test_exc")

        try:
            raise RuntimeError("boom")
        except RuntimeError:
            logger.exception("Failed")

        assert "RuntimeError: boom" in json.loads(stream.getvalue())["exception"]

    def test_level_filters(self) -> None:
        stream = io.StringIO()
        configure_logging(level=logging.WARNING, stream=stream, force=True)

        get_logger("adaptive_capture.test_level").info("hidden")

        assert stream.getvalue() == ""

    def test_configure_is_idempotent_without_force(self) -> None:
        first = capture_logs()
        configure_logging(stream=io.StringIO())

        get_logger("adaptive_capture.test_idem").info("kept")

        assert "kept" in first.getvalue()
        assert len(logging.getLogger(ROOT_LOGGER_NAME).handlers) == 1

    def test_formatter_without_structured(self) -> None:
        formatter = StructuredFormatter(fmt="%(message)s", include_structured=False)
        record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", (), None)
        record.structured_data = {"a": 1}
        assert formatter.format(record) == "msg"


class TestLogContext:
    """Tests for LogContext."""

    def test_context_added_to_records(self) -> None:
        stream = capture_logs(json_format=True)
        logger = get_logger("adaptive_capture.test_ctx")

        with LogContext(iteration=3):
            logger.info("Capturing")

        assert json.loads(stream.getvalue())["iteration"] == 3

    def test_explicit_kwargs_win(self) -> None:
        stream = capture_logs(json_format=True)
        logger = get_logger("adaptive_capture.test_ctx_override")

        with LogContext(slot="primary"):
            logger.info("Stored", slot="secondary")

        assert json.loads(stream.getvalue())["slot"] == "secondary"

    def test_nesting_and_restore(self) -> None:
        with LogContext(a=1):
            with LogContext(b=2):
                assert _log_context.get() == {"a": 1, "b": 2}
            assert _log_context.get() == {"a": 1}
        assert _log_context.get() == {}

    def test_restored_after_exception(self) -> None:
        with pytest.raises(ValueError):
            with LogContext(a=1):
                raise ValueError
        assert _log_context.get() == {}


# =============================================================================
# Statistics
# =============================================================================


class TestCaptureStats:
    """Tests for CaptureStats."""

    def test_empty_summary(self) -> None:
        summary = CaptureStats().get_summary()
        assert summary.total_iterations == 0
        assert summary.success_rate == 0.0
        assert summary.last_iteration_time is None

    def test_counts_and_durations(self) -> None:
        stats = CaptureStats()
        stats.record_iteration(100.0, success=True)
        stats.record_iteration(300.0, success=False, error_type=FAILURE_CAPTURE_EMPTY)
        stats.record_iteration(200.0, success=True)
        stats.record_iteration(400.0, success=False, error_type=FAILURE_STORE_FAILED)

        summary = stats.get_summary()

        assert summary.total_iterations == 4
        assert summary.successful_iterations == 2
        assert summary.failed_iterations == 2
        assert summary.success_rate == 0.5
        assert summary.min_duration_ms == 100.0
        assert summary.max_duration_ms == 400.0
        assert summary.avg_duration_ms == 250.0
        assert summary.error_counts == {
            FAILURE_CAPTURE_EMPTY: 1,
            FAILURE_STORE_FAILED: 1,
        }

    def test_error_type_ignored_on_success(self) -> None:
        stats = CaptureStats()
        stats.record_iteration(1.0, success=True, error_type="ignored")
        assert stats.get_summary().error_counts == {}

    def test_window_limits_durations_not_totals(self) -> None:
        stats = CaptureStats(window_size=2)
        for duration in (1000.0, 10.0, 20.0):
            stats.record_iteration(duration, success=True)

        summary = stats.get_summary()

        assert summary.total_iterations == 3
        assert summary.max_duration_ms == 20.0

    def test_reset(self) -> None:
        stats = CaptureStats()
        stats.record_iteration(5.0, success=False, error_type=FAILURE_CAPTURE_EMPTY)
        stats.reset()
        assert stats.successes == 0
        assert stats.failures == 0
        assert stats.get_summary().error_counts == {}

    def test_invalid_window(self) -> None:
        with pytest.raises(ValueError, match="window_size"):
            CaptureStats(window_size=0)

    def test_to_dict_is_json_serializable(self) -> None:
        stats = CaptureStats()
        stats.record_iteration(12.345, success=True)

        payload = stats.get_summary().to_dict()

        json.dumps(payload)
        assert payload["avg_duration_ms"] == 12.3
        assert isinstance(payload["last_iteration_time"], str)
        assert StatsSummary().to_dict()["last_iteration_time"] is None


class TestPercentile:
    """Tests for _percentile."""

    def test_empty(self) -> None:
        assert _percentile([], 95) == 0.0

    def test_single(self) -> None:
        assert _percentile([7.0], 95) == 7.0

    def test_interpolates(self) -> None:
        assert _percentile([10.0, 20.0, 30.0, 40.0], 50) == 25.0
        assert _percentile([0.0, 100.0], 95) == pytest.approx(95.0)
