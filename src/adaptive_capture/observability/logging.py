"""Structured logging for adaptive-capture.

Thin layer over the standard logging module that lets call sites attach
key-value data to a record instead of formatting it into the message:

    logger = get_logger(__name__)
    logger.info("Frame stored", slot="primary", size_kb=182.4)

Keyword arguments become ``record.structured_data``. ``LogContext`` adds
ambient keys (for example the capture iteration number) to every record
emitted inside its scope, including records from awaited coroutines, since
the context lives in a ``contextvars.ContextVar``.

Two formatters are provided:

- ``StructuredFormatter``: ``<asctime> - <name> - <level> - <msg> | k=v k=v``
  for consoles and journald.
- ``JSONFormatter``: one JSON object per line for log shippers.

Call ``configure_logging()`` once at startup. ``get_logger()`` configures the
defaults lazily when nothing else did.
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from datetime import UTC, datetime
from typing import Any, cast

ROOT_LOGGER_NAME = "adaptive_capture"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


# =============================================================================
# Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger whose level methods accept structured keyword arguments.

    Example:
        logger.warning("Capture produced no data", streak=7)
    """

    def debug(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at DEBUG with structured keyword data."""
        if self.isEnabledFor(logging.DEBUG):
            self._log_structured(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at INFO with structured keyword data."""
        if self.isEnabledFor(logging.INFO):
            self._log_structured(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at WARNING with structured keyword data."""
        if self.isEnabledFor(logging.WARNING):
            self._log_structured(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at ERROR with structured keyword data."""
        if self.isEnabledFor(logging.ERROR):
            self._log_structured(logging.ERROR, msg, args, **kwargs)

    def exception(
        self, msg: object, *args: Any, exc_info: Any = True, **kwargs: Any
    ) -> None:
        """Log at ERROR with the active exception attached."""
        if self.isEnabledFor(logging.ERROR):
            self._log_structured(
                logging.ERROR, msg, args, exc_info=exc_info, **kwargs
            )

    def critical(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log at CRITICAL with structured keyword data."""
        if self.isEnabledFor(logging.CRITICAL):
            self._log_structured(logging.CRITICAL, msg, args, **kwargs)

    def _log_structured(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any],
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Merge ambient context and keyword data, then emit the record.

        Explicit keyword arguments win over ``LogContext`` values with the
        same key. ``stacklevel`` is bumped twice so ``%(funcName)s`` and
        ``%(lineno)d`` point at the caller of ``info()``/``warning()``,
        not at this helper.

        Args:
            level: Numeric logging level.
            msg: Message, may contain %-style placeholders.
            args: Arguments for the placeholders.
            exc_info: Exception info passed through to the record.
            extra: Extra LogRecord attributes; ``structured_data`` is set
                on it.
            stack_info: Attach the current stack to the record.
            stacklevel: Frames to skip when locating the caller.
            **kwargs: Structured key-value data.
        """
        structured_data = {**_log_context.get(), **kwargs}
        extra = dict(extra) if extra else {}
        extra["structured_data"] = structured_data
        self._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 2,
        )


# =============================================================================
# Formatters
# =============================================================================


def _format_value(value: Any) -> str:
    """Render one structured value for the key=value text format.

    ``None`` becomes ``null``, strings containing spaces are quoted, dicts
    and lists are JSON encoded, everything else goes through ``str()``.

    Example:
        >>> _format_value("primary")
        'primary'
        >>> _format_value("two words")
        '"two words"'
        >>> _format_value(None)
        'null'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        return f'"{value}"' if " " in value else value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter: ``base message | key=value key=value``."""

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Create the formatter.

        Args:
            fmt: Base format string. Defaults to
                ``%(asctime)s - %(name)s - %(levelname)s - %(message)s``.
            datefmt: Date format for ``%(asctime)s``.
            include_structured: Append structured data after `` | ``.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format the base message and append structured pairs if any."""
        base = super().format(record)
        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """One JSON object per record with structured data as top-level keys."""

    def format(self, record: logging.LogRecord) -> str:
        """Serialize the record to a single JSON line.

        Fields: ``timestamp`` (UTC ISO-8601), ``level``, ``logger``,
        ``message``, every structured key, and ``exception`` when the record
        carries exception info. Values that JSON cannot encode go through
        ``str()``.
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


# =============================================================================
# Context
# =============================================================================


class LogContext:
    """Add key-value pairs to every record logged inside a ``with`` block.

    Contexts nest; inner keys override outer ones and the previous context
    is restored on exit even when the block raises.

    Example:
        with LogContext(iteration=42):
            logger.info("Capturing")  # ... | iteration=42
    """

    def __init__(self, **kwargs: Any) -> None:
        self._kwargs = kwargs
        self._token: contextvars.Token[dict[str, Any]] | None = None

    def __enter__(self) -> LogContext:
        self._token = _log_context.set({**_log_context.get(), **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the ``adaptive_capture`` logger hierarchy.

    Installs ``StructuredLogger`` as the logger class, attaches one stream
    handler with the selected formatter to the package root logger and
    disables propagation so records are not duplicated by the root logger.

    Idempotent: later calls are ignored unless ``force`` is set, in which
    case the existing handlers are removed first.

    Args:
        level: Minimum level, numeric or name ("DEBUG", "INFO", ...).
        json_format: Emit NDJSON instead of key=value text.
        stream: Target stream, ``sys.stderr`` by default.
        include_structured: Append structured pairs in text mode.
        force: Reconfigure even if already configured.

    Example:
        >>> configure_logging(level="DEBUG", json_format=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Apply the configuration; caller holds ``_config_lock``."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level.upper() if isinstance(level, str) else level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Drop handlers from the package root logger; caller holds the lock."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Return logging to the unconfigured state. Intended for tests."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Return a structured logger, configuring defaults on first use.

    Loggers created before ``configure_logging()`` ran were instantiated
    with the plain ``logging.Logger`` class, so module-level loggers in
    this package are always obtained through this function.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        ``StructuredLogger`` under the ``adaptive_capture`` hierarchy.
    """
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    return cast(StructuredLogger, logging.getLogger(name))
