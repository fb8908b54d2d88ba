"""Logical device layer - hardware-agnostic capture abstractions."""

from adaptive_capture.devices.camera_session import (
    CameraSession,
    CaptureError,
    CaptureOutcome,
    Clock,
    InvalidStateError,
    LifecycleOutcome,
    PipelineHandle,
    SessionState,
    SystemClock,
)
from adaptive_capture.devices.controller import (
    CancellationToken,
    CaptureController,
    interruptible_sleep,
)
from adaptive_capture.devices.exposure import (
    AUTO_PRESET,
    DARK_PRESET,
    DIM_PRESET,
    ExposurePreset,
    select_preset,
)

__all__ = [
    # Camera session
    "CameraSession",
    "CaptureOutcome",
    "LifecycleOutcome",
    "PipelineHandle",
    "SessionState",
    # Exceptions
    "CaptureError",
    "InvalidStateError",
    # Clock (shared)
    "Clock",
    "SystemClock",
    # Controller
    "CancellationToken",
    "CaptureController",
    "interruptible_sleep",
    # Exposure
    "ExposurePreset",
    "AUTO_PRESET",
    "DIM_PRESET",
    "DARK_PRESET",
    "select_preset",
]
