"""Exposure policy: scene brightness to shutter/ISO preset.

Three fixed buckets, boundaries inclusive on the darker side:

    brightness <= 0.01  -> 2.0 s,  ISO 800  ("dark")
    brightness <= 0.10  -> 1.2 s,  ISO 800  ("dim")
    otherwise           -> auto,   auto     ("normal")

Zero shutter and zero ISO mean "let the sensor's auto exposure decide".
"""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "ExposurePreset",
    "AUTO_PRESET",
    "DARK_PRESET",
    "DIM_PRESET",
    "DARK_THRESHOLD",
    "DIM_THRESHOLD",
    "select_preset",
]

DARK_THRESHOLD: float = 0.01
DIM_THRESHOLD: float = 0.10


@dataclass(frozen=True, slots=True)
class ExposurePreset:
    """Shutter duration and ISO applied to the sensor.

    Attributes:
        shutter_us: Shutter duration in microseconds, 0 for auto.
        iso: Sensor ISO, 0 for auto.
        label: Lighting bucket the preset was chosen for.
    """

    shutter_us: int = 0
    iso: int = 0
    label: str = "normal"

    def __post_init__(self) -> None:
        if self.shutter_us < 0:
            raise ValueError(f"shutter_us must be >= 0, got {self.shutter_us}")
        if self.iso < 0:
            raise ValueError(f"iso must be >= 0, got {self.iso}")

    @property
    def is_auto(self) -> bool:
        """True when both shutter and ISO are left to auto exposure."""
        return self.shutter_us == 0 and self.iso == 0

    @property
    def shutter_s(self) -> float:
        """Shutter duration in seconds."""
        return self.shutter_us / 1_000_000


AUTO_PRESET = ExposurePreset(shutter_us=0, iso=0, label="normal")
DIM_PRESET = ExposurePreset(shutter_us=1_200_000, iso=800, label="dim")
DARK_PRESET = ExposurePreset(shutter_us=2_000_000, iso=800, label="dark")


def select_preset(brightness: float) -> ExposurePreset:
    """Pick the exposure preset for a metered scene brightness.

    Args:
        brightness: Normalized scene brightness, 0 = black, 1 = white.

    Returns:
        ``DARK_PRESET``, ``DIM_PRESET`` or ``AUTO_PRESET``.

    Example:
        >>> select_preset(0.10).label
        'dim'
        >>> select_preset(0.5) is AUTO_PRESET
        True
    """
    if brightness <= DARK_THRESHOLD:
        return DARK_PRESET
    if brightness <= DIM_THRESHOLD:
        return DIM_PRESET
    return AUTO_PRESET
