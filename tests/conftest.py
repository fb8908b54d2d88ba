"""Pytest configuration and fixtures for adaptive-capture tests.

Provides a fake async clock so settle delays and loop pacing run instantly,
digital twin pipeline drivers for the three lighting buckets, and a reset of
the logging configuration between tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta

import pytest

from adaptive_capture.drivers.pipelines import (
    DigitalTwinPipelineDriver,
    TwinPipelineConfig,
)
from adaptive_capture.observability import reset_logging


class FakeClock:
    """Clock whose ``sleep`` returns at once and advances ``monotonic``.

    Attributes:
        now: Current monotonic time in seconds.
        sleeps: Every requested sleep duration, in order.
        on_sleep: Optional callback invoked with the number of sleeps so
            far, after the time has been advanced.
    """

    def __init__(self, start: float = 0.0) -> None:
        self.now = start
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[int], None] | None = None

    def monotonic(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        if self.on_sleep is not None:
            self.on_sleep(len(self.sleeps))
        await asyncio.sleep(0)


class GatedClock(FakeClock):
    """FakeClock whose sleeps block until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def sleep(self, seconds: float) -> None:
        await self.gate.wait()
        await super().sleep(seconds)


class SteppingNow:
    """Timestamp source that moves one second forward per call."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        self.calls = 0

    def __call__(self) -> datetime:
        self.calls += 1
        self.current += timedelta(seconds=1)
        return self.current


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    """Start every test with unconfigured logging."""
    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def fake_clock() -> FakeClock:
    """Instant clock for settle delays."""
    return FakeClock()


@pytest.fixture
def pacing_clock() -> FakeClock:
    """Separate instant clock for controller pacing."""
    return FakeClock(start=100.0)


@pytest.fixture
def gated_clock() -> GatedClock:
    """Clock whose sleeps wait for ``gate.set()``."""
    return GatedClock()


@pytest.fixture
def stepping_now() -> SteppingNow:
    """Monotonically increasing UTC timestamps for the storage manager."""
    return SteppingNow()


def _twin(scene_lightness: float) -> DigitalTwinPipelineDriver:
    return DigitalTwinPipelineDriver(
        TwinPipelineConfig(scene_lightness=scene_lightness, width=128, height=96)
    )


@pytest.fixture
def twin_driver() -> DigitalTwinPipelineDriver:
    """Twin driver with a normally lit scene (auto exposure)."""
    return _twin(0.5)


@pytest.fixture
def dim_twin_driver() -> DigitalTwinPipelineDriver:
    """Twin driver with a dim scene (lightness about 0.05)."""
    return _twin(0.05)


@pytest.fixture
def dark_twin_driver() -> DigitalTwinPipelineDriver:
    """Twin driver with a dark scene (lightness about 0.004)."""
    return _twin(0.004)
