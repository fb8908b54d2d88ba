"""Hardware drivers for adaptive capture.

Supports two modes:
- HARDWARE: Raspberry Pi camera through picamera2
- DIGITAL_TWIN: Simulated camera pipeline for testing without hardware

Use drivers.config to switch modes:
    from adaptive_capture.drivers import config
    config.use_digital_twin()  # or config.use_hardware()
"""

from adaptive_capture.drivers import config, pipelines
from adaptive_capture.drivers.config import (
    CaptureConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    use_digital_twin,
    use_hardware,
)

__all__ = [
    # Submodules
    "config",
    "pipelines",
    # Configuration
    "CaptureConfig",
    "DriverMode",
    "DriverFactory",
    "get_factory",
    "configure",
    "use_digital_twin",
    "use_hardware",
]
