"""Tests for CaptureConfig validation, DriverFactory and the global factory."""

from collections.abc import Iterator
from pathlib import Path

import pytest

from adaptive_capture.data import LocalFileBackend
from adaptive_capture.drivers import config
from adaptive_capture.drivers.config import (
    CaptureConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
    use_digital_twin,
    use_hardware,
)
from adaptive_capture.drivers.pipelines import (
    DigitalTwinPipelineDriver,
    ImageSource,
    Picamera2PipelineDriver,
)


@pytest.fixture(autouse=True)
def _reset_factory(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Each test starts without a global factory."""
    monkeypatch.setattr(config, "_factory", None)
    yield


class TestCaptureConfig:
    """Tests for defaults and validation."""

    def test_defaults(self) -> None:
        cfg = CaptureConfig()
        assert cfg.mode == DriverMode.DIGITAL_TWIN
        assert cfg.output_dir == Path("output")
        assert cfg.interval_s == 5.0
        assert cfg.settle_s == 2.0
        assert cfg.streak_length == 12
        assert cfg.image_extension == "jpg"
        assert (cfg.width, cfg.height, cfg.rotation) == (1024, 768, 180)

    def test_extension_dot_stripped(self) -> None:
        assert CaptureConfig(image_extension=".png").image_extension == "png"

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"interval_s": -1}, "interval_s"),
            ({"settle_s": -0.1}, "settle_s"),
            ({"streak_length": 0}, "streak_length"),
            ({"width": 0}, "Image size"),
            ({"jpeg_quality": 101}, "jpeg_quality"),
            ({"rotation": 90}, "rotation"),
            ({"twin_scene_lightness": 1.5}, "twin_scene_lightness"),
            ({"image_extension": "."}, "image_extension"),
        ],
    )
    def test_invalid(self, kwargs: dict, match: str) -> None:
        with pytest.raises(ValueError, match=match):
            CaptureConfig(**kwargs)

    def test_zero_interval_allowed(self) -> None:
        """Back-to-back capture is a valid setting."""
        assert CaptureConfig(interval_s=0).interval_s == 0


class TestDriverFactory:
    """Tests for driver and backend creation."""

    def test_default_is_synthetic_twin(self) -> None:
        driver = DriverFactory().create_pipeline_driver()
        assert isinstance(driver, DigitalTwinPipelineDriver)
        assert driver.config.image_source == ImageSource.SYNTHETIC

    def test_twin_settings_forwarded(self) -> None:
        factory = DriverFactory(
            CaptureConfig(twin_scene_lightness=0.02, width=320, height=240)
        )
        driver = factory.create_pipeline_driver()
        assert driver.scene_lightness == 0.02
        assert (driver.config.width, driver.config.height) == (320, 240)

    def test_twin_file_source(self, tmp_path: Path) -> None:
        image = tmp_path / "sky.jpg"
        image.write_bytes(b"")
        driver = DriverFactory(
            CaptureConfig(twin_image_path=image)
        ).create_pipeline_driver()
        assert driver.config.image_source == ImageSource.FILE

    def test_twin_directory_source(self, tmp_path: Path) -> None:
        driver = DriverFactory(
            CaptureConfig(twin_image_path=tmp_path)
        ).create_pipeline_driver()
        assert driver.config.image_source == ImageSource.DIRECTORY

    def test_hardware_driver_not_opened(self) -> None:
        """Creating the hardware driver does not touch picamera2."""
        factory = DriverFactory(CaptureConfig(mode=DriverMode.HARDWARE, rotation=0))
        driver = factory.create_pipeline_driver()
        assert isinstance(driver, Picamera2PipelineDriver)
        assert driver.rotation == 0

    def test_storage_backend(self, tmp_path: Path) -> None:
        backend = DriverFactory(
            CaptureConfig(output_dir=tmp_path)
        ).create_storage_backend()
        assert isinstance(backend, LocalFileBackend)
        assert backend.root == tmp_path


class TestGlobalFactory:
    """Tests for the module-level factory helpers."""

    def test_lazy_default(self) -> None:
        factory = get_factory()
        assert factory is get_factory()
        assert factory.config.mode == DriverMode.DIGITAL_TWIN

    def test_configure_replaces(self) -> None:
        cfg = CaptureConfig(interval_s=30)
        configure(cfg)
        assert get_factory().config is cfg

    def test_use_hardware_resets_settings(self) -> None:
        configure(CaptureConfig(interval_s=30))
        use_hardware()
        assert get_factory().config.mode == DriverMode.HARDWARE
        assert get_factory().config.interval_s == 5.0

    def test_preserve_config(self) -> None:
        configure(CaptureConfig(interval_s=30))

        use_hardware(preserve_config=True)
        assert get_factory().config.interval_s == 30
        use_digital_twin(preserve_config=True)

        assert get_factory().config.mode == DriverMode.DIGITAL_TWIN
        assert get_factory().config.interval_s == 30

    def test_use_digital_twin_defaults(self) -> None:
        use_hardware()
        use_digital_twin()
        assert get_factory().config == CaptureConfig()
