"""CLI entry point for adaptive-capture.

Provides the ``adaptive-capture`` console script with subcommands:

- ``run`` - Run the capture loop until SIGINT/SIGTERM (default)
- ``status`` - Show which image slot is current

Usage::

    # Simulated camera, default settings
    adaptive-capture

    # Raspberry Pi camera, one frame every 10 seconds
    adaptive-capture run --mode hardware --interval 10 --output-dir /srv/cam

    # Where is the newest complete image?
    adaptive-capture status --output-dir /srv/cam

Module Structure:
    - ``main()`` - CLI entry point, dispatches subcommands
    - ``build_parser()`` - argparse definition
    - ``run_capture()`` - wire session, storage and controller, run the loop
    - ``show_status()`` - read the persisted status record
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from adaptive_capture.data import StorageManager
from adaptive_capture.devices import CameraSession, CancellationToken, CaptureController
from adaptive_capture.drivers.config import (
    CaptureConfig,
    DriverFactory,
    DriverMode,
    configure,
    get_factory,
)
from adaptive_capture.observability import StatsSummary, configure_logging, get_logger

logger = get_logger(__name__)

PROG_NAME = "adaptive-capture"
_SUBCOMMANDS = ("run", "status")
_LOG_LEVELS = ("critical", "error", "warning", "info", "debug")


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser with ``run`` and ``status`` subcommands.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog=PROG_NAME,
        description=(
            "Adaptive capture - periodic stills with automatic exposure "
            "and crash-safe storage"
        ),
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the capture loop (default if no subcommand)",
    )
    run_parser.add_argument(
        "--mode",
        type=str,
        choices=[mode.value for mode in DriverMode],
        default=DriverMode.DIGITAL_TWIN.value,
        help=(
            "Driver mode: 'hardware' for the Raspberry Pi camera, "
            "'digital_twin' for simulation (default)"
        ),
    )
    run_parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory for primary/secondary images and status.json",
    )
    run_parser.add_argument(
        "--interval",
        type=float,
        default=5.0,
        help="Seconds between capture starts (default: 5)",
    )
    run_parser.add_argument(
        "--settle",
        type=float,
        default=2.0,
        help="Seconds to let the sensor settle after reconfiguring (default: 2)",
    )
    run_parser.add_argument(
        "--streak-length",
        type=int,
        default=12,
        help="Captures between exposure recalibrations (default: 12)",
    )
    run_parser.add_argument(
        "--image-extension",
        type=str,
        default="jpg",
        help="Extension of the primary/secondary slot files (default: jpg)",
    )
    run_parser.add_argument(
        "--width",
        type=int,
        default=1024,
        help="Still width in pixels (default: 1024)",
    )
    run_parser.add_argument(
        "--height",
        type=int,
        default=768,
        help="Still height in pixels (default: 768)",
    )
    run_parser.add_argument(
        "--jpeg-quality",
        type=int,
        default=90,
        help="JPEG quality 1-100 (default: 90)",
    )
    run_parser.add_argument(
        "--rotation",
        type=int,
        choices=[0, 180],
        default=180,
        help="Sensor rotation in degrees (default: 180)",
    )
    run_parser.add_argument(
        "--log-level",
        type=str,
        choices=_LOG_LEVELS,
        default="info",
        help="Log level (default: info)",
    )
    run_parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs as JSON lines",
    )
    run_parser.add_argument(
        "--scene-lightness",
        type=float,
        default=0.5,
        help="Digital twin only: ambient light of the simulated scene, 0-1",
    )
    run_parser.add_argument(
        "--image-path",
        type=Path,
        default=None,
        help="Digital twin only: image file or directory to serve as frames",
    )

    status_parser = subparsers.add_parser(
        "status",
        help="Show the persisted status record",
    )
    status_parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("output"),
        help="Directory holding status.json",
    )
    status_parser.add_argument(
        "--image-extension",
        type=str,
        default="jpg",
        help="Extension of the slot files (default: jpg)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> CaptureConfig:
    """Build a CaptureConfig from parsed ``run`` arguments.

    Raises:
        ValueError: If a value is out of range.
    """
    return CaptureConfig(
        mode=DriverMode(args.mode),
        output_dir=args.output_dir,
        interval_s=args.interval,
        settle_s=args.settle,
        streak_length=args.streak_length,
        image_extension=args.image_extension,
        width=args.width,
        height=args.height,
        jpeg_quality=args.jpeg_quality,
        rotation=args.rotation,
        twin_scene_lightness=args.scene_lightness,
        twin_image_path=args.image_path,
    )


async def run_capture(
    factory: DriverFactory, token: CancellationToken
) -> StatsSummary:
    """Wire the capture loop from ``factory`` and run it until cancelled.

    Args:
        factory: Supplies the pipeline driver, storage backend and settings.
        token: Cancelled to stop the loop.

    Returns:
        Loop statistics.
    """
    config = factory.config
    session = CameraSession(
        factory.create_pipeline_driver(),
        settle_s=config.settle_s,
        streak_length=config.streak_length,
    )
    storage = StorageManager(
        factory.create_storage_backend(),
        image_extension=config.image_extension,
    )
    controller = CaptureController(session, storage, interval_s=config.interval_s)
    return await controller.run(token)


def _install_signal_handlers(token: CancellationToken) -> None:
    """Cancel ``token`` on SIGINT/SIGTERM."""
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, sig, token)
        except NotImplementedError:  # pragma: no cover
            # Windows event loops lack add_signal_handler
            signal.signal(sig, lambda s, f: loop.call_soon_threadsafe(token.cancel))


def _on_signal(sig: signal.Signals, token: CancellationToken) -> None:
    logger.info("Stop requested", signal=sig.name)
    token.cancel()


async def _run_until_signalled(factory: DriverFactory) -> StatsSummary:
    token = CancellationToken()
    _install_signal_handlers(token)
    return await run_capture(factory, token)


async def show_status(
    output_dir: Path, image_extension: str = "jpg"
) -> dict[str, object]:
    """Read the persisted status record from ``output_dir``.

    Returns:
        Dict with ``IsPrimary``, ``Timestamp`` and ``LatestImage``; values are
        None when no status has been written yet.
    """
    factory = DriverFactory(
        CaptureConfig(output_dir=output_dir, image_extension=image_extension)
    )
    storage = StorageManager(
        factory.create_storage_backend(),
        image_extension=factory.config.image_extension,
    )
    status = await storage.read_status()
    if status is None:
        return {"IsPrimary": None, "Timestamp": None, "LatestImage": None}
    return {
        **json.loads(status.to_json()),
        "LatestImage": await storage.latest_image_name(),
    }


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point for adaptive-capture.

    Args:
        argv: Arguments without the program name. Defaults to sys.argv.

    Returns:
        Exit code 0 for a clean stop, 1 when no status record exists.

    Raises:
        SystemExit: On --help or argument errors.
    """
    argv = list(sys.argv[1:] if argv is None else argv)
    # No subcommand means "run"
    if not argv or argv[0] not in (*_SUBCOMMANDS, "-h", "--help"):
        argv.insert(0, "run")

    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "status":
        try:
            result = asyncio.run(show_status(args.output_dir, args.image_extension))
        except ValueError as e:
            parser.error(str(e))
        print(json.dumps(result, indent=2))
        return 0 if result["IsPrimary"] is not None else 1

    try:
        config = config_from_args(args)
    except ValueError as e:
        parser.error(str(e))

    configure_logging(
        level=getattr(logging, args.log_level.upper()),
        json_format=args.json_logs,
        force=True,
    )
    configure(config)

    factory = get_factory()
    logger.info(
        "Starting capture",
        mode=config.mode.value,
        output_dir=str(config.output_dir),
        interval_s=config.interval_s,
    )
    summary = asyncio.run(_run_until_signalled(factory))
    logger.info("Capture finished", **summary.to_dict())
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
