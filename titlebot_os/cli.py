"""Command-line helper for poking the device by hand (list, capture, tap)."""
from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path

from .adb import AdbClient, DeviceCommandFailed, DeviceNotFoundError
from .capture import CaptureError, CaptureManager
from .config import load_configs


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manual device helpers for the title bot.")
    parser.add_argument("--config", type=Path, help="Path to config.yaml", default=Path("config.yaml"))
    parser.add_argument("--serial", help="ADB serial to use (defaults to config, then first device)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("devices", help="List connected devices")

    capture = subparsers.add_parser("capture", help="Save one screencap")
    capture.add_argument("--name", help="Identifier used for the capture filename")

    tap = subparsers.add_parser("tap", help="Tap a device position")
    tap.add_argument("x", type=int)
    tap.add_argument("y", type=int)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper()), format="[%(levelname)s] %(message)s")

    device_cfg, capture_cfg, _, _ = load_configs(args.config)
    client = AdbClient(device_cfg)

    try:
        if args.command == "devices":
            serials = client.list_devices()
            if not serials:
                logging.warning("No ADB devices connected")
            for serial in serials:
                print(serial)
            return 0

        device = client.device(args.serial)

        if args.command == "tap":
            device.tap(args.x, args.y)
            logging.info("Tapped (%d, %d) on %s", args.x, args.y, device.serial)
            return 0

        capture_cfg.save_captures = True
        manager = CaptureManager(capture_cfg)
        name = args.name or datetime.now().strftime("manual_%Y%m%d-%H%M%S")
        result = manager.capture(device, name)
    except (DeviceNotFoundError, DeviceCommandFailed, CaptureError) as exc:
        logging.error("%s failed: %s", args.command, exc)
        return 1

    logging.info("Capture stored at %s", result.path)
    logging.info(
        "Mean luminance %.2f / std %.2f across %dx%d",
        result.validation.mean_luminance,
        result.validation.stddev_luminance,
        result.validation.size_px[0],
        result.validation.size_px[1],
    )
    return 0


if __name__ == "__main__":  # pragma: no cover - manual entry point
    raise SystemExit(main())
