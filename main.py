#!/usr/bin/env python3
"""Main entry point for the title bot."""
import logging
import sys
from pathlib import Path

from titlebot_agent.clock import SystemClock
from titlebot_agent.locator import BotLocator
from titlebot_agent.scheduler import RequestScheduler
from titlebot_agent.sequencer import ActionSequencer
from titlebot_agent.service import TitleService
from titlebot_agent.store import LocationBook, VisitedContextStore
from titlebot_os.adb import AdbClient, DeviceCommandFailed
from titlebot_os.capture import CaptureManager
from titlebot_os.config import load_configs
from titlebot_vision.markers import MarkerVerifier, ReferenceLibrary
from titlebot_vision.screen_matcher import ScreenMatcher
from titlebot_web.backend.server import create_app


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Configure logging for the application.

    Args:
        level: Logging level (default: INFO)

    Returns:
        Root logger instance
    """
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    return logging.getLogger()


def main() -> int:
    """Main entry point."""
    logger = setup_logging(level=logging.INFO)

    logger.info("=" * 70)
    logger.info("Title Bot - Kingdom title assignment service")
    logger.info("=" * 70)

    config_path = Path("config.yaml")
    if not config_path.exists():
        logger.warning("config.yaml not found; using defaults")

    try:
        device_cfg, capture_cfg, timing_cfg, service_cfg = load_configs(config_path)
    except Exception as exc:
        logger.error("Failed to load configuration: %s", exc)
        return 1

    logger.info("Configuration loaded successfully")
    logger.info("  ADB: %s (serial: %s)", device_cfg.adb_path, device_cfg.serial or "first device")
    logger.info("  Home kingdom: %s", service_cfg.home_kingdom or "<unset>")
    logger.info("  Lost kingdom: %s", service_cfg.lost_kingdom or "<unset>")
    logger.info("  Data dir: %s", service_cfg.data_dir)
    logger.info("  Logs dir: %s", service_cfg.logs_dir)

    if not service_cfg.home_kingdom and not service_cfg.lost_kingdom:
        logger.warning("No kingdom ids configured; set HOME_KD / LOST_KD or service.kingdoms in config.yaml")

    clock = SystemClock()
    adb = AdbClient(device_cfg)
    capture = CaptureManager(capture_cfg)
    matcher = ScreenMatcher()
    references = ReferenceLibrary(capture_cfg.references_dir)
    visited = VisitedContextStore(service_cfg.data_dir / "last_visited.json")
    locations = LocationBook(service_cfg.data_dir / "locations.json")

    verifier = None
    if capture_cfg.verification.enabled:
        verifier = MarkerVerifier(capture, references, matcher, capture_cfg.verification)

    sequencer = ActionSequencer(visited, clock, timing_cfg, verifier)
    scheduler = RequestScheduler(sequencer, clock, logs_dir=service_cfg.logs_dir)
    locator = BotLocator(capture, references, matcher, visited, clock, service_cfg.home_kingdom)
    service = TitleService(scheduler, locations, adb, service_cfg, locator)

    try:
        serials = adb.list_devices()
    except DeviceCommandFailed as exc:
        logger.error("ADB is not usable: %s", exc)
        return 1
    if serials:
        logger.info("Connected devices: %s", ", ".join(serials))
    else:
        logger.warning("No ADB devices connected yet; requests will fail until one is")

    app, socketio = create_app(service, admin_token=service_cfg.admin_token)

    try:
        logger.info("Serving on %s:%d", service_cfg.host, service_cfg.port)
        logger.info("Press Ctrl+C to stop")
        socketio.run(app, host=service_cfg.host, port=service_cfg.port, allow_unsafe_werkzeug=True)
        return 0
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except Exception as exc:
        logger.exception("Fatal error: %s", exc)
        return 1
    finally:
        scheduler.close()


if __name__ == "__main__":
    sys.exit(main())
