"""Reference images and the advisory on-screen marker check."""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Dict, Optional

from PIL import Image, UnidentifiedImageError

from titlebot_os.adb import AdbDevice, DeviceCommandFailed
from titlebot_os.capture import CaptureError, CaptureManager, Region
from titlebot_os.config import VerificationConfig

from .screen_matcher import MatchResult, ScreenMatcher

Logger = logging.Logger


class ReferenceNotFoundError(RuntimeError):
    """Raised when a reference image is missing or unreadable."""


class VerificationSkipped(RuntimeError):
    """Raised when the marker check could not be performed at all."""


class ReferenceLibrary:
    """Loads and caches reference PNGs from a directory."""

    def __init__(self, references_dir: Path, logger: Optional[Logger] = None) -> None:
        self._dir = references_dir
        self._logger = logger or logging.getLogger(__name__)
        self._cache: Dict[str, Image.Image] = {}
        self._guard = threading.Lock()

    def path_for(self, name: str) -> Path:
        return self._dir / name

    def load(self, name: str) -> Image.Image:
        """Return the named reference as an RGBA image.

        Raises:
            ReferenceNotFoundError: If the file is absent or not an image.
        """
        with self._guard:
            cached = self._cache.get(name)
            if cached is not None:
                return cached

            path = self.path_for(name)
            if not path.is_file():
                raise ReferenceNotFoundError(f"Reference image missing: {path}")
            try:
                with Image.open(path) as handle:
                    image = handle.convert("RGBA")
            except (UnidentifiedImageError, OSError) as exc:
                raise ReferenceNotFoundError(f"Reference image unreadable: {path} ({exc})") from exc

            self._cache[name] = image
            self._logger.debug("Loaded reference %s (%dx%d)", name, image.width, image.height)
            return image


class MarkerVerifier:
    """Checks that a known marker is visible in a fixed screen region."""

    def __init__(
        self,
        capture: CaptureManager,
        references: ReferenceLibrary,
        matcher: ScreenMatcher,
        config: Optional[VerificationConfig] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._capture = capture
        self._references = references
        self._matcher = matcher
        self._config = config or VerificationConfig()
        self._logger = logger or logging.getLogger(__name__)

    def verify(self, device: AdbDevice) -> MatchResult:
        """Capture the configured region and match it against the marker.

        Returns:
            The match result; callers use `accepts(max_difference)` to decide.

        Raises:
            VerificationSkipped: If the reference, the capture, or the match
                could not be produced.
        """
        config = self._config
        try:
            reference = self._references.load(config.reference)
            crop = self._capture.capture_region(device, Region.from_tuple(config.region))
            return self._matcher.locate(crop, reference, config.tolerance)
        except (ReferenceNotFoundError, CaptureError, DeviceCommandFailed, ValueError) as exc:
            raise VerificationSkipped(str(exc)) from exc
        except Exception as exc:
            self._logger.exception("Marker check failed unexpectedly")
            raise VerificationSkipped(f"{type(exc).__name__}: {exc}") from exc

    def is_present(self, device: AdbDevice) -> bool:
        result = self.verify(device)
        return result.accepts(self._config.max_difference)


__all__ = [
    "MarkerVerifier",
    "ReferenceLibrary",
    "ReferenceNotFoundError",
    "VerificationSkipped",
]
