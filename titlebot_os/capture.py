"""Device screencap utilities for the title bot."""
from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from PIL import Image, UnidentifiedImageError

from .adb import AdbDevice, DeviceCommandFailed
from .config import CaptureConfig

Logger = logging.Logger

# Anything shorter cannot be a real PNG screencap
_MIN_SCREENCAP_BYTES = 1000


@dataclass(slots=True, frozen=True)
class Region:
    """Rectangle in device pixels."""

    left: int
    top: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.left + self.width

    @property
    def bottom(self) -> int:
        return self.top + self.height

    def to_box(self) -> Tuple[int, int, int, int]:
        """Return the (left, upper, right, lower) box Pillow expects."""
        return self.left, self.top, self.right, self.bottom

    @classmethod
    def from_tuple(cls, values: Tuple[int, int, int, int]) -> "Region":
        left, top, width, height = values
        return cls(int(left), int(top), int(width), int(height))


@dataclass(slots=True)
class CaptureValidation:
    """Basic image statistics used to validate captured content."""

    mean_luminance: float
    stddev_luminance: float
    size_px: Tuple[int, int]


@dataclass(slots=True)
class CaptureResult:
    """Return value from a capture call."""

    image: Image.Image
    validation: CaptureValidation
    path: Optional[Path] = None


class CaptureError(RuntimeError):
    """Raised when capture fails validation or system calls."""


def crop_region(image: Image.Image, region: Region) -> Image.Image:
    """Crop a region out of a capture, refusing boxes that fall off the image."""
    if region.width <= 0 or region.height <= 0:
        raise CaptureError(f"Crop region must have a positive size, got {region}")
    if region.left < 0 or region.top < 0 or region.right > image.width or region.bottom > image.height:
        raise CaptureError(
            f"Crop region {region} exceeds capture bounds {image.width}x{image.height}"
        )
    return image.crop(region.to_box())


class CaptureManager:
    """Coordinates screencaps of the emulator."""

    def __init__(self, config: CaptureConfig, logger: Optional[Logger] = None) -> None:
        self._config = config
        self._logger = logger or logging.getLogger(__name__)
        self._output_dir = config.output_dir
        if config.save_captures:
            self._output_dir.mkdir(parents=True, exist_ok=True)

    def capture(self, device: AdbDevice, stem: Optional[str] = None) -> CaptureResult:
        """Capture the full device screen, validate it and optionally persist it."""

        image = self._grab(device)
        validation = self._validate_capture(image)

        path: Optional[Path] = None
        if self._config.save_captures:
            path = self._save(image, stem or datetime.now().strftime("capture_%Y%m%d-%H%M%S-%f"))
            self._enforce_retention()

        return CaptureResult(image=image, validation=validation, path=path)

    def capture_region(self, device: AdbDevice, region: Region) -> Image.Image:
        """Capture the screen and return only the requested region.

        Region captures are small fixed crops used for marker checks, so they
        skip luminance validation and are never written to disk.
        """
        image = self._grab(device)
        return crop_region(image, region)

    def _grab(self, device: AdbDevice) -> Image.Image:
        self._logger.debug("Capturing screen of %s", device.serial)
        try:
            payload = device.screencap()
        except DeviceCommandFailed as exc:
            raise CaptureError(f"Screencap failed: {exc}") from exc

        if len(payload) < _MIN_SCREENCAP_BYTES:
            raise CaptureError(f"Screencap returned only {len(payload)} bytes")

        try:
            with Image.open(io.BytesIO(payload)) as decoded:
                return decoded.convert("RGB")
        except (UnidentifiedImageError, OSError) as exc:
            raise CaptureError(f"Screencap could not be decoded: {exc}") from exc

    def _validate_capture(self, image: Image.Image) -> CaptureValidation:
        array = np.asarray(image, dtype=np.float32)
        luminance = 0.2126 * array[:, :, 0] + 0.7152 * array[:, :, 1] + 0.0722 * array[:, :, 2]
        mean_luma = float(luminance.mean())
        std_luma = float(luminance.std())

        validation_cfg = self._config.validation
        if mean_luma < validation_cfg.min_mean_luminance:
            raise CaptureError(f"Capture luminance too low ({mean_luma:.2f} < {validation_cfg.min_mean_luminance})")
        if std_luma < validation_cfg.min_luminance_stddev:
            raise CaptureError(
                f"Capture appears uniform (std {std_luma:.2f} < {validation_cfg.min_luminance_stddev})"
            )

        return CaptureValidation(mean_luminance=mean_luma, stddev_luminance=std_luma, size_px=(image.width, image.height))

    def _save(self, image: Image.Image, stem: str) -> Path:
        safe_stem = re.sub(r"[^A-Za-z0-9._-]", "_", stem)
        path = self._output_dir / f"{safe_stem}.png"
        image.save(path, format="PNG")
        self._logger.debug("Saved capture to %s", path)
        return path

    def _enforce_retention(self) -> None:
        max_captures = self._config.retention.max_captures
        if max_captures <= 0:
            return

        captures = sorted(self._output_dir.glob("*.png"), key=lambda p: p.stat().st_mtime)
        excess = len(captures) - max_captures
        for victim in captures[:excess]:
            self._logger.debug("Deleting capture %s", victim)
            victim.unlink(missing_ok=True)


__all__ = [
    "CaptureError",
    "CaptureManager",
    "CaptureResult",
    "CaptureValidation",
    "Region",
    "crop_region",
]
