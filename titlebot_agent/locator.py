"""Find the bot's own city and read its coordinates from the screen."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import pytesseract
from PIL import Image

from titlebot_os.adb import AdbDevice
from titlebot_os.capture import CaptureManager, Region, crop_region
from titlebot_vision.markers import ReferenceLibrary
from titlebot_vision.screen_matcher import ScreenMatcher

from .clock import Clock
from .store import StoreUnavailable, VisitedContext, VisitedContextStore

Logger = logging.Logger

OcrFunc = Callable[[Image.Image], str]

BUBBLE_REGION = Region(41, 789, 73, 59)
COORDINATES_REGION = Region(402, 11, 233, 42)
JUMP_BUTTON = (77, 819)

MAP_BUBBLE_REFERENCE = "rok_jumpToMapBubbleReference.png"
CITY_BUBBLE_REFERENCE = "rok_jumpToCityBubbleReference.png"
BUBBLE_TOLERANCE = 0.2

# Seconds to wait after the jump before the coordinates are readable
MAP_JUMP_DELAY_S = 1.1
CITY_JUMP_DELAY_S = 7.1


class BotNotLocatedError(RuntimeError):
    """Raised when the jump bubble matches neither known view."""


@dataclass(slots=True, frozen=True)
class LocateResult:
    view: str  # "map" or "city", the view the bot was in before the jump
    coordinates: str
    screenshot_path: Optional[Path] = None

    def to_dict(self) -> dict:
        return {
            "view": self.view,
            "coordinates": self.coordinates,
            "screenshot": str(self.screenshot_path) if self.screenshot_path else None,
        }


def tesseract_ocr(image: Image.Image) -> str:
    """Read a single line of text with Tesseract."""
    return pytesseract.image_to_string(image.convert("L"), config="--psm 7").strip()


class BotLocator:
    """Jumps the bot back to its own city and reports where that is."""

    def __init__(
        self,
        capture: CaptureManager,
        references: ReferenceLibrary,
        matcher: ScreenMatcher,
        store: VisitedContextStore,
        clock: Clock,
        home_kingdom: str,
        ocr: Optional[OcrFunc] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._capture = capture
        self._references = references
        self._matcher = matcher
        self._store = store
        self._clock = clock
        self._home_kingdom = home_kingdom
        self._ocr = ocr or tesseract_ocr
        self._logger = logger or logging.getLogger(__name__)

    def locate(self, device: AdbDevice) -> LocateResult:
        """Identify the current view, jump home, and OCR the coordinates.

        Args:
            device: Device the bot runs on.

        Returns:
            The view that was detected and the coordinate text.

        Raises:
            BotNotLocatedError: If the jump bubble is not recognised.
            ReferenceNotFoundError: If a bubble reference image is missing.
            CaptureError: If a screencap cannot be taken or decoded.
            DeviceCommandFailed: If the jump tap fails.
        """
        with device.exclusive():
            view = self._detect_view(device)

            x, y = JUMP_BUTTON
            self._logger.info("Bot is on the %s view; jumping home", view)
            device.tap(x, y)
            self._clock.sleep(MAP_JUMP_DELAY_S if view == "map" else CITY_JUMP_DELAY_S)

            result = self._capture.capture(device, stem="bot_locate")

        coordinates = self._ocr(crop_region(result.image, COORDINATES_REGION)).strip()
        self._logger.info("Bot located at %s", coordinates or "<unreadable>")

        if self._home_kingdom:
            try:
                self._store.set(VisitedContext(context_id=self._home_kingdom, visited_at=self._clock.timestamp()))
            except StoreUnavailable as exc:
                self._logger.warning("Could not record home kingdom visit: %s", exc)

        return LocateResult(view=view, coordinates=coordinates, screenshot_path=result.path)

    def _detect_view(self, device: AdbDevice) -> str:
        bubble = self._capture.capture_region(device, BUBBLE_REGION)
        for view, reference_name in (("map", MAP_BUBBLE_REFERENCE), ("city", CITY_BUBBLE_REFERENCE)):
            reference = self._references.load(reference_name)
            match = self._matcher.locate(bubble, reference, BUBBLE_TOLERANCE)
            self._logger.debug("Bubble vs %s: difference=%d", view, match.difference)
            if match.is_exact():
                return view
        raise BotNotLocatedError("Title bot could not be located: jump bubble not recognised")


__all__ = ["BotLocator", "BotNotLocatedError", "LocateResult", "tesseract_ocr"]
