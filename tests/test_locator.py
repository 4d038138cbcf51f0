"""Tests for locating the bot's own city."""
from __future__ import annotations

import io
from pathlib import Path
from typing import List

import numpy as np
import pytest
from PIL import Image

from titlebot_agent.clock import ManualClock
from titlebot_agent.locator import (
    CITY_BUBBLE_REFERENCE,
    COORDINATES_REGION,
    MAP_BUBBLE_REFERENCE,
    BotLocator,
    BotNotLocatedError,
)
from titlebot_agent.store import VisitedContextStore
from titlebot_os.adb import AdbDevice
from titlebot_os.capture import CaptureManager
from titlebot_os.config import CaptureConfig
from titlebot_vision.markers import ReferenceLibrary
from titlebot_vision.screen_matcher import ScreenMatcher


class ScreenDevice(AdbDevice):
    """Serves a fixed screen and records input commands."""

    def __init__(self, screen: Image.Image) -> None:
        super().__init__(None, "emulator-5554")
        buffer = io.BytesIO()
        screen.save(buffer, format="PNG")
        self._png = buffer.getvalue()
        self.commands: List[str] = []

    def shell(self, command: str) -> str:
        self.commands.append(command)
        return ""

    def screencap(self) -> bytes:
        return self._png


class FakeOcr:
    def __init__(self, text: str) -> None:
        self.text = text
        self.sizes: List[tuple] = []

    def __call__(self, image: Image.Image) -> str:
        self.sizes.append(image.size)
        return self.text


@pytest.fixture()
def screen() -> Image.Image:
    rng = np.random.default_rng(17)
    return Image.fromarray(rng.integers(0, 256, size=(900, 700, 3), dtype=np.uint8))


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


def _locator(tmp_path: Path, screen: Image.Image, clock: ManualClock, *, matching: str, ocr: FakeOcr) -> BotLocator:
    ref_dir = tmp_path / "reference"
    ref_dir.mkdir(exist_ok=True)
    bubble = screen.crop((41, 789, 114, 848))
    decoy = Image.new("RGB", bubble.size, (0, 90, 200))
    bubble.save(ref_dir / (MAP_BUBBLE_REFERENCE if matching == "map" else CITY_BUBBLE_REFERENCE))
    decoy.save(ref_dir / (CITY_BUBBLE_REFERENCE if matching == "map" else MAP_BUBBLE_REFERENCE))
    if matching == "none":
        decoy.save(ref_dir / MAP_BUBBLE_REFERENCE)
        decoy.save(ref_dir / CITY_BUBBLE_REFERENCE)

    capture = CaptureManager(CaptureConfig(output_dir=tmp_path / "captures"))
    store = VisitedContextStore(tmp_path / "last_visited.json")
    return BotLocator(
        capture,
        ReferenceLibrary(ref_dir),
        ScreenMatcher(),
        store,
        clock,
        home_kingdom="1234",
        ocr=ocr,
    )


def test_map_view_jumps_and_reads_coordinates(tmp_path, screen, clock) -> None:
    ocr = FakeOcr(" X:512 Y:768 \n")
    device = ScreenDevice(screen)

    result = _locator(tmp_path, screen, clock, matching="map", ocr=ocr).locate(device)

    assert result.view == "map"
    assert result.coordinates == "X:512 Y:768"
    assert device.commands == ["input tap 77 819"]
    assert clock.now() == pytest.approx(1.1)
    assert ocr.sizes == [(COORDINATES_REGION.width, COORDINATES_REGION.height)]
    assert result.screenshot_path is not None and result.screenshot_path.exists()
    assert VisitedContextStore(tmp_path / "last_visited.json").get().context_id == "1234"


def test_city_view_waits_longer(tmp_path, screen, clock) -> None:
    result = _locator(tmp_path, screen, clock, matching="city", ocr=FakeOcr("1,2")).locate(ScreenDevice(screen))

    assert result.view == "city"
    assert clock.now() == pytest.approx(7.1)
    assert result.to_dict()["coordinates"] == "1,2"


def test_unrecognised_bubble_raises_without_tapping(tmp_path, screen, clock) -> None:
    device = ScreenDevice(screen)
    locator = _locator(tmp_path, screen, clock, matching="none", ocr=FakeOcr(""))

    with pytest.raises(BotNotLocatedError):
        locator.locate(device)

    assert device.commands == []
    assert VisitedContextStore(tmp_path / "last_visited.json").get() is None
