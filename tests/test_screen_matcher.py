"""Tests for the sliding-window screen matcher."""
from __future__ import annotations

from typing import List

import numpy as np
import pytest
from PIL import Image

from titlebot_os.adb import AdbDevice
from titlebot_vision import screen_matcher
from titlebot_vision.screen_matcher import MatchResult, ScreenMatcher, to_rgb_array


class RecordingDevice(AdbDevice):
    def __init__(self) -> None:
        super().__init__(None, "recording")
        self.commands: List[str] = []

    def shell(self, command: str) -> str:
        self.commands.append(command)
        return ""


def _noise(width: int, height: int, seed: int = 3) -> np.ndarray:
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(height, width, 3), dtype=np.uint8)


def test_exact_copy_is_found_at_its_centre() -> None:
    screen = _noise(60, 50)
    reference = screen[7:17, 5:17].copy()  # 12x10 window at offset (5, 7)

    result = ScreenMatcher().locate(Image.fromarray(screen), Image.fromarray(reference))

    assert result.found
    assert (result.x, result.y) == (5 + 12 // 2, 7 + 10 // 2)
    assert (result.left, result.top) == (5, 7)
    assert (result.width, result.height) == (12, 10)
    assert result.difference == 0
    assert result.is_exact()


def test_one_changed_pixel_gives_difference_of_one() -> None:
    screen = _noise(60, 50)
    screen[7, 5] = (255, 255, 255)
    reference = screen[7:17, 5:17].copy()
    reference[0, 0] = (0, 0, 0)

    result = ScreenMatcher().locate(screen, reference, tolerance=0.1)

    assert result.found
    assert (result.left, result.top) == (5, 7)
    assert result.difference == 1
    assert not result.is_exact()
    assert result.accepts(max_difference=1)
    assert not result.accepts(max_difference=0)


def test_ties_resolve_to_first_offset_in_row_major_order() -> None:
    screen = np.full((20, 30, 3), 90, dtype=np.uint8)
    reference = np.full((4, 6, 3), 90, dtype=np.uint8)

    result = ScreenMatcher().locate(screen, reference)

    assert (result.left, result.top) == (0, 0)
    assert (result.x, result.y) == (3, 2)
    assert result.difference == 0


def test_small_colour_shift_is_within_tolerance() -> None:
    screen = np.full((10, 10, 3), 120, dtype=np.uint8)
    reference = np.full((3, 3, 3), 123, dtype=np.uint8)

    loose = ScreenMatcher().locate(screen, reference, tolerance=0.1)
    strict = ScreenMatcher().locate(screen, reference, tolerance=0.0)

    assert loose.difference == 0
    assert strict.difference == 9


def test_transparent_reference_pixels_blend_over_white() -> None:
    screen = np.full((8, 8, 3), 255, dtype=np.uint8)
    reference = Image.new("RGBA", (4, 4), (0, 0, 0, 0))

    result = ScreenMatcher().locate(screen, reference, tolerance=0.0)

    assert result.difference == 0
    assert np.allclose(to_rgb_array(reference), 255.0)


def test_reference_larger_than_screen_is_not_found() -> None:
    result = ScreenMatcher().locate(_noise(10, 10), _noise(12, 4))

    assert result == MatchResult.not_found(12, 4)
    assert not result.found
    assert not result.accepts(max_difference=1000)


def test_invalid_tolerance_is_rejected() -> None:
    with pytest.raises(ValueError):
        ScreenMatcher().locate(_noise(10, 10), _noise(2, 2), tolerance=1.5)


def test_matches_across_column_chunks(monkeypatch: pytest.MonkeyPatch) -> None:
    # Seven windows per batch
    monkeypatch.setattr(screen_matcher, "_CHUNK_ELEMENTS", 3 * 16 * 50 * 7)
    screen = _noise(700, 24, seed=11)
    reference = screen[4:20, 640:690].copy()

    result = ScreenMatcher().locate(screen, reference)

    assert (result.left, result.top) == (640, 4)
    assert result.difference == 0


def test_find_and_tap_taps_only_accepted_matches() -> None:
    screen = _noise(40, 30)
    reference = screen[10:20, 20:30].copy()
    device = RecordingDevice()
    matcher = ScreenMatcher()

    hit = matcher.find_and_tap(device, screen, reference)
    assert hit.is_exact()
    assert device.commands == ["input tap 25 15"]

    miss = matcher.find_and_tap(device, screen, _noise(10, 10, seed=99))
    assert not miss.accepts(0)
    assert device.commands == ["input tap 25 15"]
