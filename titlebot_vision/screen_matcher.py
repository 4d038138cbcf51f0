"""Sliding-window reference matching for device screencaps.

The matcher slides a reference image over every offset of a capture where it
fits entirely, counts the pixels whose perceptual colour difference exceeds a
tolerance, and reports the offset with the lowest count. The colour metric is
the YIQ delta popularised by pixelmatch: RGBA input is blended over white,
converted to YIQ, and a pixel differs when

    0.5053 * dY^2 + 0.299 * dI^2 + 0.1957 * dQ^2 > 35215 * tolerance^2

Anti-aliasing detection is not applied. Cost is O((W-w)(H-h)wh), so callers
pass small fixed crops wherever latency matters.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from PIL import Image

if TYPE_CHECKING:  # pragma: no cover - typing aid only
    from titlebot_os.adb import AdbDevice

Logger = logging.Logger

ImageLike = Union[Image.Image, np.ndarray]

# Maximum possible YIQ delta between two colours (black vs white)
MAX_YIQ_DELTA = 35215.0

# Upper bound on float32 elements materialised per window batch
_CHUNK_ELEMENTS = 4_000_000

_YIQ_WEIGHTS = np.array([0.5053, 0.299, 0.1957], dtype=np.float32)
_RGB_TO_YIQ = np.array(
    [
        [0.29889531, 0.58662247, 0.11448223],
        [0.59597799, -0.27417610, -0.32180189],
        [0.21147017, -0.52261711, 0.31114694],
    ],
    dtype=np.float32,
)


@dataclass(slots=True, frozen=True)
class MatchResult:
    """Best-scoring location of a reference inside a capture."""

    found: bool
    x: int  # centre of the best window
    y: int
    width: int
    height: int
    difference: int  # differing pixel count at the best window

    @property
    def left(self) -> int:
        return self.x - self.width // 2

    @property
    def top(self) -> int:
        return self.y - self.height // 2

    def is_exact(self) -> bool:
        return self.found and self.difference == 0

    def accepts(self, max_difference: int = 0) -> bool:
        """Whether the caller's acceptance threshold is met."""
        return self.found and self.difference <= max_difference

    @classmethod
    def not_found(cls, width: int, height: int) -> "MatchResult":
        return cls(found=False, x=-1, y=-1, width=width, height=height, difference=-1)


def to_rgb_array(image: ImageLike) -> np.ndarray:
    """Convert an image to a float32 RGB array with alpha blended over white."""

    if isinstance(image, Image.Image):
        array = np.asarray(image.convert("RGBA"), dtype=np.float32)
    else:
        array = np.asarray(image, dtype=np.float32)
        if array.ndim == 2:
            array = np.repeat(array[:, :, None], 3, axis=2)

    if array.ndim != 3 or array.shape[2] not in (3, 4):
        raise ValueError(f"Expected an RGB or RGBA image, got array of shape {array.shape}")

    if array.shape[2] == 4:
        alpha = array[:, :, 3:4] / 255.0
        return 255.0 + (array[:, :, :3] - 255.0) * alpha
    return array


def rgb_to_yiq(rgb: np.ndarray) -> np.ndarray:
    """Project RGB pixels into YIQ space (last axis is the channel axis)."""
    return np.einsum("...c,kc->...k", rgb, _RGB_TO_YIQ).astype(np.float32)


class ScreenMatcher:
    """Locates a reference image inside a larger capture."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def locate(self, screen: ImageLike, reference: ImageLike, tolerance: float = 0.1) -> MatchResult:
        """Find the window of `screen` that differs least from `reference`.

        Args:
            screen: Full capture or crop to search in.
            reference: Image to look for; its size is the window size.
            tolerance: Perceptual threshold in [0, 1]; 0 means exact colour equality.

        Returns:
            MatchResult centred on the best window. `found` is False only when the
            reference does not fit inside the screen.
        """
        if not 0.0 <= tolerance <= 1.0:
            raise ValueError(f"tolerance must be within [0, 1], got {tolerance}")

        screen_yiq = rgb_to_yiq(to_rgb_array(screen))
        reference_yiq = rgb_to_yiq(to_rgb_array(reference))

        screen_h, screen_w = screen_yiq.shape[:2]
        ref_h, ref_w = reference_yiq.shape[:2]
        if ref_h == 0 or ref_w == 0:
            raise ValueError("Reference image is empty")
        if ref_h > screen_h or ref_w > screen_w:
            self._logger.debug(
                "Reference %dx%d does not fit in screen %dx%d", ref_w, ref_h, screen_w, screen_h
            )
            return MatchResult.not_found(ref_w, ref_h)

        max_delta = MAX_YIQ_DELTA * tolerance * tolerance
        # (3, h, w) so it broadcasts against window batches laid out as (n, 3, h, w)
        reference_planes = np.ascontiguousarray(reference_yiq.transpose(2, 0, 1))
        columns = screen_w - ref_w + 1
        chunk = max(1, _CHUNK_ELEMENTS // (3 * ref_h * ref_w))

        best_count: Optional[int] = None
        best_x = best_y = 0

        for y in range(screen_h - ref_h + 1):
            band = screen_yiq[y : y + ref_h]
            # (1, columns, 3, h, w)
            windows = sliding_window_view(band, (ref_h, ref_w), axis=(0, 1))[0]
            for start in range(0, columns, chunk):
                batch = windows[start : start + chunk] - reference_planes
                delta = np.einsum("nchw,c->nhw", batch * batch, _YIQ_WEIGHTS)
                counts = np.count_nonzero(delta > max_delta, axis=(1, 2))
                index = int(np.argmin(counts))
                count = int(counts[index])
                if best_count is None or count < best_count:
                    best_count = count
                    best_x, best_y = start + index, y
                    if count == 0:
                        break
            if best_count == 0:
                break

        assert best_count is not None  # noqa: S101 - at least one window always fits
        result = MatchResult(
            found=True,
            x=best_x + ref_w // 2,
            y=best_y + ref_h // 2,
            width=ref_w,
            height=ref_h,
            difference=best_count,
        )
        self._logger.debug(
            "Best match at offset (%d, %d) with %d differing pixels", best_x, best_y, best_count
        )
        return result

    def find_and_tap(
        self,
        device: "AdbDevice",
        screen: ImageLike,
        reference: ImageLike,
        *,
        tolerance: float = 0.1,
        max_difference: int = 0,
    ) -> MatchResult:
        """Locate `reference` and tap its centre when the match is accepted."""

        result = self.locate(screen, reference, tolerance)
        if result.accepts(max_difference):
            self._logger.info("Match found at (%d, %d); tapping", result.x, result.y)
            device.tap(result.x, result.y)
        else:
            self._logger.warning(
                "No acceptable match (difference=%d, allowed=%d)", result.difference, max_difference
            )
        return result


__all__ = ["MAX_YIQ_DELTA", "MatchResult", "ScreenMatcher", "rgb_to_yiq", "to_rgb_array"]
