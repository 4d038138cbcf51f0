"""Timed device input sequence that applies one title to a governor's city."""
from __future__ import annotations

import logging
from typing import Dict, Optional, Tuple

from titlebot_os.adb import KEYCODE_DEL, AdbDevice, DeviceCommandFailed
from titlebot_os.config import TimingConfig
from titlebot_vision.markers import MarkerVerifier, VerificationSkipped

from .clock import Clock
from .models import AssignmentRequest, Title
from .store import StoreUnavailable, VisitedContext, VisitedContextStore

Logger = logging.Logger

Point = Tuple[int, int]

# Device pixels on the 1600x900 landscape layout
ELEMENT_POSITIONS: Dict[str, Point] = {
    "coordinates_search": (440, 23),
    "kingdom_input": (558, 177),
    "input_ok": (1517, 848),
    "x_input": (800, 182),
    "y_input": (998, 186),
    "overlay_search": (1110, 182),
    "governor_city_hall": (795, 470),
    "title_window": (860, 275),
    "confirm_title": (807, 801),
}

TITLE_POSITIONS: Dict[Title, Point] = {
    Title.JUSTICE: (368, 492),
    Title.DUKE: (654, 492),
    Title.ARCHITECT: (939, 491),
    Title.SCIENTIST: (1224, 492),
}


class ActionSequencer:
    """Issues the fixed tap/type/wait sequence for a single assignment.

    The sequencer does not check that the device reached any particular
    state. It only guarantees the commands go out in order with the
    configured delays between them. A marker check after opening the city
    is logged but never changes the flow.
    """

    def __init__(
        self,
        store: VisitedContextStore,
        clock: Clock,
        timing: Optional[TimingConfig] = None,
        verifier: Optional[MarkerVerifier] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._timing = timing or TimingConfig()
        self._verifier = verifier
        self._logger = logger or logging.getLogger(__name__)

    def run(self, request: AssignmentRequest) -> None:
        """Perform the assignment on `request.device`.

        Args:
            request: The request to carry out.

        Raises:
            InvalidResourceKey: If the title is unknown (raised before any input).
            DeviceCommandFailed: If any device command fails; remaining steps are skipped.
        """
        title = Title.parse(request.resource_key)
        title_position = TITLE_POSITIONS[title]
        device = request.device
        timing = self._timing

        self._logger.info(
            "[%s] Navigating to %s (%d, %d) for %s",
            request.request_id,
            request.context_id,
            request.target_x,
            request.target_y,
            title.value,
        )
        try:
            self._tap(device, "coordinates_search")

            self._fill_field(device, "kingdom_input", request.context_id, timing.context_clear_presses)
            self._fill_field(device, "x_input", str(request.target_x), timing.coordinate_clear_presses)
            self._fill_field(device, "y_input", str(request.target_y), timing.coordinate_clear_presses)

            self._tap(device, "overlay_search")
            self._settle_after_search(request.context_id)

            self._tap(device, "governor_city_hall")
            self._verify(device, request)

            self._tap(device, "title_window")
            self._tap_at(device, title_position, title.value)

            self._tap(device, "confirm_title")
        except DeviceCommandFailed as exc:
            self._logger.error("[%s] Device command failed: %s", request.request_id, exc)
            raise

        self._logger.info("[%s] Sequence for %s finished", request.request_id, title.value)

    def _tap(self, device: AdbDevice, element: str) -> None:
        self._tap_at(device, ELEMENT_POSITIONS[element], element)

    def _tap_at(self, device: AdbDevice, point: Point, label: str) -> None:
        x, y = point
        self._logger.debug("Tap %s at (%d, %d)", label, x, y)
        device.tap(x, y)
        self._clock.sleep(self._timing.ui_delay_s)

    def _fill_field(self, device: AdbDevice, element: str, value: str, clear_presses: int) -> None:
        """Focus an input, clear it, type `value` and confirm with OK."""
        timing = self._timing
        x, y = ELEMENT_POSITIONS[element]
        device.tap(x, y)
        self._clock.sleep(timing.focus_delay_s)

        for _ in range(clear_presses):
            device.key_event(KEYCODE_DEL)
            self._clock.sleep(timing.key_delay_s)
        self._clock.sleep(timing.field_settle_s)

        device.type_text(value)
        self._clock.sleep(timing.field_settle_s)

        self._tap(device, "input_ok")

    def _settle_after_search(self, context_id: str) -> float:
        """Wait for the map to settle; longer when the kingdom changes.

        Returns:
            The delay that was applied, in seconds.
        """
        try:
            previous = self._store.get()
        except StoreUnavailable as exc:
            self._logger.warning("Visited kingdom unavailable, assuming a switch: %s", exc)
            previous = None

        if previous is not None and previous.context_id == context_id:
            delay = self._timing.same_context_settle_s
            self._logger.info("Same kingdom %s, settling %.1fs", context_id, delay)
        else:
            delay = self._timing.context_switch_settle_s
            self._logger.info(
                "Switching kingdom %s -> %s, settling %.1fs",
                previous.context_id if previous else "?",
                context_id,
                delay,
            )
        self._clock.sleep(delay)

        try:
            self._store.set(VisitedContext(context_id=context_id, visited_at=self._clock.timestamp()))
        except StoreUnavailable as exc:
            self._logger.warning("Could not record visited kingdom: %s", exc)
        return delay

    def _verify(self, device: AdbDevice, request: AssignmentRequest) -> Optional[bool]:
        if self._verifier is None:
            return None
        try:
            present = self._verifier.is_present(device)
        except VerificationSkipped as exc:
            self._logger.warning("[%s] Marker check skipped: %s", request.request_id, exc)
            return None

        if present:
            self._logger.info("[%s] City marker found", request.request_id)
        else:
            self._logger.warning(
                "[%s] City marker not found at (%d, %d); continuing",
                request.request_id,
                request.target_x,
                request.target_y,
            )
        return present


__all__ = ["ActionSequencer", "ELEMENT_POSITIONS", "TITLE_POSITIONS"]
