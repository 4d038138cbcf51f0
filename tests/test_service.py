"""Tests for the title request intake."""
from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import pytest

from titlebot_agent.clock import ManualClock
from titlebot_agent.locator import LocateResult
from titlebot_agent.models import AccountType, AssignmentRequest, KingdomTier, Reporter
from titlebot_agent.scheduler import RequestScheduler, SubmissionStatus
from titlebot_agent.service import (
    DeviceUnavailableError,
    KingdomNotConfiguredError,
    LocationMissingError,
    TierMismatchError,
    TitleService,
)
from titlebot_agent.store import LocationBook
from titlebot_os.adb import AdbClient, AdbDevice, DeviceNotFoundError
from titlebot_os.config import ServiceConfig


class StaticAdb(AdbClient):
    def __init__(self, serial: Optional[str] = "emulator-5554") -> None:
        super().__init__()
        self.serial = serial

    def device(self, serial: Optional[str] = None) -> AdbDevice:
        if self.serial is None:
            raise DeviceNotFoundError("No ADB devices connected")
        return AdbDevice(None, self.serial)


class IdleSequencer:
    def __init__(self) -> None:
        self.runs: List[AssignmentRequest] = []

    def run(self, request: AssignmentRequest) -> None:
        self.runs.append(request)


class StubLocator:
    def locate(self, device: AdbDevice) -> LocateResult:
        return LocateResult(view="map", coordinates=f"found via {device.serial}")


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def sequencer() -> IdleSequencer:
    return IdleSequencer()


def _service(
    tmp_path: Path,
    clock: ManualClock,
    sequencer: IdleSequencer,
    *,
    adb: Optional[AdbClient] = None,
    config: Optional[ServiceConfig] = None,
) -> TitleService:
    scheduler = RequestScheduler(sequencer, clock)
    return TitleService(
        scheduler,
        LocationBook(tmp_path / "locations.json"),
        adb or StaticAdb(),
        config or ServiceConfig(home_kingdom="1234", lost_kingdom="5678"),
        locator=StubLocator(),
    )


def test_set_location_normalises_input(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer)

    location = service.set_location("42", "Rook", "MAIN", "HK", "100", 200)

    assert location.account_type is AccountType.MAIN
    assert location.tier is KingdomTier.HOME
    assert (location.x, location.y) == (100, 200)


@pytest.mark.parametrize(
    "account_type, tier, x",
    [("whale", "hk", 1), ("main", "kvk", 1), ("main", "hk", -5), ("main", "hk", "abc")],
)
def test_set_location_rejects_bad_values(tmp_path, clock, sequencer, account_type, tier, x) -> None:
    service = _service(tmp_path, clock, sequencer)
    with pytest.raises(ValueError):
        service.set_location("42", "Rook", account_type, tier, x, 10)


def test_request_builds_assignment_from_stored_location(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer)
    service.set_location("42", "Rook", "alt", "lk", 300, 400)

    request, status = service.request_title("42", "alt", "lk", "scientist")

    assert status is SubmissionStatus.ELIGIBLE
    assert (request.context_id, request.target_x, request.target_y) == ("5678", 300, 400)
    assert request.device.serial == "emulator-5554"
    assert request.requested_by == "Rook"
    clock.run_pending()
    assert sequencer.runs == [request]


def test_request_without_location(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer)
    with pytest.raises(LocationMissingError):
        service.request_title("42", "main", "hk", "duke")


def test_request_with_wrong_tier(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer)
    service.set_location("42", "Rook", "main", "hk", 1, 2)
    with pytest.raises(TierMismatchError):
        service.request_title("42", "main", "lk", "duke")


def test_request_without_configured_kingdom(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer, config=ServiceConfig(home_kingdom="1234"))
    service.set_location("42", "Rook", "main", "lk", 1, 2)
    with pytest.raises(KingdomNotConfiguredError):
        service.request_title("42", "main", "lk", "duke")


def test_request_without_device(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer, adb=StaticAdb(serial=None))
    service.set_location("42", "Rook", "main", "hk", 1, 2)
    with pytest.raises(DeviceUnavailableError):
        service.request_title("42", "main", "hk", "duke")


def test_unknown_title_is_left_to_the_scheduler(tmp_path, clock, sequencer) -> None:
    outcomes = []

    class Capture(Reporter):
        def completed(self, request, outcome) -> None:
            outcomes.append(outcome)

    service = _service(tmp_path, clock, sequencer)
    service.set_location("42", "Rook", "main", "hk", 1, 2)

    _, status = service.request_title("42", "main", "hk", "emperor", reporter=Capture())

    assert status is SubmissionStatus.REJECTED
    assert outcomes[0].failure == "InvalidResourceKey"


def test_locate_bot_and_status(tmp_path, clock, sequencer) -> None:
    service = _service(tmp_path, clock, sequencer)

    assert service.locate_bot().coordinates == "found via emulator-5554"
    assert service.status().dispatch_length == 0
