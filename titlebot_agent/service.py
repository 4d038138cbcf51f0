"""Intake used by the command layer: locations in, title requests out."""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from titlebot_os.adb import AdbClient, AdbDevice, DeviceCommandFailed, DeviceNotFoundError
from titlebot_os.config import ServiceConfig

from .locator import BotLocator, LocateResult
from .models import AccountType, AssignmentRequest, KingdomTier, Location, Reporter
from .scheduler import RequestScheduler, SchedulerStatus, SubmissionStatus
from .store import LocationBook

Logger = logging.Logger


class TitleRequestError(RuntimeError):
    """Base class for requests that cannot be turned into an assignment."""


class LocationMissingError(TitleRequestError):
    pass


class TierMismatchError(TitleRequestError):
    pass


class KingdomNotConfiguredError(TitleRequestError):
    pass


class DeviceUnavailableError(TitleRequestError):
    pass


class TitleService:
    """Builds assignment requests from stored user locations."""

    def __init__(
        self,
        scheduler: RequestScheduler,
        locations: LocationBook,
        adb: AdbClient,
        config: Optional[ServiceConfig] = None,
        locator: Optional[BotLocator] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._scheduler = scheduler
        self._locations = locations
        self._adb = adb
        self._config = config or ServiceConfig()
        self._locator = locator
        self._logger = logger or logging.getLogger(__name__)

    def set_location(
        self,
        user_id: str,
        user_name: str,
        account_type: str,
        tier: str,
        x: int,
        y: int,
    ) -> Location:
        """Store a user's city position for one account type.

        Raises:
            ValueError: If the account type, tier or coordinates are invalid.
        """
        location = Location(
            user_id=str(user_id),
            user_name=str(user_name or ""),
            account_type=AccountType(str(account_type).lower()),
            tier=KingdomTier(str(tier).lower()),
            x=int(x),
            y=int(y),
        )
        if location.x < 0 or location.y < 0:
            raise ValueError("Coordinates must be non-negative")
        return self._locations.save(location)

    def request_title(
        self,
        user_id: str,
        account_type: str,
        tier: str,
        title: str,
        reporter: Optional[Reporter] = None,
    ) -> Tuple[AssignmentRequest, SubmissionStatus]:
        """Resolve the user's location and submit a title request.

        The title string is passed through untouched; the scheduler validates it.

        Raises:
            ValueError: If the account type or tier is not recognised.
            LocationMissingError: If no location is stored for the account type.
            TierMismatchError: If the stored location is in the other kingdom.
            KingdomNotConfiguredError: If no kingdom id is set for the tier.
            DeviceUnavailableError: If no device is connected.
        """
        account = AccountType(str(account_type).lower())
        wanted_tier = KingdomTier(str(tier).lower())

        location = self._locations.find(str(user_id), account)
        if location is None:
            raise LocationMissingError(f"No {account.value} location stored; set one first")
        if location.tier is not wanted_tier:
            raise TierMismatchError(
                f"Stored {account.value} location is in {location.tier.value.upper()}, "
                f"not {wanted_tier.value.upper()}"
            )

        kingdom = self._config.kingdom_for_tier(wanted_tier.value)
        if not kingdom:
            raise KingdomNotConfiguredError(f"No kingdom id configured for {wanted_tier.value.upper()}")

        request = AssignmentRequest(
            resource_key=title,
            context_id=kingdom,
            target_x=location.x,
            target_y=location.y,
            device=self._device(),
            reporter=reporter or Reporter(),
            requested_by=location.user_name or location.user_id,
        )
        status = self._scheduler.submit(request)
        self._logger.info("[%s] %s requested %s: %s", request.request_id, request.requested_by, title, status.value)
        return request, status

    def locate_bot(self) -> LocateResult:
        """Jump the bot home and report its coordinates.

        Raises:
            RuntimeError: If no locator is configured.
            DeviceUnavailableError: If no device is connected.
        """
        if self._locator is None:
            raise RuntimeError("Bot locator is not configured")
        return self._locator.locate(self._device())

    def status(self) -> SchedulerStatus:
        return self._scheduler.snapshot()

    def _device(self) -> AdbDevice:
        try:
            return self._adb.device()
        except (DeviceNotFoundError, DeviceCommandFailed) as exc:
            raise DeviceUnavailableError(str(exc)) from exc


__all__ = [
    "DeviceUnavailableError",
    "KingdomNotConfiguredError",
    "LocationMissingError",
    "TierMismatchError",
    "TitleRequestError",
    "TitleService",
]
