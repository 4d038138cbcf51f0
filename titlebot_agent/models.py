"""Value types shared by the scheduler, sequencer, and intake service."""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:  # pragma: no cover - typing aid only
    from titlebot_os.adb import AdbDevice

Logger = logging.Logger


class InvalidResourceKey(ValueError):
    """Raised when a title key is not one of the known titles."""


class Title(str, Enum):
    """Kingdom titles that can be assigned, one at a time each."""

    DUKE = "duke"
    SCIENTIST = "scientist"
    ARCHITECT = "architect"
    JUSTICE = "justice"

    @classmethod
    def parse(cls, value: Any) -> "Title":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            valid = ", ".join(title.value for title in cls)
            raise InvalidResourceKey(f"Unknown title '{value}'. Valid titles: {valid}") from exc


class AccountType(str, Enum):
    MAIN = "main"
    ALT = "alt"
    FARM = "farm"


class KingdomTier(str, Enum):
    HOME = "hk"
    LOST = "lk"


@dataclass(slots=True, frozen=True)
class AssignmentOutcome:
    """Terminal result of one request."""

    ok: bool
    failure: Optional[str] = None  # error kind, e.g. "DeviceCommandFailed"
    message: Optional[str] = None

    @classmethod
    def success(cls) -> "AssignmentOutcome":
        return cls(ok=True)

    @classmethod
    def from_error(cls, exc: BaseException) -> "AssignmentOutcome":
        return cls(ok=False, failure=type(exc).__name__, message=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "failure": self.failure, "message": self.message}


class Reporter:
    """Completion handle: receives progress for a single request.

    Subclasses override the hooks they care about. `completed` is delivered
    exactly once per submitted request, including rejected ones.
    """

    def queued(self, request: "AssignmentRequest", position: int) -> None:
        """The title is on cooldown; the request waits at `position` (1-based)."""

    def started(self, request: "AssignmentRequest") -> None:
        """The device began working on the request."""

    def completed(self, request: "AssignmentRequest", outcome: AssignmentOutcome) -> None:
        """The request finished, successfully or not."""


class LoggingReporter(Reporter):
    """Reporter that only writes progress to the log."""

    def __init__(self, logger: Optional[Logger] = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def queued(self, request: "AssignmentRequest", position: int) -> None:
        self._logger.info("[%s] %s in use; queued at position %d", request.request_id, request.resource_key, position)

    def started(self, request: "AssignmentRequest") -> None:
        self._logger.info("[%s] Assigning %s", request.request_id, request.resource_key)

    def completed(self, request: "AssignmentRequest", outcome: AssignmentOutcome) -> None:
        if outcome.ok:
            self._logger.info("[%s] %s assigned", request.request_id, request.resource_key)
        else:
            self._logger.warning(
                "[%s] %s failed: %s (%s)", request.request_id, request.resource_key, outcome.failure, outcome.message
            )


def _new_request_id() -> str:
    return secrets.token_hex(4)


@dataclass(slots=True, frozen=True, eq=False)
class AssignmentRequest:
    """One request to put a title on a governor's city.

    Queues track requests by identity, so two requests with identical fields
    are still distinct entries.
    """

    resource_key: str
    context_id: str
    target_x: int
    target_y: int
    device: "AdbDevice"
    reporter: Reporter = field(default_factory=Reporter)
    request_id: str = field(default_factory=_new_request_id)
    requested_by: Optional[str] = None

    def describe(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "title": self.resource_key,
            "kingdom": self.context_id,
            "x": self.target_x,
            "y": self.target_y,
            "device": getattr(self.device, "serial", None),
            "requested_by": self.requested_by,
        }


@dataclass(slots=True)
class Location:
    """A user's stored city position for one account type."""

    user_id: str
    user_name: str
    account_type: AccountType
    tier: KingdomTier
    x: int
    y: int
    updated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "user_name": self.user_name,
            "account_type": self.account_type.value,
            "tier": self.tier.value,
            "x": self.x,
            "y": self.y,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Location":
        updated_at = data.get("updated_at")
        return cls(
            user_id=str(data["user_id"]),
            user_name=str(data.get("user_name", "")),
            account_type=AccountType(data["account_type"]),
            tier=KingdomTier(data["tier"]),
            x=int(data["x"]),
            y=int(data["y"]),
            updated_at=datetime.fromisoformat(updated_at) if updated_at else None,
        )


__all__ = [
    "AccountType",
    "AssignmentOutcome",
    "AssignmentRequest",
    "InvalidResourceKey",
    "KingdomTier",
    "Location",
    "LoggingReporter",
    "Reporter",
    "Title",
]
