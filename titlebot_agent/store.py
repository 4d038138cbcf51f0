"""File-backed persistence for the last visited kingdom and user locations."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from .models import AccountType, Location

Logger = logging.Logger


class StoreUnavailable(RuntimeError):
    """Raised when a store file cannot be read or written."""


@dataclass(slots=True, frozen=True)
class VisitedContext:
    """The kingdom the bot most recently navigated to."""

    context_id: str
    visited_at: datetime


def _write_json_atomic(path: Path, payload: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path) -> Optional[Any]:
    if not path.exists():
        return None
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


class VisitedContextStore:
    """Single-record store; the last writer wins."""

    def __init__(self, path: Path, logger: Optional[Logger] = None) -> None:
        self._path = path
        self._logger = logger or logging.getLogger(__name__)
        self._guard = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def get(self) -> Optional[VisitedContext]:
        """Return the stored record, or None when nothing was recorded yet.

        Raises:
            StoreUnavailable: If the file exists but cannot be read or parsed.
        """
        with self._guard:
            try:
                data = _read_json(self._path)
                if data is None:
                    return None
                visited_at = datetime.fromisoformat(data["visited_at"])
                return VisitedContext(context_id=str(data["context_id"]), visited_at=visited_at)
            except (OSError, ValueError, KeyError, TypeError) as exc:
                raise StoreUnavailable(f"Cannot read visited context from {self._path}: {exc}") from exc

    def set(self, record: VisitedContext) -> None:
        """Persist `record`, replacing any previous one.

        Raises:
            StoreUnavailable: If the file cannot be written.
        """
        payload = {"context_id": record.context_id, "visited_at": record.visited_at.isoformat()}
        with self._guard:
            try:
                _write_json_atomic(self._path, payload)
            except OSError as exc:
                raise StoreUnavailable(f"Cannot write visited context to {self._path}: {exc}") from exc
        self._logger.debug("Recorded visit to %s", record.context_id)


class LocationBook:
    """Stores one location per user and account type."""

    def __init__(self, path: Path, logger: Optional[Logger] = None) -> None:
        self._path = path
        self._logger = logger or logging.getLogger(__name__)
        self._guard = threading.Lock()

    def find(self, user_id: str, account_type: AccountType) -> Optional[Location]:
        with self._guard:
            records = self._load()
        data = records.get(self._key(user_id, account_type))
        return Location.from_dict(data) if data else None

    def save(self, location: Location) -> Location:
        """Insert or replace the record for the location's user and account type."""
        if location.updated_at is None:
            location.updated_at = datetime.now(timezone.utc)
        with self._guard:
            records = self._load()
            records[self._key(location.user_id, location.account_type)] = location.to_dict()
            try:
                _write_json_atomic(self._path, records)
            except OSError as exc:
                raise StoreUnavailable(f"Cannot write locations to {self._path}: {exc}") from exc
        self._logger.info(
            "Saved %s location for %s: %s (%d, %d)",
            location.account_type.value,
            location.user_name or location.user_id,
            location.tier.value.upper(),
            location.x,
            location.y,
        )
        return location

    def list_for_user(self, user_id: str) -> List[Location]:
        with self._guard:
            records = self._load()
        return [Location.from_dict(data) for data in records.values() if data.get("user_id") == user_id]

    def _load(self) -> Dict[str, Dict[str, Any]]:
        try:
            data = _read_json(self._path)
        except (OSError, ValueError) as exc:
            raise StoreUnavailable(f"Cannot read locations from {self._path}: {exc}") from exc
        return data if isinstance(data, dict) else {}

    @staticmethod
    def _key(user_id: str, account_type: AccountType) -> str:
        return f"{user_id}:{account_type.value}"


__all__ = ["LocationBook", "StoreUnavailable", "VisitedContext", "VisitedContextStore"]
