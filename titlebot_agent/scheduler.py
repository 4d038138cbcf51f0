"""Request scheduling: per-title FIFO queues, a global dispatch queue, and cooldown locks.

A title is locked the moment its request starts on the device and stays
locked for a fixed cooldown, whatever the outcome of the run. Requests for a
locked title wait in that title's pending queue. When the lock clears, the
head of the pending queue moves to the dispatch queue, which a single drain
worker consumes in order with a short pause between runs.
"""
from __future__ import annotations

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Callable, Deque, Dict, List, Optional, Tuple

from titlebot_os.adb import DeviceCommandFailed

from .clock import Clock, TimerHandle
from .models import AssignmentOutcome, AssignmentRequest, InvalidResourceKey, Title
from .sequencer import ActionSequencer

Logger = logging.Logger

COOLDOWN_S = 90.0
INTER_REQUEST_PAUSE_S = 0.5


class SchedulerClosed(RuntimeError):
    """Raised (and reported) for requests that can no longer run."""


class SubmissionStatus(str, Enum):
    ELIGIBLE = "eligible"  # headed for the device
    QUEUED = "queued"  # title on cooldown, waiting
    REJECTED = "rejected"  # terminal failure already reported


@dataclass(slots=True)
class SchedulerStatus:
    """Point-in-time view of the scheduler for status endpoints."""

    locks: Dict[str, float] = field(default_factory=dict)  # title -> seconds remaining
    pending: Dict[str, int] = field(default_factory=dict)
    dispatch_length: int = 0
    active_request: Optional[str] = None
    draining: bool = False
    closed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "locks": {title: round(remaining, 3) for title, remaining in self.locks.items()},
            "pending": dict(self.pending),
            "dispatch_length": self.dispatch_length,
            "active_request": self.active_request,
            "draining": self.draining,
            "closed": self.closed,
        }


def _contains(queue: Deque[AssignmentRequest], request: AssignmentRequest) -> bool:
    return any(entry is request for entry in queue)


def _position(queue: Deque[AssignmentRequest], request: AssignmentRequest) -> int:
    for index, entry in enumerate(queue):
        if entry is request:
            return index + 1
    return len(queue)


def _discard(queue: Deque[AssignmentRequest], request: AssignmentRequest) -> None:
    for index, entry in enumerate(queue):
        if entry is request:
            del queue[index]
            return


class RequestScheduler:
    """Serializes title assignments on the device.

    Args:
        sequencer: Runs one assignment synchronously.
        clock: Source of time and deferred callbacks.
        logs_dir: Where to write one JSON run log per request (optional).
        logger: Optional logger instance.
    """

    def __init__(
        self,
        sequencer: ActionSequencer,
        clock: Clock,
        logs_dir: Optional[Path] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self._sequencer = sequencer
        self._clock = clock
        self._logs_dir = logs_dir
        self._logger = logger or logging.getLogger(__name__)

        self._mutex = threading.Lock()
        self._pending: Dict[Title, Deque[AssignmentRequest]] = {title: deque() for title in Title}
        self._dispatch: Deque[AssignmentRequest] = deque()
        self._locks: Dict[Title, float] = {}
        self._unlock_timers: Dict[Title, TimerHandle] = {}
        self._drain_handle: Optional[TimerHandle] = None
        self._draining = False
        self._active: Optional[AssignmentRequest] = None
        self._closed = False

        if self._logs_dir is not None:
            self._logs_dir.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------
    def submit(self, request: AssignmentRequest) -> SubmissionStatus:
        """Accept a request for scheduling.

        Unknown titles and submissions after `close()` are rejected: the
        reporter gets its terminal `completed` before this returns.

        Returns:
            ELIGIBLE if the request went to the dispatch queue, QUEUED if its
            title is cooling down, REJECTED otherwise.
        """
        try:
            title = Title.parse(request.resource_key)
        except InvalidResourceKey as exc:
            self._logger.warning("[%s] Rejected: %s", request.request_id, exc)
            self._report(request.reporter.completed, request, AssignmentOutcome.from_error(exc))
            return SubmissionStatus.REJECTED

        with self._mutex:
            if self._closed:
                closed = True
            else:
                closed = False
                self._expire_locks_locked()
                pending = self._pending[title]
                pending.append(request)
                if title in self._locks:
                    position = len(pending)
                    status = SubmissionStatus.QUEUED
                else:
                    self._dispatch.append(request)
                    self._arm_locked()
                    status = SubmissionStatus.ELIGIBLE

        if closed:
            exc = SchedulerClosed("Scheduler is shut down")
            self._logger.warning("[%s] Rejected: %s", request.request_id, exc)
            self._report(request.reporter.completed, request, AssignmentOutcome.from_error(exc))
            return SubmissionStatus.REJECTED

        if status is SubmissionStatus.QUEUED:
            self._logger.info(
                "[%s] %s is cooling down; queued at position %d", request.request_id, title.value, position
            )
            self._report(request.reporter.queued, request, position)
        else:
            self._logger.info("[%s] %s eligible for dispatch", request.request_id, title.value)
        return status

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def is_locked(self, resource_key: str) -> bool:
        title = Title.parse(resource_key)
        with self._mutex:
            self._expire_locks_locked()
            return title in self._locks

    def snapshot(self) -> SchedulerStatus:
        with self._mutex:
            self._expire_locks_locked()
            now = self._clock.now()
            return SchedulerStatus(
                locks={title.value: max(0.0, expiry - now) for title, expiry in self._locks.items()},
                pending={title.value: len(queue) for title, queue in self._pending.items()},
                dispatch_length=len(self._dispatch),
                active_request=self._active.request_id if self._active else None,
                draining=self._draining,
                closed=self._closed,
            )

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------
    def close(self) -> None:
        """Cancel timers and fail every request that has not started.

        A run already on the device is allowed to finish.
        """
        with self._mutex:
            if self._closed:
                return
            self._closed = True
            for handle in self._unlock_timers.values():
                handle.cancel()
            self._unlock_timers.clear()
            if self._drain_handle is not None:
                self._drain_handle.cancel()
                self._drain_handle = None
            self._draining = False

            stranded: List[AssignmentRequest] = []
            for queue in self._pending.values():
                stranded.extend(queue)
                queue.clear()
            self._dispatch.clear()

        self._logger.info("Scheduler closed; failing %d waiting request(s)", len(stranded))
        for request in stranded:
            outcome = AssignmentOutcome.from_error(SchedulerClosed("Scheduler shut down before the request ran"))
            self._report(request.reporter.completed, request, outcome)

    # ------------------------------------------------------------------
    # Drain worker
    # ------------------------------------------------------------------
    def _arm_locked(self) -> None:
        if self._draining or self._closed:
            return
        self._draining = True
        self._drain_handle = self._clock.call_later(0.0, self._drain_step)

    def _drain_step(self) -> None:
        deferred: List[Tuple[AssignmentRequest, int]] = []
        with self._mutex:
            self._drain_handle = None
            if self._closed:
                self._draining = False
                return
            self._expire_locks_locked()
            picked = self._pick_locked(deferred)
            if picked is None:
                self._draining = False
                self._logger.debug("Dispatch queue empty; worker idle")
            else:
                self._active = picked[0]

        for waiting, position in deferred:
            self._report(waiting.reporter.queued, waiting, position)
        if picked is None:
            return
        request, title = picked

        try:
            self._execute(request, title)
        finally:
            with self._mutex:
                self._active = None
                if self._closed:
                    self._draining = False
                else:
                    self._drain_handle = self._clock.call_later(INTER_REQUEST_PAUSE_S, self._drain_step)

    def _pick_locked(
        self, deferred: List[Tuple[AssignmentRequest, int]]
    ) -> Optional[Tuple[AssignmentRequest, Title]]:
        """Pop the first dispatchable request and lock its title.

        Requests whose title is locked by now are left in their pending queue
        and appended to `deferred` with their position there.
        """
        while self._dispatch:
            request = self._dispatch.popleft()
            title = Title.parse(request.resource_key)
            if title in self._locks:
                position = _position(self._pending[title], request)
                self._logger.info(
                    "[%s] %s locked at dispatch time; waiting at position %d",
                    request.request_id,
                    title.value,
                    position,
                )
                deferred.append((request, position))
                continue

            expiry = self._clock.now() + COOLDOWN_S
            self._locks[title] = expiry
            self._unlock_timers[title] = self._clock.call_later(
                COOLDOWN_S, partial(self._on_unlock, title, expiry)
            )
            _discard(self._pending[title], request)
            self._logger.info("Locked %s for %.0fs (request %s)", title.value, COOLDOWN_S, request.request_id)
            return request, title
        return None

    def _execute(self, request: AssignmentRequest, title: Title) -> None:
        started_at = self._clock.timestamp()
        self._report(request.reporter.started, request)

        try:
            with request.device.exclusive():
                self._sequencer.run(request)
        except DeviceCommandFailed as exc:
            self._logger.error("[%s] %s failed on device: %s", request.request_id, title.value, exc)
            outcome = AssignmentOutcome.from_error(exc)
        except Exception as exc:
            self._logger.exception("[%s] %s failed unexpectedly", request.request_id, title.value)
            outcome = AssignmentOutcome.from_error(exc)
        else:
            outcome = AssignmentOutcome.success()

        self._save_run_log(request, started_at.isoformat(), outcome)
        self._report(request.reporter.completed, request, outcome)

    # ------------------------------------------------------------------
    # Lock lifecycle
    # ------------------------------------------------------------------
    def _on_unlock(self, title: Title, expiry: float) -> None:
        with self._mutex:
            if self._closed:
                return
            # Only the timer armed for the current lock may release it.
            if self._locks.get(title) != expiry:
                self._logger.debug("Ignoring stale unlock for %s", title.value)
                return
            self._unlock_timers.pop(title, None)
            self._release_locked(title)

    def _expire_locks_locked(self) -> None:
        now = self._clock.now()
        for title, expiry in list(self._locks.items()):
            if now >= expiry:
                handle = self._unlock_timers.pop(title, None)
                if handle is not None:
                    handle.cancel()
                self._release_locked(title)

    def _release_locked(self, title: Title) -> None:
        del self._locks[title]
        pending = self._pending[title]
        self._logger.info("Released %s (%d waiting)", title.value, len(pending))
        if not pending:
            return
        head = pending[0]
        if not _contains(self._dispatch, head):
            self._dispatch.append(head)
            self._logger.info("[%s] Promoted to dispatch queue", head.request_id)
        self._arm_locked()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _report(self, hook: Callable[..., None], request: AssignmentRequest, *args: Any) -> None:
        try:
            hook(request, *args)
        except Exception:
            self._logger.exception("[%s] Reporter %s raised", request.request_id, getattr(hook, "__name__", hook))

    def _save_run_log(self, request: AssignmentRequest, started_at: str, outcome: AssignmentOutcome) -> None:
        """Save one run to `<logs_dir>/<request_id>.json`."""
        if self._logs_dir is None:
            return
        log_data = {
            "request": request.describe(),
            "started_at": started_at,
            "finished_at": self._clock.timestamp().isoformat(),
            "outcome": outcome.to_dict(),
        }
        log_path = self._logs_dir / f"{request.request_id}.json"
        try:
            with log_path.open("w", encoding="utf-8") as f:
                json.dump(log_data, f, indent=2)
        except OSError as exc:
            self._logger.error("Failed to save run log: %s", exc)


__all__ = [
    "COOLDOWN_S",
    "INTER_REQUEST_PAUSE_S",
    "RequestScheduler",
    "SchedulerClosed",
    "SchedulerStatus",
    "SubmissionStatus",
]
