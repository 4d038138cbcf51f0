"""ADB device control for the Rise of Kingdoms emulator.

All device interaction goes through the `adb` binary. Commands are issued one
at a time and complete synchronously; callers insert their own settle delays
between commands. Every command that touches a given serial shares a
re-entrant lock so a multi-step sequence can claim the device for its whole
duration (see `AdbDevice.exclusive`).
"""
from __future__ import annotations

import logging
import shlex
import subprocess
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .config import DeviceConfig

Logger = logging.Logger

KEYCODE_DEL = 67


class DeviceCommandFailed(RuntimeError):
    """Raised when an ADB command exits non-zero, times out, or cannot be spawned."""

    def __init__(self, message: str, *, command: Optional[str] = None) -> None:
        super().__init__(message)
        self.command = command


class DeviceNotFoundError(RuntimeError):
    """Raised when no ADB device is connected or the configured serial is absent."""


class AdbClient:
    """Thin wrapper around the `adb` executable."""

    def __init__(self, config: Optional[DeviceConfig] = None, logger: Optional[Logger] = None) -> None:
        self._config = config or DeviceConfig()
        self._logger = logger or logging.getLogger(__name__)
        self._device_locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    def list_devices(self) -> List[str]:
        """Return serials of devices in the `device` state."""
        output = self._run([self._config.adb_path, "devices"], label="devices").decode("utf-8", "replace")
        serials: List[str] = []
        for line in output.splitlines()[1:]:
            parts = line.split()
            if len(parts) >= 2 and parts[1] == "device":
                serials.append(parts[0])
        return serials

    def device(self, serial: Optional[str] = None) -> "AdbDevice":
        """Return a handle for a connected device.

        Args:
            serial: Explicit serial. Falls back to the configured serial, then to
                the first connected device.

        Raises:
            DeviceNotFoundError: If no matching device is connected.
            DeviceCommandFailed: If `adb devices` itself fails.
        """
        wanted = serial or self._config.serial
        connected = self.list_devices()
        if not connected:
            raise DeviceNotFoundError("No ADB devices connected")

        if wanted is None:
            wanted = connected[0]
        elif wanted not in connected:
            raise DeviceNotFoundError(
                f"Device '{wanted}' not connected. Available: {', '.join(connected)}"
            )

        return AdbDevice(self, wanted, lock=self._lock_for(wanted))

    def shell(self, serial: str, command: str) -> str:
        """Run one shell command on the device and return its stdout."""
        self._logger.debug("adb -s %s shell %s", serial, command)
        output = self._run(
            [self._config.adb_path, "-s", serial, "shell", command],
            label=command,
        )
        return output.decode("utf-8", "replace")

    def exec_out(self, serial: str, *args: str) -> bytes:
        """Run `adb exec-out` and return raw stdout bytes (used for screencaps)."""
        return self._run(
            [self._config.adb_path, "-s", serial, "exec-out", *args],
            label=" ".join(args),
        )

    def _lock_for(self, serial: str) -> threading.RLock:
        with self._locks_guard:
            lock = self._device_locks.get(serial)
            if lock is None:
                lock = threading.RLock()
                self._device_locks[serial] = lock
            return lock

    def _run(self, argv: List[str], *, label: str) -> bytes:
        try:
            completed = subprocess.run(
                argv,
                capture_output=True,
                timeout=self._config.command_timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise DeviceCommandFailed(
                f"ADB command timed out after {self._config.command_timeout_s:.1f}s: {label}",
                command=label,
            ) from exc
        except OSError as exc:
            raise DeviceCommandFailed(f"Unable to run adb ({exc}): {label}", command=label) from exc

        if completed.returncode != 0:
            stderr = (completed.stderr or b"").decode("utf-8", "replace").strip()
            raise DeviceCommandFailed(
                f"ADB command failed with exit code {completed.returncode}: {label}"
                + (f" ({stderr})" if stderr else ""),
                command=label,
            )
        return completed.stdout or b""


class AdbDevice:
    """Handle used to issue input commands to one device."""

    def __init__(
        self,
        client: Optional[AdbClient],
        serial: str,
        *,
        lock: Optional[threading.RLock] = None,
    ) -> None:
        self._client = client
        self.serial = serial
        self._lock = lock or threading.RLock()

    @contextmanager
    def exclusive(self) -> Iterator["AdbDevice"]:
        """Hold the device for a multi-command sequence."""
        with self._lock:
            yield self

    def shell(self, command: str) -> str:
        if self._client is None:
            raise DeviceCommandFailed("Device handle is not bound to an ADB client", command=command)
        with self._lock:
            return self._client.shell(self.serial, command)

    def tap(self, x: int, y: int) -> None:
        self.shell(f"input tap {int(x)} {int(y)}")

    def type_text(self, text: str) -> None:
        # `input text` treats %s as a space
        escaped = str(text).replace(" ", "%s")
        self.shell(f"input text {shlex.quote(escaped)}")

    def key_event(self, keycode: int) -> None:
        self.shell(f"input keyevent {int(keycode)}")

    def screencap(self) -> bytes:
        """Return the current screen as PNG bytes."""
        if self._client is None:
            raise DeviceCommandFailed("Device handle is not bound to an ADB client", command="screencap")
        with self._lock:
            return self._client.exec_out(self.serial, "screencap", "-p")

    def __repr__(self) -> str:
        return f"AdbDevice(serial={self.serial!r})"


__all__ = [
    "AdbClient",
    "AdbDevice",
    "DeviceCommandFailed",
    "DeviceNotFoundError",
    "KEYCODE_DEL",
]
