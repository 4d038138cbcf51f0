"""Device layer for the title bot.

This package wraps the `adb` binary for device input (taps, text entry, key
events) and screencaps, and loads the YAML configuration shared by the other
packages. Positions are device pixels of the 1600x900 emulator layout.
"""

from .adb import AdbClient, AdbDevice, DeviceCommandFailed, DeviceNotFoundError
from .capture import CaptureError, CaptureManager, Region
from .config import CaptureConfig, DeviceConfig, ServiceConfig, TimingConfig, load_configs

__all__ = [
    "AdbClient",
    "AdbDevice",
    "CaptureConfig",
    "CaptureError",
    "CaptureManager",
    "DeviceCommandFailed",
    "DeviceConfig",
    "DeviceNotFoundError",
    "Region",
    "ServiceConfig",
    "TimingConfig",
    "load_configs",
]
