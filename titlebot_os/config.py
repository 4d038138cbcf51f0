"""Configuration structures shared by the bot packages.

Values originate from `config.yaml` (preferred) or environment overrides. All
screen positions are expressed in device pixels of the emulator's 1600x900
landscape layout; the device itself is driven through ADB so no DPI conversion
is involved.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml


@dataclass(slots=True)
class DeviceConfig:
    """How to reach the Android device over ADB."""

    adb_path: str = "adb"
    serial: Optional[str] = None  # If None, the first connected device is used
    command_timeout_s: float = 15.0


@dataclass(slots=True)
class CaptureValidationConfig:
    """Validation thresholds to guard against blank screencaps."""

    min_mean_luminance: float = 5.0
    min_luminance_stddev: float = 1.5


@dataclass(slots=True)
class RetentionConfig:
    """Capture file retention policy."""

    max_captures: int = 200


@dataclass(slots=True)
class VerificationConfig:
    """Advisory marker check performed after opening the governor's city."""

    enabled: bool = True
    reference: str = "rok_goldenCrown.png"
    region: Tuple[int, int, int, int] = (158, 159, 42, 30)  # left, top, width, height
    tolerance: float = 0.1
    max_difference: int = 0


@dataclass(slots=True)
class CaptureConfig:
    """Top-level capture configuration blob."""

    output_dir: Path = Path("captures")
    references_dir: Path = Path("images/reference")
    save_captures: bool = True
    validation: CaptureValidationConfig = field(default_factory=CaptureValidationConfig)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)


@dataclass(slots=True)
class TimingConfig:
    """Settle delays used by the action sequencer, in seconds."""

    ui_delay_s: float = 0.75
    focus_delay_s: float = 0.2
    key_delay_s: float = 0.05
    field_settle_s: float = 1.0
    same_context_settle_s: float = 2.0
    context_switch_settle_s: float = 5.0
    context_clear_presses: int = 10
    coordinate_clear_presses: int = 5


@dataclass(slots=True)
class ServiceConfig:
    """Storage, kingdom and web surface settings."""

    data_dir: Path = Path("data")
    logs_dir: Path = Path("logs")
    home_kingdom: str = ""
    lost_kingdom: str = ""
    host: str = "0.0.0.0"
    port: int = 5000
    admin_token: Optional[str] = None

    def kingdom_for_tier(self, tier: str) -> str:
        """Return the kingdom id configured for a tier ("hk" or "lk")."""
        return self.home_kingdom if tier == "hk" else self.lost_kingdom


def load_configs(
    path: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Tuple[DeviceConfig, CaptureConfig, TimingConfig, ServiceConfig]:
    """Load device, capture, timing, and service configuration from YAML, falling back to defaults."""

    cfg_path = path or Path("config.yaml")
    device_cfg = DeviceConfig()
    capture_cfg = CaptureConfig()
    timing_cfg = TimingConfig()
    service_cfg = ServiceConfig()

    if cfg_path.exists():
        with cfg_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        _apply_device_config(device_cfg, raw.get("device", {}))
        _apply_capture_config(capture_cfg, raw.get("capture", {}))
        _apply_timing_config(timing_cfg, raw.get("timing", {}))
        _apply_service_config(service_cfg, raw.get("service", {}))

    _apply_environment(device_cfg, service_cfg, os.environ if environ is None else environ)

    return device_cfg, capture_cfg, timing_cfg, service_cfg


def _apply_device_config(config: DeviceConfig, data: Dict) -> None:
    if not data:
        return

    if data.get("adb_path"):
        config.adb_path = str(data["adb_path"])

    serial = data.get("serial")
    if serial:
        config.serial = str(serial)

    if "command_timeout_s" in data:
        config.command_timeout_s = float(data["command_timeout_s"])


def _apply_capture_config(config: CaptureConfig, data: Dict) -> None:
    if not data:
        return

    output_dir = data.get("output_dir")
    if output_dir:
        config.output_dir = Path(str(output_dir))

    references_dir = data.get("references_dir")
    if references_dir:
        config.references_dir = Path(str(references_dir))

    if "save_captures" in data:
        config.save_captures = bool(data["save_captures"])

    validation_data = data.get("validation") or {}
    if validation_data:
        if "min_mean_luminance" in validation_data:
            config.validation.min_mean_luminance = float(validation_data["min_mean_luminance"])
        if "min_luminance_stddev" in validation_data:
            config.validation.min_luminance_stddev = float(validation_data["min_luminance_stddev"])

    retention_data = data.get("retention") or {}
    if retention_data and "max_captures" in retention_data:
        config.retention.max_captures = int(retention_data["max_captures"])

    verification_data = data.get("verification") or {}
    if verification_data:
        verification = config.verification
        if "enabled" in verification_data:
            verification.enabled = bool(verification_data["enabled"])
        if verification_data.get("reference"):
            verification.reference = str(verification_data["reference"])
        region = verification_data.get("region")
        if isinstance(region, (list, tuple)) and len(region) == 4:
            verification.region = (int(region[0]), int(region[1]), int(region[2]), int(region[3]))
        if "tolerance" in verification_data:
            verification.tolerance = float(verification_data["tolerance"])
        if "max_difference" in verification_data:
            verification.max_difference = int(verification_data["max_difference"])


def _apply_timing_config(config: TimingConfig, data: Dict) -> None:
    if not data:
        return

    for name in (
        "ui_delay_s",
        "focus_delay_s",
        "key_delay_s",
        "field_settle_s",
        "same_context_settle_s",
        "context_switch_settle_s",
    ):
        if name in data:
            setattr(config, name, float(data[name]))

    for name in ("context_clear_presses", "coordinate_clear_presses"):
        if name in data:
            setattr(config, name, int(data[name]))


def _apply_service_config(config: ServiceConfig, data: Dict) -> None:
    if not data:
        return

    if data.get("data_dir"):
        config.data_dir = Path(str(data["data_dir"]))

    if data.get("logs_dir"):
        config.logs_dir = Path(str(data["logs_dir"]))

    kingdoms = data.get("kingdoms") or {}
    if kingdoms.get("hk") is not None:
        config.home_kingdom = str(kingdoms["hk"])
    if kingdoms.get("lk") is not None:
        config.lost_kingdom = str(kingdoms["lk"])

    if data.get("host"):
        config.host = str(data["host"])

    if "port" in data:
        config.port = int(data["port"])

    if data.get("admin_token"):
        config.admin_token = str(data["admin_token"])


def _apply_environment(device: DeviceConfig, service: ServiceConfig, environ: Mapping[str, str]) -> None:
    # Environment overrides YAML
    if environ.get("HOME_KD"):
        service.home_kingdom = environ["HOME_KD"]
    if environ.get("LOST_KD"):
        service.lost_kingdom = environ["LOST_KD"]
    if environ.get("TITLEBOT_ADMIN_TOKEN"):
        service.admin_token = environ["TITLEBOT_ADMIN_TOKEN"]
    if environ.get("ADB_SERIAL"):
        device.serial = environ["ADB_SERIAL"]
    if environ.get("ADB_PATH"):
        device.adb_path = environ["ADB_PATH"]


__all__ = [
    "CaptureConfig",
    "CaptureValidationConfig",
    "DeviceConfig",
    "RetentionConfig",
    "ServiceConfig",
    "TimingConfig",
    "VerificationConfig",
    "load_configs",
]
