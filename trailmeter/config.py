from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from .constants import DEFAULT_SAMPLE_RATE_HZ
from .sensitivity import SENSITIVITY_KEYS, SensitivitySettings, sanitize_sensitivity

LOGGER = logging.getLogger(__name__)

DEFAULT_CONFIG: dict[str, Any] = {
    "buffers": {
        "accel_capacity": 60_000,
        "gyro_capacity": 60_000,
        "rotation_capacity": 60_000,
        "gps_capacity": 600,
    },
    "live_monitor": {
        "period_s": 0.3,
        "accel_window": 200,
        "gyro_window": 200,
        "gps_window": 5,
        "accel_sample_rate_hz": DEFAULT_SAMPLE_RATE_HZ,
    },
    "processing": {
        "window_s": 1.0,
        "hop_s": 0.25,
        "output_points": 200,
        "default_sample_rate_hz": DEFAULT_SAMPLE_RATE_HZ,
    },
    "sensitivity": {
        "impact": 1.0,
        "harshness": 1.0,
        "stability": 1.0,
        "gps": 1.0,
    },
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _clamp_min(owner: str, obj: object, field_name: str, minimum: float) -> None:
    val = getattr(obj, field_name)
    if val < minimum:
        LOGGER.warning(
            "%s.%s=%s is below minimum %s, clamped to %s",
            owner,
            field_name,
            val,
            minimum,
            minimum,
        )
        object.__setattr__(obj, field_name, type(val)(minimum))


@dataclass(slots=True)
class BufferConfig:
    accel_capacity: int
    gyro_capacity: int
    rotation_capacity: int
    gps_capacity: int

    def __post_init__(self) -> None:
        for name in ("accel_capacity", "gyro_capacity", "rotation_capacity", "gps_capacity"):
            _clamp_min("buffers", self, name, 1)


@dataclass(slots=True)
class LiveMonitorConfig:
    period_s: float
    accel_window: int
    gyro_window: int
    gps_window: int
    accel_sample_rate_hz: float

    def __post_init__(self) -> None:
        _clamp_min("live_monitor", self, "period_s", 0.05)
        _clamp_min("live_monitor", self, "accel_window", 3)
        _clamp_min("live_monitor", self, "gyro_window", 1)
        _clamp_min("live_monitor", self, "gps_window", 1)
        _clamp_min("live_monitor", self, "accel_sample_rate_hz", 1.0)


@dataclass(slots=True)
class ProcessingConfig:
    window_s: float
    hop_s: float
    output_points: int
    default_sample_rate_hz: float

    def __post_init__(self) -> None:
        _clamp_min("processing", self, "window_s", 0.05)
        _clamp_min("processing", self, "hop_s", 0.01)
        _clamp_min("processing", self, "output_points", 2)
        _clamp_min("processing", self, "default_sample_rate_hz", 1.0)
        if self.hop_s > self.window_s:
            LOGGER.warning(
                "processing.hop_s=%s exceeds window_s=%s, clamped to window_s",
                self.hop_s,
                self.window_s,
            )
            object.__setattr__(self, "hop_s", self.window_s)


@dataclass(slots=True)
class SensitivityConfig:
    impact: float
    harshness: float
    stability: float
    gps: float

    def to_settings(self) -> SensitivitySettings:
        return SensitivitySettings(
            impact=self.impact,
            harshness=self.harshness,
            stability=self.stability,
            gps=self.gps,
        ).normalized()


@dataclass(slots=True)
class AppConfig:
    buffers: BufferConfig
    live_monitor: LiveMonitorConfig
    processing: ProcessingConfig
    sensitivity: SensitivityConfig
    config_path: Path | None = None


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a YAML object at the top level.")
        return data


def _section(merged: dict[str, Any], name: str) -> dict[str, Any]:
    section = merged.get(name)
    if not isinstance(section, dict):
        raise ValueError(f"{name} must be a mapping, got {type(section).__name__}")
    return section


def load_config(config_path: Path | None = None) -> AppConfig:
    """Load defaults, deep-merged with the YAML file at *config_path* when it exists."""
    path = config_path.resolve() if config_path is not None else None
    override = _read_config_file(path) if path is not None else {}
    merged = _deep_merge(DEFAULT_CONFIG, override)

    buffers = _section(merged, "buffers")
    live = _section(merged, "live_monitor")
    processing = _section(merged, "processing")
    sensitivity_raw = _section(merged, "sensitivity")
    sensitivity = {
        **DEFAULT_CONFIG["sensitivity"],
        **sanitize_sensitivity({k: sensitivity_raw.get(k) for k in SENSITIVITY_KEYS}),
    }

    app_config = AppConfig(
        buffers=BufferConfig(
            accel_capacity=int(buffers["accel_capacity"]),
            gyro_capacity=int(buffers["gyro_capacity"]),
            rotation_capacity=int(buffers["rotation_capacity"]),
            gps_capacity=int(buffers["gps_capacity"]),
        ),
        live_monitor=LiveMonitorConfig(
            period_s=float(live["period_s"]),
            accel_window=int(live["accel_window"]),
            gyro_window=int(live["gyro_window"]),
            gps_window=int(live["gps_window"]),
            accel_sample_rate_hz=float(live["accel_sample_rate_hz"]),
        ),
        processing=ProcessingConfig(
            window_s=float(processing["window_s"]),
            hop_s=float(processing["hop_s"]),
            output_points=int(processing["output_points"]),
            default_sample_rate_hz=float(processing["default_sample_rate_hz"]),
        ),
        sensitivity=SensitivityConfig(
            impact=float(sensitivity["impact"]),
            harshness=float(sensitivity["harshness"]),
            stability=float(sensitivity["stability"]),
            gps=float(sensitivity["gps"]),
        ),
        config_path=path,
    )
    LOGGER.info(
        "Loaded config=%s live_period_s=%s window_s=%s hop_s=%s",
        app_config.config_path,
        app_config.live_monitor.period_s,
        app_config.processing.window_s,
        app_config.processing.hop_s,
    )
    return app_config
