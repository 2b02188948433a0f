from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from orvillecontrol.app.value_sync import MismatchPolicy
from orvillecontrol.domain.bitmap import BitmapCalibration
from orvillecontrol.logging_setup import LOG_CATEGORIES
from orvillecontrol.protocol.codes import OrvilleMenuKeys


_SLOT_ROOTS = frozenset({OrvilleMenuKeys.DSP_A, OrvilleMenuKeys.DSP_B})


@dataclass
class DeviceConfig:
    device_id: int | None = None  # None = adopt the id of the first frame received
    port_prefix: str = "Orville"
    preset_key: str = OrvilleMenuKeys.DSP_A


@dataclass
class TimingConfig:
    settle_delay_s: float = 0.2
    poll_interval_s: float = 0.1
    keypress_refresh_s: float = 0.2
    load_refresh_s: float = 0.5


@dataclass
class BitmapConfig:
    header_bytes: int = 0
    column_rotation: int = 0
    vertical_shift: int = 0
    shift_columns: int = 8
    fetch_on_connect: bool = True
    update_on_change: bool = True

    def calibration(self) -> BitmapCalibration:
        return BitmapCalibration(
            header_bytes=self.header_bytes,
            column_rotation=self.column_rotation,
            vertical_shift=self.vertical_shift,
            shift_columns=self.shift_columns,
        )


@dataclass
class LoggingConfig:
    level: str = "INFO"
    categories: dict[str, bool] = field(default_factory=lambda: {c: True for c in LOG_CATEGORIES})


@dataclass
class AppConfig:
    device: DeviceConfig = field(default_factory=DeviceConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    bitmap: BitmapConfig = field(default_factory=BitmapConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    mismatch_policy: str = MismatchPolicy.ADOPT_DEVICE.value

    @classmethod
    def default(cls) -> AppConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppConfig:
        device_data = data.get("device", {})
        timing_data = data.get("timing", {})
        bitmap_data = data.get("bitmap", {})
        logging_data = data.get("logging", {})

        defaults = cls.default()
        categories = dict(defaults.logging.categories)
        categories.update(logging_data.get("categories", {}))

        policy = data.get("mismatch_policy", defaults.mismatch_policy)
        if policy not in {p.value for p in MismatchPolicy}:
            logging.warning("Unknown mismatch_policy %r, using %s", policy, defaults.mismatch_policy)
            policy = defaults.mismatch_policy

        preset_key = device_data.get("preset_key", defaults.device.preset_key)
        if preset_key not in _SLOT_ROOTS:
            logging.warning("preset_key %r is not a slot root, using %s", preset_key, defaults.device.preset_key)
            preset_key = defaults.device.preset_key

        return cls(
            device=DeviceConfig(
                device_id=device_data.get("device_id"),
                port_prefix=device_data.get("port_prefix", defaults.device.port_prefix),
                preset_key=preset_key,
            ),
            timing=TimingConfig(
                settle_delay_s=float(timing_data.get("settle_delay_s", defaults.timing.settle_delay_s)),
                poll_interval_s=float(timing_data.get("poll_interval_s", defaults.timing.poll_interval_s)),
                keypress_refresh_s=float(
                    timing_data.get("keypress_refresh_s", defaults.timing.keypress_refresh_s)
                ),
                load_refresh_s=float(timing_data.get("load_refresh_s", defaults.timing.load_refresh_s)),
            ),
            bitmap=BitmapConfig(
                header_bytes=int(bitmap_data.get("header_bytes", defaults.bitmap.header_bytes)),
                column_rotation=int(bitmap_data.get("column_rotation", defaults.bitmap.column_rotation)),
                vertical_shift=int(bitmap_data.get("vertical_shift", defaults.bitmap.vertical_shift)),
                shift_columns=int(bitmap_data.get("shift_columns", defaults.bitmap.shift_columns)),
                fetch_on_connect=bool(bitmap_data.get("fetch_on_connect", defaults.bitmap.fetch_on_connect)),
                update_on_change=bool(bitmap_data.get("update_on_change", defaults.bitmap.update_on_change)),
            ),
            logging=LoggingConfig(
                level=logging_data.get("level", defaults.logging.level),
                categories=categories,
            ),
            mismatch_policy=policy,
        )


class ConfigManager:
    def __init__(self, config_path: Path | str = "config.json") -> None:
        self.config_path = Path(config_path)
        self.config = self.load()

    def load(self) -> AppConfig:
        if not self.config_path.exists():
            logging.info(f"Config file not found at {self.config_path}, using defaults.")
            return AppConfig.default()

        try:
            with open(self.config_path, "r") as f:
                data = json.load(f)
                return AppConfig.from_dict(data)
        except Exception as e:
            logging.error(f"Failed to load config: {e}")
            return AppConfig.default()

    def save(self) -> None:
        try:
            with open(self.config_path, "w") as f:
                json.dump(asdict(self.config), f, indent=4)
        except Exception as e:
            logging.error(f"Failed to save config: {e}")

    @property
    def device_id(self) -> int | None:
        return self.config.device.device_id

    @device_id.setter
    def device_id(self, value: int | None) -> None:
        self.config.device.device_id = value
        self.save()

    @property
    def preset_key(self) -> str:
        return self.config.device.preset_key

    @preset_key.setter
    def preset_key(self, value: str) -> None:
        if value not in _SLOT_ROOTS:
            raise ValueError(f"preset_key must be one of {sorted(_SLOT_ROOTS)}, got {value!r}")
        self.config.device.preset_key = value
        self.save()

    @property
    def log_level(self) -> str:
        return self.config.logging.level

    @log_level.setter
    def log_level(self, value: str) -> None:
        self.config.logging.level = value
        self.save()

    @property
    def mismatch_policy(self) -> MismatchPolicy:
        return MismatchPolicy(self.config.mismatch_policy)

    @mismatch_policy.setter
    def mismatch_policy(self, value: MismatchPolicy) -> None:
        self.config.mismatch_policy = value.value
        self.save()
