"""Tests for the JSON config layer."""

import json

import pytest

from orvillecontrol.app.config import AppConfig, ConfigManager
from orvillecontrol.app.value_sync import MismatchPolicy
from orvillecontrol.domain.bitmap import BitmapCalibration
from orvillecontrol.logging_setup import LOG_CATEGORIES
from orvillecontrol.protocol.codes import OrvilleMenuKeys


class TestAppConfig:
    def test_defaults(self):
        config = AppConfig.default()
        assert config.device.device_id is None
        assert config.device.preset_key == OrvilleMenuKeys.DSP_A
        assert config.timing.settle_delay_s == 0.2
        assert config.timing.poll_interval_s == 0.1
        assert config.mismatch_policy == MismatchPolicy.ADOPT_DEVICE.value
        assert set(config.logging.categories) == set(LOG_CATEGORIES)

    def test_from_partial_dict(self):
        config = AppConfig.from_dict(
            {
                "device": {"device_id": 3},
                "bitmap": {"column_rotation": 2},
                "logging": {"categories": {"sysex_sent": False}},
            }
        )
        assert config.device.device_id == 3
        assert config.device.port_prefix == "Orville"
        assert config.bitmap.column_rotation == 2
        assert config.bitmap.shift_columns == 8
        assert config.logging.categories["sysex_sent"] is False
        assert config.logging.categories["navigation"] is True

    def test_unknown_policy_falls_back(self):
        config = AppConfig.from_dict({"mismatch_policy": "revert"})
        assert config.mismatch_policy == MismatchPolicy.ADOPT_DEVICE.value

    @pytest.mark.parametrize("key", ["10020000", "4010001b", 7])
    def test_non_slot_preset_key_falls_back(self, key, caplog):
        config = AppConfig.from_dict({"device": {"preset_key": key}})
        assert config.device.preset_key == OrvilleMenuKeys.DSP_A
        assert "not a slot root" in caplog.text

    def test_slot_b_preset_key_is_kept(self):
        config = AppConfig.from_dict({"device": {"preset_key": OrvilleMenuKeys.DSP_B}})
        assert config.device.preset_key == OrvilleMenuKeys.DSP_B

    def test_calibration(self):
        config = AppConfig.from_dict({"bitmap": {"header_bytes": 6, "vertical_shift": -1}})
        assert config.bitmap.calibration() == BitmapCalibration(header_bytes=6, vertical_shift=-1)


class TestConfigManager:
    def test_missing_file_gives_defaults(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.json")
        assert manager.config == AppConfig.default()

    def test_bad_json_gives_defaults(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")
        assert ConfigManager(path).config == AppConfig.default()

    def test_preset_key_setter_rejects_non_slot_key(self, tmp_path):
        manager = ConfigManager(tmp_path / "config.json")
        with pytest.raises(ValueError):
            manager.preset_key = "10020000"
        assert manager.preset_key == OrvilleMenuKeys.DSP_A

    def test_setters_save(self, tmp_path):
        path = tmp_path / "config.json"
        manager = ConfigManager(path)
        manager.device_id = 7
        manager.preset_key = OrvilleMenuKeys.DSP_B
        manager.mismatch_policy = MismatchPolicy.KEEP_OPTIMISTIC
        manager.log_level = "DEBUG"

        data = json.loads(path.read_text())
        assert data["device"]["device_id"] == 7
        assert data["device"]["preset_key"] == OrvilleMenuKeys.DSP_B
        assert data["mismatch_policy"] == "keep_optimistic"

        reloaded = ConfigManager(path)
        assert reloaded.device_id == 7
        assert reloaded.mismatch_policy is MismatchPolicy.KEEP_OPTIMISTIC
        assert reloaded.log_level == "DEBUG"
        assert reloaded.config == manager.config
