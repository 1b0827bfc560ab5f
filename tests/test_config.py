"""
Tests for configuration models and config.json loading.
"""

import json

import pytest
from pydantic import ValidationError

from smc100cc_ctrl.config.loader import ConfigurationError, load_config
from smc100cc_ctrl.config.models import AppConfig, LoggingConfig, SerialConfig, StageConfig


class TestModels:

    def test_defaults(self):
        config = AppConfig()
        assert config.server.port == 5000
        assert config.serial.baud == 57600
        assert config.serial.vendor_id == "0403"
        assert config.stage.controller_address == 1
        assert config.stage.position_tolerance == 0.05
        assert config.stage.position_decimals == 6
        assert config.stage.expected_stage_id is None
        assert not config.simulator.enabled

    def test_usb_id_normalized(self):
        assert SerialConfig(vendor_id="10C4").vendor_id == "10c4"

    @pytest.mark.parametrize("value", ["403", "xyz1", "04031"])
    def test_usb_id_rejected(self, value):
        with pytest.raises(ValidationError):
            SerialConfig(product_id=value)

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="verbose")

    @pytest.mark.parametrize("address", [0, 10])
    def test_address_range(self, address):
        with pytest.raises(ValidationError):
            StageConfig(controller_address=address)

    def test_unknown_section_rejected(self):
        with pytest.raises(ValidationError):
            AppConfig(telescope={})


class TestLoader:

    def test_missing_file_creates_default(self, tmp_path):
        path = tmp_path / "config.json"

        config = load_config(str(path))

        assert config == AppConfig()
        assert path.exists()
        # The generated file loads back despite its comment key
        assert load_config(str(path)) == AppConfig()

    def test_partial_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"stage": {"position_tolerance": 0.01}, "simulator": {"enabled": True}}))

        config = load_config(str(path))

        assert config.stage.position_tolerance == 0.01
        assert config.simulator.enabled
        assert config.serial.baud == 57600

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("{not json")

        with pytest.raises(ConfigurationError, match="Invalid JSON"):
            load_config(str(path))

    def test_validation_errors_are_listed(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"server": {"port": 0}, "logging": {"level": "LOUD"}}))

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(str(path))

        message = str(exc_info.value)
        assert "server -> port" in message
        assert "logging -> level" in message

    def test_nested_comment_keys_ignored(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({
            "_comment": "top",
            "serial": {"_comment": "FTDI cable", "serial_number": "FT12345"},
        }))

        assert load_config(str(path)).serial.serial_number == "FT12345"

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")

        with pytest.raises(ConfigurationError, match="JSON object"):
            load_config(str(path))

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "stage.json"
        path.write_text(json.dumps({"server": {"port": 8080}}))
        monkeypatch.setenv("SMC100CC_CONFIG", str(path))

        assert load_config().server.port == 8080
