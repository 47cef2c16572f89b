"""Tests for settings loading."""

import json

import pytest

from resmon.config import Settings
from resmon.errors import ConfigError


class TestSettings:
    """Tests for Settings."""

    def test_defaults(self):
        """Test built-in defaults match the documented behavior."""
        settings = Settings.load(env={})
        assert settings.port == 3000
        assert settings.sample_period == 1.0
        assert settings.window_capacity == 60
        assert settings.tracking_duration == 300.0
        assert settings.process_limit == 10
        assert settings.command_width == 50

    def test_json_file(self, tmp_path):
        """Test values from a JSON file override defaults."""
        path = tmp_path / "resmon.json"
        path.write_text(json.dumps({"port": 8080, "tracking_duration": 60}))
        settings = Settings.load(str(path), env={})
        assert settings.port == 8080
        assert settings.tracking_duration == 60.0

    def test_environment_beats_file(self, tmp_path):
        """Test RESMON_* variables win over the file."""
        path = tmp_path / "resmon.json"
        path.write_text(json.dumps({"port": 8080}))
        settings = Settings.load(str(path), env={"RESMON_PORT": "9090", "OTHER": "x"})
        assert settings.port == 9090

    def test_unknown_key(self, tmp_path):
        """Test unknown settings are rejected."""
        path = tmp_path / "resmon.json"
        path.write_text(json.dumps({"colour": "blue"}))
        with pytest.raises(ConfigError, match="colour"):
            Settings.load(str(path), env={})

    def test_missing_file(self, tmp_path):
        """Test a missing file is a ConfigError."""
        with pytest.raises(ConfigError, match="not found"):
            Settings.load(str(tmp_path / "nope.json"), env={})

    def test_invalid_json(self, tmp_path):
        """Test malformed JSON is a ConfigError."""
        path = tmp_path / "bad.json"
        path.write_text("{port: ")
        with pytest.raises(ConfigError, match="Invalid JSON"):
            Settings.load(str(path), env={})

    def test_non_object_json(self, tmp_path):
        """Test a JSON document that is not an object is rejected."""
        path = tmp_path / "list.json"
        path.write_text("[1, 2]")
        with pytest.raises(ConfigError):
            Settings.load(str(path), env={})

    @pytest.mark.parametrize(
        "overrides",
        [
            {"port": 0},
            {"port": 70000},
            {"sample_period": 0},
            {"window_capacity": -1},
            {"tracking_duration": 0},
            {"port": "abc"},
            {"port": True},
            {"port": 80.5},
            {"host": 5},
        ],
    )
    def test_invalid_values(self, overrides):
        """Test out-of-range and mistyped values raise ConfigError."""
        with pytest.raises(ConfigError):
            Settings().with_overrides(**overrides)

    def test_none_overrides_are_skipped(self):
        """Test unset command line flags leave settings alone."""
        settings = Settings().with_overrides(port=None, host="127.0.0.1")
        assert settings.port == 3000
        assert settings.host == "127.0.0.1"

    def test_config_error_is_value_error(self):
        """Test ConfigError can be caught as ValueError."""
        with pytest.raises(ValueError):
            Settings().with_overrides(port=-1)
