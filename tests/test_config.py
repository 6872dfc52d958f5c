"""Unit tests for settings loading and validation."""

import json
from pathlib import Path

import pytest

from lazykv import config
from lazykv.config import ConfigError, Settings, load_config, load_theme, save_theme
from lazykv.constants import MAX_PARALLELISM


def _write(path: Path, data: object) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data))


class TestSettings:
    def test_defaults(self):
        """
        Given no overrides
        When Settings is constructed
        Then the documented defaults apply
        """
        settings = Settings()
        assert settings.az_path == "az"
        assert settings.max_parallelism == MAX_PARALLELISM
        assert settings.log_level == "WARNING"
        assert not str(settings.log_file).startswith("~")

    def test_log_level_is_upper_cased(self):
        assert Settings(log_level="debug").log_level == "DEBUG"

    @pytest.mark.parametrize(
        "values",
        [
            {"max_parallelism": 0},
            {"cache_ttl_seconds": 0},
            {"token_refresh_margin_seconds": -1},
            {"http_timeout_seconds": 0},
            {"log_level": "CHATTY"},
        ],
    )
    def test_out_of_range_rejected(self, values):
        from pydantic import ValidationError

        with pytest.raises(ValidationError):
            Settings.model_validate(values)


class TestLoadConfig:
    def test_bootstraps_when_missing(self):
        """
        Given no config file exists
        When load_config is called
        Then defaults are returned and config.json plus README are created
        """
        result = load_config()

        assert result == Settings()
        assert json.loads(config.CONFIG_PATH.read_text()) == {}
        assert config._README_PATH.exists()

    def test_values_are_read(self):
        _write(config.CONFIG_PATH, {"max_parallelism": 8, "log_level": "info"})

        result = load_config()

        assert result.max_parallelism == 8
        assert result.log_level == "INFO"

    def test_underscore_keys_are_stripped(self):
        """
        Given config.json contains a '_comment' key
        When load_config is called
        Then it is ignored instead of failing validation
        """
        _write(config.CONFIG_PATH, {"_comment": "tuned for CI", "http_timeout_seconds": 5})
        assert load_config().http_timeout_seconds == 5

    def test_invalid_json_raises_config_error(self):
        config.CONFIG_PATH.write_text("{not valid json}")
        with pytest.raises(ConfigError, match="not valid JSON"):
            load_config()

    def test_non_object_root_raises_config_error(self):
        _write(config.CONFIG_PATH, [])
        with pytest.raises(ConfigError, match="top level"):
            load_config()

    def test_unknown_key_raises_config_error(self):
        """
        Given a misspelled key
        When load_config is called
        Then a ConfigError names the problem
        """
        _write(config.CONFIG_PATH, {"max_paralelism": 3})
        with pytest.raises(ConfigError, match="max_paralelism"):
            load_config()

    def test_invalid_value_raises_config_error(self):
        _write(config.CONFIG_PATH, {"max_parallelism": 0})
        with pytest.raises(ConfigError, match="Invalid config.json"):
            load_config()


class TestTheme:
    def test_round_trip(self):
        save_theme("nord")
        assert load_theme() == "nord"

    def test_missing_file(self):
        assert load_theme() is None

    def test_corrupt_file(self):
        config.THEME_CONFIG_PATH.write_text("not json")
        assert load_theme() is None
