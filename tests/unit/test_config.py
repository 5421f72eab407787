"""Test Settings loading from defaults, TOML and environment."""

import pytest

from pybloc.core.config import (
    DispatchConfig,
    Settings,
    get_settings,
    load_settings,
    reset_settings,
)
from pybloc.core.errors import ConfigError


class TestSettingsDefaults:
    def test_default_settings(self):
        settings = Settings()
        assert settings.dispatch.queue_maxsize == 0
        assert settings.dispatch.max_dead_letters == 1000

    def test_default_observability(self):
        settings = Settings()
        assert settings.observability.log_level == "INFO"
        assert settings.observability.log_format == "console"

    def test_negative_queue_size_rejected(self):
        with pytest.raises(ValueError):
            DispatchConfig(queue_maxsize=-1)


class TestLoadSettings:
    def test_missing_file_uses_defaults(self, tmp_path):
        settings = load_settings(tmp_path / "absent.toml")
        assert settings.dispatch.queue_maxsize == 0

    def test_load_from_toml(self, tmp_path):
        path = tmp_path / "bloc.toml"
        path.write_text(
            "[dispatch]\nqueue_maxsize = 8\n\n"
            "[observability]\nlog_format = \"json\"\n"
        )
        settings = load_settings(path)
        assert settings.dispatch.queue_maxsize == 8
        assert settings.observability.log_format == "json"

    def test_overrides_win(self, tmp_path):
        path = tmp_path / "bloc.toml"
        path.write_text("[dispatch]\nqueue_maxsize = 8\n")
        settings = load_settings(path, overrides={"dispatch": {"queue_maxsize": 2}})
        assert settings.dispatch.queue_maxsize == 2

    def test_invalid_toml_raises_config_error(self, tmp_path):
        path = tmp_path / "bloc.toml"
        path.write_text("[dispatch\nqueue_maxsize = ")
        with pytest.raises(ConfigError, match="Invalid TOML"):
            load_settings(path)

    def test_invalid_value_raises_config_error(self):
        with pytest.raises(ConfigError):
            load_settings(overrides={"observability": {"log_format": "xml"}})

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("BLOC_DISPATCH__QUEUE_MAXSIZE", "16")
        settings = load_settings()
        assert settings.dispatch.queue_maxsize == 16


class TestCachedSettings:
    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_reloads(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("BLOC_DISPATCH__MAX_DEAD_LETTERS", "3")
        reset_settings()
        second = get_settings()
        assert second is not first
        assert second.dispatch.max_dead_letters == 3
