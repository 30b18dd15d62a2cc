"""
Unit tests for Settings.
"""

import pytest
from pydantic import ValidationError

from btbridge.config import Settings, get_settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("BTBRIDGE_ROSBRIDGE_HOST", "BTBRIDGE_ROSBRIDGE_PORT", "BTBRIDGE_AUTORUN"):
            monkeypatch.delenv(name, raising=False)
        settings = Settings(_env_file=None)

        assert settings.rosbridge_address == "localhost:9090"
        assert settings.tick_interval_s == pytest.approx(0.02)
        assert settings.autorun is True
        assert settings.expand_on_change is True
        assert settings.type_service == "/rosapi/topic_type"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("BTBRIDGE_ROSBRIDGE_HOST", "robot.local")
        monkeypatch.setenv("BTBRIDGE_ROSBRIDGE_PORT", "9191")
        monkeypatch.setenv("BTBRIDGE_AUTORUN", "false")

        settings = Settings(_env_file=None)

        assert settings.rosbridge_address == "robot.local:9191"
        assert settings.autorun is False

    def test_env_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("BTBRIDGE_TICK_INTERVAL_MS", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("BTBRIDGE_TICK_INTERVAL_MS=100\n", encoding="utf-8")
        assert Settings(_env_file=env_file).tick_interval_s == pytest.approx(0.1)

    @pytest.mark.parametrize(
        "field,value",
        [("rosbridge_port", 0), ("rosbridge_port", 70000), ("tick_interval_ms", 0)],
    )
    def test_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
