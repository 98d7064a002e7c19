"""Tests for settings loading."""

from pathlib import Path

import pytest

from cardcatalog.config import Settings, get_settings
from cardcatalog.domain.exceptions import ConfigurationError


class TestSettings:
    """Test the settings sources."""

    def test_defaults(self):
        settings = get_settings()

        assert settings.acoustid.requests_per_second == 3.0
        assert settings.resolver.accept_threshold == 0.5
        assert settings.resolver.duration_tolerance_seconds == 5
        assert settings.resolver.cooldown_seconds == 14 * 24 * 3600
        assert settings.prune.max_delete_fraction == 0.5
        assert settings.database.url.startswith("sqlite+aiosqlite:///")

    def test_nested_env_vars(self, monkeypatch):
        monkeypatch.setenv("CARDCATALOG_ACOUSTID__API_KEY", "secret")
        monkeypatch.setenv("CARDCATALOG_RESOLVER__ACCEPT_THRESHOLD", "0.8")

        settings = Settings()

        assert settings.acoustid.api_key == "secret"
        assert settings.resolver.accept_threshold == 0.8

    def test_yaml_file(self, monkeypatch, tmp_path: Path):
        config = tmp_path / "catalog.yaml"
        config.write_text(
            "scan:\n  paths: [/srv/music]\nsearch_index:\n  enabled: false\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("CARDCATALOG_CONFIG_FILE", str(config))

        settings = Settings()

        assert settings.scan.paths == [Path("/srv/music")]
        assert settings.search_index.enabled is False

    def test_legacy_yaml_layout(self, monkeypatch, tmp_path: Path):
        """The first config.yaml format had flat paths and api_keys."""
        config = tmp_path / "config.yaml"
        config.write_text(
            "paths:\n  - /music\n  - /more\napi_keys:\n  acoustid: legacy-key\n",
            encoding="utf-8",
        )
        monkeypatch.setenv("CARDCATALOG_CONFIG_FILE", str(config))

        settings = Settings()

        assert settings.scan.paths == [Path("/music"), Path("/more")]
        assert settings.acoustid.api_key == "legacy-key"

    def test_env_beats_yaml(self, monkeypatch, tmp_path: Path):
        config = tmp_path / "config.yaml"
        config.write_text("acoustid:\n  api_key: from-file\n", encoding="utf-8")
        monkeypatch.setenv("CARDCATALOG_CONFIG_FILE", str(config))
        monkeypatch.setenv("CARDCATALOG_ACOUSTID__API_KEY", "from-env")

        assert Settings().acoustid.api_key == "from-env"

    def test_invalid_value_is_configuration_error(self, monkeypatch):
        monkeypatch.setenv("CARDCATALOG_RESOLVER__ACCEPT_THRESHOLD", "1.5")

        with pytest.raises(ConfigurationError):
            get_settings()

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()
