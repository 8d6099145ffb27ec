"""Tests for settings loading."""

import json

from tmsize.config import Settings, load_settings


class TestLoadSettings:
    def test_defaults_without_file(self, isolated_home):
        settings = load_settings()
        assert settings.cache_ttl_hours == 24
        assert settings.cache_ttl_seconds == 24 * 3600
        assert settings.max_workers == 4
        assert settings.cache_file == isolated_home / ".tmsize" / "size_cache.json"

    def test_reads_default_location(self, isolated_home):
        config_dir = isolated_home / ".tmsize"
        config_dir.mkdir()
        (config_dir / "config.json").write_text(json.dumps({"max_workers": 2}))
        assert load_settings().max_workers == 2

    def test_explicit_path_and_expansion(self, tmp_path, isolated_home):
        config = tmp_path / "custom.json"
        config.write_text(json.dumps({"cache_file": "~/sizes.json", "cache_ttl_hours": 1}))
        settings = load_settings(config)
        assert settings.cache_file == isolated_home / "sizes.json"
        assert settings.cache_ttl_seconds == 3600

    def test_invalid_json_falls_back(self, tmp_path):
        config = tmp_path / "config.json"
        config.write_text("{oops")
        assert load_settings(config) == Settings()

    def test_invalid_values_fall_back(self, tmp_path):
        config = tmp_path / "config.json"
        config.write_text(json.dumps({"max_workers": 0}))
        assert load_settings(config).max_workers == 4
