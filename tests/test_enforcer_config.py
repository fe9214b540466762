"""Tests for EnforcerConfig loading."""

import logging
from pathlib import Path

import pytest

from speedpilot.enforcer_config import EnforcerConfig


@pytest.fixture
def fresh_config(monkeypatch, tmp_path):
    """Point the singleton at a temp yaml and drop any cached instance."""
    path = tmp_path / "speedpilot.yaml"
    monkeypatch.setattr(EnforcerConfig, "config_path", path)
    monkeypatch.setattr(EnforcerConfig, "_instance", None)
    return path


class TestEnforcerConfig:
    
    def test_defaults_without_yaml(self, fresh_config):
        settings = EnforcerConfig.get().settings
        
        assert settings.primary_selector == "video.html5-main-video"
        assert settings.fallback_selector == "video"
        assert settings.resume_delay == 0.2
        assert settings.navigation_delay == 0.5
    
    def test_yaml_overrides_defaults(self, fresh_config):
        fresh_config.write_text(
            "enforcer:\n  navigation_delay: 0.8\n  primary_selector: 'video#main'\n",
            encoding="utf-8",
        )
        
        settings = EnforcerConfig.get().settings
        
        assert settings.navigation_delay == 0.8
        assert settings.primary_selector == "video#main"
        assert settings.resume_delay == 0.2
    
    def test_invalid_yaml_warns_and_uses_defaults(self, fresh_config, caplog):
        fresh_config.write_text("enforcer: [", encoding="utf-8")
        
        with caplog.at_level(logging.WARNING):
            settings = EnforcerConfig.get().settings
        
        assert "using defaults" in caplog.text
        assert settings.navigation_delay == 0.5
    
    def test_unknown_options_are_ignored(self, fresh_config, caplog):
        fresh_config.write_text("enforcer:\n  turbo: true\n", encoding="utf-8")
        
        with caplog.at_level(logging.WARNING):
            EnforcerConfig.get()
        
        assert "turbo" in caplog.text
    
    def test_singleton_and_reload(self, fresh_config):
        config = EnforcerConfig.get()
        assert EnforcerConfig.get() is config
        
        fresh_config.write_text("enforcer:\n  resume_delay: 0.35\n", encoding="utf-8")
        config.reload()
        
        assert config.settings.resume_delay == 0.35
    
    def test_settings_are_frozen(self, fresh_config):
        settings = EnforcerConfig.get().settings
        
        with pytest.raises(Exception):
            settings.resume_delay = 5
    
    def test_resolve_settings_path(self):
        assert EnforcerConfig.resolve_settings_path("auto") == Path.home() / ".speedpilot" / "settings.yaml"
        assert EnforcerConfig.resolve_settings_path("/tmp/s.yaml") == Path("/tmp/s.yaml")


def test_shipped_yaml_matches_defaults():
    """config/speedpilot.yaml documents exactly the known options."""
    import yaml
    
    with open(EnforcerConfig.config_path, encoding="utf-8") as f:
        shipped = yaml.safe_load(f)["enforcer"]
    assert set(shipped) == set(EnforcerConfig.DEFAULTS)
