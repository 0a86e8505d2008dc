"""Tests for configuration loading and the runtime flag store."""

from pathlib import Path

from stellar_av.config import ConfigManager, RuntimeConfigStore
from stellar_av.models import (
    ApiSettings,
    QuarantineSettings,
    RealtimeSettings,
    RuntimeConfig,
    ThreatIntelSettings,
)


class TestConfigManager:
    def test_missing_file_uses_defaults(self, tmp_path):
        manager = ConfigManager(str(tmp_path / "absent.yaml"))
        config = manager.get_config()

        assert config.name == "stellar-av"
        assert config.data_dir == str(Path.home() / ".stellar_antivirus")
        assert manager.get_section("threat_intel") == {}
        settings = manager.get_settings("threat_intel", ThreatIntelSettings)
        assert settings.chunk_size == 1000
        assert settings.connect_timeout == 10.0

    def test_sections_loaded(self, config_file, tmp_path):
        manager = ConfigManager(str(config_file))

        assert manager.get_config().data_dir == str(tmp_path / "data")
        assert manager.get_settings("threat_intel", ThreatIntelSettings).enabled is False
        assert manager.get_settings("realtime", RealtimeSettings).settle_delay == 0
        assert manager.get_settings("realtime", RealtimeSettings).suppress_window == 2.0

    def test_empty_section_gives_defaults(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("quarantine:\napi:\n")
        manager = ConfigManager(str(path))
        assert manager.get_settings("quarantine", QuarantineSettings).dir is None
        assert manager.get_settings("api", ApiSettings).port == 8765

    def test_env_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("STELLAR_AGENT_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("STELLAR_THREAT_INTEL_RETRIES", "3")
        monkeypatch.setenv("STELLAR_THREAT_INTEL_ENABLED", "false")

        manager = ConfigManager(str(tmp_path / "absent.yaml"))

        assert manager.get_config().log_level == "DEBUG"
        settings = manager.get_settings("threat_intel", ThreatIntelSettings)
        assert settings.retries == 3
        assert settings.enabled is False

    def test_home_expanded(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("agent:\n  data_dir: ~/stellar-data\nquarantine:\n  dir: ~/q\n")
        manager = ConfigManager(str(path))

        assert manager.get_config().data_dir == str(Path.home() / "stellar-data")
        assert manager.get_settings("quarantine", QuarantineSettings).dir == str(Path.home() / "q")

    def test_create_directories(self, config_file, tmp_path):
        manager = ConfigManager(str(config_file))
        manager.create_directories()
        assert (tmp_path / "data").is_dir()
        assert (tmp_path / "data" / "logs").is_dir()


class TestRuntimeConfigStore:
    def test_defaults_when_absent(self, tmp_path):
        config = RuntimeConfigStore(tmp_path / "runtime_config.json").load()
        assert config == RuntimeConfig(realtime_enabled=True, shown_background_hint=False)

    def test_update_persists(self, tmp_path):
        path = tmp_path / "nested" / "runtime_config.json"
        RuntimeConfigStore(path).update(realtime_enabled=False)

        reloaded = RuntimeConfigStore(path).load()
        assert reloaded.realtime_enabled is False
        assert reloaded.shown_background_hint is False

    def test_corrupt_file_falls_back_to_defaults(self, tmp_path):
        path = tmp_path / "runtime_config.json"
        path.write_text("{not json")
        assert RuntimeConfigStore(path).load().realtime_enabled is True
