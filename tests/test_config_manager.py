"""Tests for ConfigManager: defaults, preferences and atomic save"""

import os
import tempfile
from unittest.mock import patch

import pytest
import yaml

from opencode_chat.config.config_manager import BASE_URL_ENV, ConfigManager
from opencode_chat.config.models import Preferences
from opencode_chat.utils.errors import ConfigError


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.delenv(BASE_URL_ENV, raising=False)
    return tmp_path / "opencode" / "config.yaml"


class TestDefaults:
    """First run writes a default config file"""

    def test_creates_default_file(self, config_path):
        config_manager = ConfigManager(str(config_path))

        assert config_path.exists()
        data = yaml.safe_load(config_path.read_text())
        assert data["server"]["base_url"] is None
        assert data["stream"]["reconnect_max_ms"] == 30000
        assert config_manager.base_url is None

    def test_dot_notation(self, config_path):
        config_manager = ConfigManager(str(config_path))

        assert config_manager.get("server.request_timeout") == 30.0
        assert config_manager.get("stream.enabled") is True
        assert config_manager.get("server.nope", "fallback") == "fallback"

    def test_partial_file_fills_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("server:\n  base_url: http://host:4096\n")

        config_manager = ConfigManager(str(config_path))

        assert config_manager.base_url == "http://host:4096"
        assert config_manager.config.server.connect_timeout == 15.0

    def test_empty_file_uses_defaults(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("")

        assert ConfigManager(str(config_path)).config.logging.level == "INFO"

    def test_malformed_yaml(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("server: [unclosed\n")

        with pytest.raises(ConfigError):
            ConfigManager(str(config_path))

    def test_invalid_values(self, config_path):
        config_path.parent.mkdir(parents=True)
        config_path.write_text("stream:\n  reconnect_base_ms: soon\n")

        with pytest.raises(ConfigError) as exc_info:
            ConfigManager(str(config_path))

        assert exc_info.value.exit_code == 78


class TestPreferences:
    """Preferences round-trip through the YAML file"""

    def test_save_and_reload(self, config_path):
        config_manager = ConfigManager(str(config_path))
        config_manager.save_preferences(
            Preferences(
                base_url="http://host:4096",
                setup_complete=True,
                last_provider="anthropic",
                last_model="claude-haiku",
            )
        )

        reloaded = ConfigManager(str(config_path)).load_preferences()

        assert reloaded.base_url == "http://host:4096"
        assert reloaded.setup_complete
        assert reloaded.last_provider == "anthropic"
        assert reloaded.last_model == "claude-haiku"

    def test_store_update(self, config_path):
        store = ConfigManager(str(config_path)).preferences_store()

        store.update(last_provider="openai")

        assert store.load().last_provider == "openai"
        data = yaml.safe_load(config_path.read_text())
        assert data["selection"]["provider_id"] == "openai"

    def test_env_override_wins_and_is_not_persisted(self, config_path, monkeypatch):
        ConfigManager(str(config_path)).save_preferences(Preferences(base_url="http://saved:4096"))
        monkeypatch.setenv(BASE_URL_ENV, "http://env:4096")

        config_manager = ConfigManager(str(config_path))
        store = config_manager.preferences_store()
        assert store.load().base_url == "http://env:4096"

        store.update(last_model="gpt-4o")

        data = yaml.safe_load(config_path.read_text())
        assert data["server"]["base_url"] == "http://saved:4096"
        assert data["selection"]["model_id"] == "gpt-4o"


class TestAtomicConfigSave:
    """Test atomic write behavior for config saves"""

    def test_save_creates_temp_file_first(self, config_path):
        """Test that save() writes through a temp file that is moved into place"""
        temp_files_created = []
        original_mkstemp = tempfile.mkstemp

        def track_mkstemp(*args, **kwargs):
            fd, path = original_mkstemp(*args, **kwargs)
            temp_files_created.append(path)
            return fd, path

        with patch("tempfile.mkstemp", side_effect=track_mkstemp):
            config_manager = ConfigManager(str(config_path))
            config_manager.save()

        assert len(temp_files_created) > 0
        for temp_file in temp_files_created:
            assert os.path.dirname(temp_file) == str(config_path.parent)
            assert not os.path.exists(temp_file)

    def test_save_cleans_up_on_error(self, config_path):
        """Test that temp file is cleaned up if save fails"""
        config_manager = ConfigManager(str(config_path))

        temp_files = []
        original_mkstemp = tempfile.mkstemp

        def track_mkstemp(*args, **kwargs):
            fd, path = original_mkstemp(*args, **kwargs)
            temp_files.append(path)
            return fd, path

        with patch("tempfile.mkstemp", side_effect=track_mkstemp):
            with patch("shutil.move", side_effect=IOError("Disk full")):
                with pytest.raises(IOError):
                    config_manager.save()

        for temp_file in temp_files:
            assert not os.path.exists(temp_file), f"Temp file {temp_file} was not cleaned up"

    def test_config_survives_write_interruption(self, config_path):
        """Test that original config survives write interruption"""
        config_manager = ConfigManager(str(config_path))
        config_manager.config.server.base_url = "http://original:4096"
        config_manager.save()

        original_content = config_path.read_text()

        config_manager.config.server.base_url = "http://new:4096"

        with patch("yaml.dump", side_effect=KeyboardInterrupt("Interrupted!")):
            with pytest.raises(KeyboardInterrupt):
                config_manager.save()

        assert config_path.exists()
        assert config_path.read_text() == original_content
        assert [p.name for p in config_path.parent.iterdir()] == ["config.yaml"]
