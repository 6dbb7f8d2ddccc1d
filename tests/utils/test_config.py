"""Tests for configuration and logging setup."""

import pytest
import structlog

from eventtracker.utils.config import Config, get_config, reset_config
from eventtracker.utils.logging import configure_from, get_logger


class TestConfig:
    """Test Config."""

    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        for name in ("EVENTTRACKER_STORAGE", "EVENTTRACKER_BUSY_TIMEOUT", "LOG_LEVEL", "LOG_FORMAT"):
            monkeypatch.delenv(name, raising=False)
        reset_config()
        yield
        reset_config()

    def test_defaults(self):
        config = Config()

        assert config.get("storage.path") == "eventtracker.db"
        assert config.get("storage.synchronous") == "FULL"
        assert config.get("storage.max_connections") == 8
        assert config.get("logging.level") == "INFO"
        assert config.get("missing.key", 42) == 42

    def test_file_overrides(self, tmp_path):
        """Test a user file is merged over the defaults."""
        path = tmp_path / "config.yaml"
        path.write_text("storage:\n  path: /data/tracker.db\n")

        config = Config(str(path))

        assert config.get("storage.path") == "/data/tracker.db"
        assert config.get("storage.busy_timeout_s") == 5.0

    def test_file_must_be_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="must contain a mapping"):
            Config(str(path))

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("EVENTTRACKER_STORAGE", "/tmp/env.db")
        monkeypatch.setenv("EVENTTRACKER_BUSY_TIMEOUT", "0.5")
        monkeypatch.setenv("LOG_LEVEL", "DEBUG")

        config = Config()

        assert config.get("storage.path") == "/tmp/env.db"
        assert config.get("storage.busy_timeout_s") == 0.5
        assert config.get("logging.level") == "DEBUG"

    def test_set_nested(self):
        config = Config()
        config.set("storage.extra.flag", True)

        assert config.get("storage.extra.flag") is True
        assert config.to_dict()["storage"]["extra"] == {"flag": True}

    def test_global_config(self):
        assert get_config() is get_config()


class TestLogging:
    """Test logging configuration."""

    def test_configure_from_config(self, monkeypatch):
        monkeypatch.setenv("LOG_FORMAT", "console")
        config = Config()

        configure_from(config)
        logger = get_logger("eventtracker.test")
        logger.info("configured", stream_id="")

        assert structlog.is_configured()
