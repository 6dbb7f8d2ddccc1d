"""
Configuration management for the event tracker store.

Values are resolved in order:
- Packaged defaults (config/default.yaml)
- An optional user YAML file
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "default.yaml"

_BUILTIN_DEFAULTS: Dict[str, Any] = {
    "storage": {
        "path": "eventtracker.db",
        "busy_timeout_s": 5.0,
        "synchronous": "FULL",
        "max_connections": 8,
    },
    "logging": {
        "level": "INFO",
        "format": "json",
        "output": "stdout",
    },
}


class Config:
    """Configuration manager for the event tracker store."""

    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.

        Args:
            config_file: Path to a YAML file merged over the defaults
        """
        self._config: Dict[str, Any] = self._deep_merge({}, _BUILTIN_DEFAULTS)
        self._load_default_config()

        if config_file:
            self._load_config_file(config_file)

        self._apply_env_overrides()

    def _load_default_config(self) -> None:
        if DEFAULT_CONFIG_PATH.exists():
            self._load_config_file(str(DEFAULT_CONFIG_PATH))

    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.

        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file must contain a mapping: {config_file}")
        self._config = self._deep_merge(self._config, file_config)

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        result = base.copy()
        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            elif isinstance(value, dict):
                result[key] = self._deep_merge({}, value)
            else:
                result[key] = value
        return result

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        if storage := os.getenv("EVENTTRACKER_STORAGE"):
            self.set("storage.path", storage)

        if busy_timeout := os.getenv("EVENTTRACKER_BUSY_TIMEOUT"):
            self.set("storage.busy_timeout_s", float(busy_timeout))

        if log_level := os.getenv("LOG_LEVEL"):
            self.set("logging.level", log_level)

        if log_format := os.getenv("LOG_FORMAT"):
            self.set("logging.format", log_format)

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., "storage.path")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        value = self._config
        for k in key.split("."):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any) -> None:
        """
        Set configuration value using dot notation.

        Args:
            key: Configuration key in dot notation
            value: Value to set
        """
        keys = key.split(".")
        config = self._config
        for k in keys[:-1]:
            if k not in config:
                config[k] = {}
            config = config[k]
        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        return self._deep_merge({}, self._config)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get the process-wide configuration instance.

    Args:
        config_file: Optional configuration file path, used on first call

    Returns:
        Configuration instance
    """
    global _config
    if _config is None:
        _config = Config(config_file)
    return _config


def reset_config() -> None:
    """Reset global configuration (mainly for testing)."""
    global _config
    _config = None
