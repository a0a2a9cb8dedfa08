"""
Configuration management for topicscope.

Handles loading and merging configuration from:
- Built-in defaults
- Default configuration file (config/default.yaml)
- A user-supplied YAML file
- Environment variables
"""

import os
from pathlib import Path
from typing import Any, Callable, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "logging": {"level": "INFO", "format": "json"},
    "fetch": {
        "default_count": 10,
        "default_policy": "newest",
        "scan_multiplier": 100,
        "min_scan": 1000,
    },
    "live": {"buffer_capacity": 100},
    "decode": {"indent": 4},
}

# env var -> (config key, converter)
ENV_OVERRIDES: Dict[str, tuple[str, Callable[[str], Any]]] = {
    "TOPICSCOPE_LOG_LEVEL": ("logging.level", str),
    "TOPICSCOPE_LOG_FORMAT": ("logging.format", str),
    "TOPICSCOPE_LIVE_BUFFER_CAPACITY": ("live.buffer_capacity", int),
    "TOPICSCOPE_FETCH_DEFAULT_COUNT": ("fetch.default_count", int),
    "TOPICSCOPE_FETCH_DEFAULT_POLICY": ("fetch.default_policy", str),
}


class ConfigError(ValueError):
    """Raised when a configuration value cannot be applied."""
    pass


class Config:
    """Configuration manager for topicscope."""
    
    def __init__(self, config_file: Optional[str] = None):
        """
        Initialize configuration.
        
        Args:
            config_file: Path to a YAML file merged over the defaults.
        """
        self._config: Dict[str, Any] = self._deep_merge({}, DEFAULTS)
        self._load_default_config()
        
        if config_file:
            self._load_config_file(config_file)
        
        self._apply_env_overrides()
    
    def _load_default_config(self) -> None:
        default_config_path = Path(__file__).parent.parent.parent / "config" / "default.yaml"
        if default_config_path.exists():
            self._load_config_file(str(default_config_path))
    
    def _load_config_file(self, config_file: str) -> None:
        """
        Load configuration from YAML file.
        
        Args:
            config_file: Path to YAML configuration file
        """
        with open(config_file, "r") as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ConfigError(f"Configuration root must be a mapping: {config_file}")
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
        for env_var, (key, convert) in ENV_OVERRIDES.items():
            raw = os.getenv(env_var)
            if raw is None or not raw.strip():
                continue
            try:
                self.set(key, convert(raw.strip()))
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}: {raw!r}") from e
    
    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.
        
        Args:
            key: Configuration key in dot notation (e.g., "live.buffer_capacity")
            default: Default value if key not found
        
        Returns:
            Configuration value
        """
        value: Any = self._config
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
        """Get entire configuration as dictionary."""
        return self._deep_merge({}, self._config)


_config: Optional[Config] = None


def get_config(config_file: Optional[str] = None) -> Config:
    """
    Get global configuration instance.
    
    Args:
        config_file: Optional configuration file path (used on first call only)
    
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
