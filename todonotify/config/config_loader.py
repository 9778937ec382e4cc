"""
ConfigLoader for YAML-based configuration with environment variable interpolation.
"""

import copy
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "server": {
        "base_url": "http://localhost:3300",
        "stream_path": "/api/notifications/stream",
        "settings_path": "/api/notifications/settings",
        "timeout": 10.0,
    },
    "stream": {
        "max_reconnect_attempts": 5,
        "base_reconnect_delay_ms": 1000,
    },
    "toasts": {
        "default_duration_ms": 5000,
        "max_toasts": None,
    },
    "native": {
        "enabled": True,
        "permission": "default",
        "auto_close_ms": 5000,
        "ntfy": {
            "url": "https://ntfy.sh",
            "topic": "",
            "token": "",
            "click_base_url": "",
        },
    },
    "logging": {
        "level": "INFO",
        "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        "json": False,
    },
}


class ConfigError(Exception):
    """Exception raised for configuration errors."""

    pass


class ConfigLoader:
    """
    Loads and manages YAML configuration with environment variable interpolation.

    Values from the file are deep-merged over ``DEFAULT_CONFIG`` so every
    section is always present.
    """

    def __init__(self, config_path: Optional[Union[str, Path]] = None):
        """
        Initialize the configuration loader.

        Args:
            config_path: Optional explicit path to config.yaml
        """
        self.env = os.getenv("TODONOTIFY_ENV", "").strip().lower() or None
        self.config_path = self._find_config_path(config_path)
        self.config = self._load_config()
        env_label = self.env or "production"
        logger.info(f"ConfigLoader: env={env_label}, config={self.config_path}")

    def _find_config_path(self, config_path: Optional[Union[str, Path]] = None) -> Path:
        """
        Find the configuration file path.

        Looks in the following locations (in order):
        1. Explicit path provided to constructor
        2. Path specified by the TODONOTIFY_CONFIG environment variable
        3. Current working directory
        4. User's config directory (~/.config/todonotify/)
        5. Project root directory

        When ``TODONOTIFY_ENV`` is set (e.g. ``dev``), each directory is first
        checked for ``config.{env}.yaml`` before falling back to ``config.yaml``.

        Returns:
            Path to the configuration file. The path may not exist, in which
            case the defaults are used.
        """
        if config_path:
            path = Path(config_path)
            if path.exists():
                return path
            logger.warning(f"Specified config path does not exist: {path}")

        env_path = os.getenv("TODONOTIFY_CONFIG")
        if env_path:
            path = Path(env_path)
            if path.exists():
                return path
            logger.warning(
                f"Config path from environment variable does not exist: {path}"
            )

        candidates: List[str] = []
        if self.env:
            candidates.append(f"config.{self.env}.yaml")
        candidates.append("config.yaml")

        search_dirs = [
            Path.cwd(),
            Path.home() / ".config" / "todonotify",
            Path(__file__).parent.parent.parent,
        ]
        for directory in search_dirs:
            for name in candidates:
                candidate = directory / name
                if candidate.exists():
                    return candidate

        project_root = Path(__file__).parent.parent.parent
        example_path = project_root / "examples" / "config.yaml.example"
        if example_path.exists():
            logger.warning(
                f"No config.yaml found. You can copy the example from {example_path} "
                f"to {project_root / 'config.yaml'} and customize it."
            )
        return project_root / "config.yaml"

    def _interpolate_env_vars(self, value: Any) -> Any:
        """
        Recursively interpolate environment variables in configuration values.

        Replaces "${ENV_VAR}" or "$ENV_VAR" with the value of the environment
        variable. Unset variables are left in place.
        """
        if isinstance(value, str):
            pattern = r"\${([^}]+)}|\$([a-zA-Z0-9_]+)"

            def replace_env_var(match):
                env_var = match.group(1) or match.group(2)
                return os.environ.get(env_var, f"${{{env_var}}}")

            return re.sub(pattern, replace_env_var, value)
        elif isinstance(value, list):
            return [self._interpolate_env_vars(item) for item in value]
        elif isinstance(value, dict):
            return {k: self._interpolate_env_vars(v) for k, v in value.items()}
        else:
            return value

    def _load_config(self) -> Dict[str, Any]:
        """
        Load the configuration file and merge it over the defaults.

        Raises:
            ConfigError: If the configuration file cannot be parsed
        """
        if not self.config_path.exists():
            logger.info(
                f"Configuration file not found: {self.config_path}. Using default configuration."
            )
            return copy.deepcopy(DEFAULT_CONFIG)

        try:
            with open(self.config_path, "r") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            error_msg = f"Error parsing {self.config_path.name}: {e}"
            logger.error(error_msg)
            raise ConfigError(error_msg) from e
        except OSError as e:
            error_msg = f"Error loading configuration: {e}"
            logger.error(error_msg)
            raise ConfigError(error_msg) from e

        if not isinstance(loaded, dict):
            raise ConfigError(
                f"Configuration root must be a mapping, got {type(loaded).__name__}"
            )

        loaded = self._interpolate_env_vars(loaded)
        return self._deep_merge(DEFAULT_CONFIG, loaded)

    def _deep_merge(
        self, base: Dict[str, Any], overlay: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Deep-merge *overlay* into *base* (overlay wins on leaf conflicts)."""
        merged = copy.deepcopy(base)
        for key, value in overlay.items():
            if (
                key in merged
                and isinstance(merged[key], dict)
                and isinstance(value, dict)
            ):
                merged[key] = self._deep_merge(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get_config(self) -> Dict[str, Any]:
        """Get the full configuration."""
        return self.config

    def get_server_config(self) -> Dict[str, Any]:
        """Get the server section (base URL, endpoint paths, timeout)."""
        return self.config.get("server", {})

    def get_stream_config(self) -> Dict[str, Any]:
        """Get the push stream reconnection settings."""
        return self.config.get("stream", {})

    def get_toasts_config(self) -> Dict[str, Any]:
        """Get the toast queue settings."""
        return self.config.get("toasts", {})

    def get_native_config(self) -> Dict[str, Any]:
        """Get the native notification settings."""
        return self.config.get("native", {})

    def get_ntfy_config(self) -> Dict[str, Any]:
        """Get the ntfy backend settings for native notifications."""
        return self.get_native_config().get("ntfy", {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get the logging configuration."""
        return self.config.get("logging", {})


_config_loader: Optional[ConfigLoader] = None


def get_config_loader() -> ConfigLoader:
    """Return the shared ConfigLoader, creating it on first use."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def reset_config_loader() -> None:
    """Drop the shared loader so the next call re-reads the config file."""
    global _config_loader
    _config_loader = None
