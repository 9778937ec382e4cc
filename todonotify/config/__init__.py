"""
Configuration management for todonotify.
"""

from todonotify.config.config_loader import (
    DEFAULT_CONFIG,
    ConfigError,
    ConfigLoader,
    get_config_loader,
    reset_config_loader,
)

__all__ = [
    "DEFAULT_CONFIG",
    "ConfigError",
    "ConfigLoader",
    "get_config_loader",
    "reset_config_loader",
]
