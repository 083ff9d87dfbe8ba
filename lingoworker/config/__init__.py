"""Configuration module for lingoworker."""

from lingoworker.config.loader import get_config_path, load_settings, save_settings
from lingoworker.config.schema import Settings
from lingoworker.config.access import CONFIG_ENV, clear_settings_cache, get_settings, resolve_config_path

__all__ = [
    "CONFIG_ENV",
    "Settings",
    "load_settings",
    "save_settings",
    "get_config_path",
    "resolve_config_path",
    "get_settings",
    "clear_settings_cache",
]
