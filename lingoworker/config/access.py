"""Settings lookup shared by the CLI commands and the worker entry point.

The config file is picked from an explicit path, then ``LINGOWORKER_CONFIG``,
then ``~/.lingoworker/config.json``. Parsed settings are kept per resolved
file so repeated commands in one process read the file once.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from loguru import logger

from lingoworker.config.loader import get_config_path, load_settings
from lingoworker.config.schema import Settings

CONFIG_ENV = "LINGOWORKER_CONFIG"

_lock = threading.RLock()
_settings_by_path: dict[Path, Settings] = {}


def resolve_config_path(config_path: Path | str | None = None) -> Path:
    """Absolute config file location for ``config_path`` (or the environment/default)."""
    if config_path is None:
        from_env = os.environ.get(CONFIG_ENV)
        config_path = Path(from_env) if from_env else get_config_path()
    return Path(config_path).expanduser().resolve()


def get_settings(*, config_path: Path | str | None = None, force_reload: bool = False) -> Settings:
    """Settings for the resolved config file; ``force_reload`` re-reads it."""
    path = resolve_config_path(config_path)
    with _lock:
        settings = None if force_reload else _settings_by_path.get(path)
        if settings is None:
            settings = load_settings(path)
            logger.debug("Loaded settings from {}", path)
            _settings_by_path[path] = settings
        return settings


def clear_settings_cache(*, config_path: Path | str | None = None) -> None:
    """Forget one file's settings, or all of them."""
    with _lock:
        if config_path is None:
            _settings_by_path.clear()
        else:
            _settings_by_path.pop(resolve_config_path(config_path), None)
