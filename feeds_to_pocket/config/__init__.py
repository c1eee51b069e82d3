"""Configuration package exports."""

from .loader import (
    ConfigAlreadyExistsError,
    ConfigError,
    ConfigIOError,
    ConfigMalformedError,
    ConfigNotFoundError,
    ConfigStore,
    load_config,
    save_config,
)
from .models import Configuration, Feed, SyncSettings

__all__ = [
    "ConfigAlreadyExistsError",
    "ConfigError",
    "ConfigIOError",
    "ConfigMalformedError",
    "ConfigNotFoundError",
    "ConfigStore",
    "Configuration",
    "Feed",
    "SyncSettings",
    "load_config",
    "save_config",
]
