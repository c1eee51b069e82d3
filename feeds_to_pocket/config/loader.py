"""Configuration file IO with crash-safe saves."""

from __future__ import annotations

import json
import os
import shutil
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import ValidationError

from .models import Configuration

JSON_EXTENSIONS = (".json",)
NEW_SUFFIX = ".new"


class ConfigError(Exception):
    """Base class for failures of the configuration layer."""

    def __init__(self, message: str, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class ConfigNotFoundError(ConfigError):
    """The configuration file does not exist."""


class ConfigAlreadyExistsError(ConfigError):
    """``init`` was asked to create a file that is already there."""


class ConfigMalformedError(ConfigError):
    """The file exists but cannot be parsed into a configuration."""


class ConfigIOError(ConfigError):
    """Reading or writing the configuration file failed."""


def _is_json(path: Path) -> bool:
    return path.suffix.lower() in JSON_EXTENSIONS


def _read_file(path: Path) -> dict:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigNotFoundError(f"configuration file not found: {path}", path) from exc
    except OSError as exc:
        raise ConfigIOError(f"failed to read configuration from {path}: {exc}", path) from exc
    try:
        if _is_json(path):
            data = json.loads(text) if text.strip() else {}
        else:
            data = yaml.safe_load(text) or {}
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise ConfigMalformedError(f"failed to parse configuration from {path}: {exc}", path) from exc
    if not isinstance(data, dict):
        raise ConfigMalformedError(f"configuration file must contain a mapping: {path}", path)
    return data


def _dump(path: Path, payload: dict[str, Any]) -> str:
    if _is_json(path):
        return json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    return yaml.safe_dump(payload, allow_unicode=True, sort_keys=False)


def _write_atomic(path: Path, content: str) -> None:
    """Write ``content`` next to ``path`` and swap it into place.

    The previous file stays intact until ``os.replace`` succeeds.
    """

    temp_path = path.with_name(path.name + NEW_SUFFIX)
    try:
        with temp_path.open("w", encoding="utf-8") as stream:
            stream.write(content)
            stream.flush()
            os.fsync(stream.fileno())
        if path.exists():
            shutil.copymode(path, temp_path)
        os.replace(temp_path, path)
    except OSError as exc:
        try:
            temp_path.unlink()
        except FileNotFoundError:
            pass
        raise ConfigIOError(f"failed to save configuration to {path}: {exc}", path) from exc


def load_config(path: Path) -> Configuration:
    payload = _read_file(path)
    try:
        return Configuration.model_validate(payload)
    except ValidationError as exc:
        raise ConfigMalformedError(f"invalid configuration in {path}:\n{exc}", path) from exc


def save_config(path: Path, config: Configuration) -> None:
    _write_atomic(path, _dump(path, config.to_payload()))


class ConfigStore:
    """Load and persist the configuration file handed over by the CLI."""

    def __init__(self, path: Path | str, logger: structlog.BoundLogger | None = None) -> None:
        self.path = Path(path).expanduser()
        self.logger = logger or structlog.get_logger("feeds_to_pocket.config").bind(
            component="config"
        )

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Configuration:
        config = load_config(self.path)
        self.logger.debug("config_loaded", path=str(self.path), feeds=len(config.feeds))
        return config

    def save(self, config: Configuration) -> None:
        save_config(self.path, config)
        self.logger.debug("config_saved", path=str(self.path), feeds=len(config.feeds))

    def init(self) -> Configuration:
        """Create an empty configuration file; refuses to overwrite one."""

        if self.path.exists():
            raise ConfigAlreadyExistsError(
                f"configuration file already exists: {self.path}", self.path
            )
        if not self.path.parent.exists():
            raise ConfigIOError(f"directory does not exist: {self.path.parent}", self.path)
        config = Configuration()
        self.save(config)
        return config


__all__ = [
    "ConfigAlreadyExistsError",
    "ConfigError",
    "ConfigIOError",
    "ConfigMalformedError",
    "ConfigNotFoundError",
    "ConfigStore",
    "load_config",
    "save_config",
]
