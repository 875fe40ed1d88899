"""TOML configuration loading for shardbak."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

DEFAULT_CONFIG_FILENAME = "shardbak.toml"
DEFAULT_ROOT = "~/shardbak"


class ConfigError(RuntimeError):
    """Raised when a configuration file cannot be parsed or validated."""


def _expand_path(raw: str | os.PathLike[str] | Path, *, base_dir: Path) -> Path:
    """Return an absolute ``Path`` by expanding env vars and user segments."""

    text = str(raw)
    expanded = Path(os.path.expandvars(text)).expanduser()
    if expanded.is_absolute():
        return expanded.resolve(strict=False)
    return (base_dir / expanded).resolve(strict=False)


class Settings(BaseModel):
    """Global configuration options."""

    model_config = ConfigDict(frozen=True)

    root: Path
    staging_root: Path | None = None
    log_level: str = Field(default="INFO")

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level '{value}'")
        return level

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any], *, base_dir: Path) -> "Settings":
        root = _expand_path(raw.get("root", DEFAULT_ROOT), base_dir=base_dir)
        staging_raw = raw.get("staging_root")
        staging = _expand_path(staging_raw, base_dir=base_dir) if staging_raw is not None else None
        try:
            return cls(root=root, staging_root=staging, log_level=raw.get("log_level", "INFO"))
        except ValidationError as exc:
            raise ConfigError(f"Invalid [settings] table: {exc}") from exc


class Config(BaseModel):
    """Fully parsed configuration file."""

    model_config = ConfigDict(frozen=True)

    config_path: Path | None
    settings: Settings

    @classmethod
    def for_root(cls, root: Path, *, staging_root: Path | None = None) -> "Config":
        """Build a configuration without a file, e.g. for library use."""

        return cls(config_path=None, settings=Settings(root=root, staging_root=staging_root))


def load_config(path: Path | None = None) -> Config:
    """Load and validate a configuration file.

    Args:
        path: Optional path to the TOML file or to the directory holding it.
            Defaults to ``shardbak.toml`` in the current working directory.
    """

    config_path = _resolve_config_path(path)
    base_dir = config_path.parent

    try:
        with config_path.open("rb") as handle:
            data = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Cannot parse '{config_path}': {exc}") from exc

    settings_section = data.get("settings")
    if settings_section is None or "root" not in settings_section:
        raise ConfigError("Configuration must define 'root' in the [settings] table")

    settings = Settings.from_raw(settings_section, base_dir=base_dir)
    return Config(config_path=config_path, settings=settings)


def _resolve_config_path(path: Path | None) -> Path:
    if path is None:
        path = Path.cwd() / DEFAULT_CONFIG_FILENAME
    else:
        path = Path(path)

    if not path.exists():
        raise ConfigError(f"Configuration file '{path}' does not exist")
    if path.is_dir():
        candidate = path / DEFAULT_CONFIG_FILENAME
        if not candidate.exists():
            raise ConfigError(f"Expected to find '{DEFAULT_CONFIG_FILENAME}' inside '{path}', but none was located")
        path = candidate

    return path.resolve(strict=False)
