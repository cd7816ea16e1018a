"""Load, validate, and resolve ovrlrd configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ovrlrd.config.models import BridgeConfig

DEFAULT_CONFIG_NAME = "ovrlrd.yaml"

#: Environment variables that override file settings.
ENV_OVERRIDES = {
    "CLAUDE_PATH": "claude_path",
    "CLAUDE_WORK_DIR": "work_dir",
    "CLAUDE_ADDITIONAL_DIRS": "additional_dirs",
    "DB_PATH": "db_path",
    "LOG_PATH": "log_path",
}


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> BridgeConfig:
    """Load and validate configuration.

    Args:
        path: Explicit config file path. If None, uses ovrlrd.yaml in the
              current directory when present, otherwise defaults.

    Returns:
        A validated BridgeConfig instance.

    Raises:
        ConfigError: On missing file, bad YAML, or validation failure.
    """
    config_path = _resolve_path(path)
    raw: dict[str, Any] = {}
    if config_path is not None:
        raw = _read_yaml(config_path)
        _load_env(config_path.parent)
    else:
        _load_env(Path.cwd())
    _apply_env_overrides(raw)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path | None:
    if path is not None:
        resolved = Path(path)
        if not resolved.is_file():
            msg = f"Config file not found: {resolved}"
            raise ConfigError(msg)
        return resolved

    default = Path.cwd() / DEFAULT_CONFIG_NAME
    return default if default.is_file() else None


def _read_yaml(path: Path) -> dict[str, Any]:
    """Parse *path* into a settings mapping; an empty file means no settings."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if isinstance(data, dict):
        return data
    msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
    raise ConfigError(msg)


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env_overrides(raw: dict[str, Any]) -> None:
    for env_name, field in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            raw[field] = value


#: Friendlier wording for common pydantic error types.
_ERROR_HINTS = {
    "missing": "This field is required",
    "extra_forbidden": "Unknown setting",
}


def _validate(raw: dict[str, Any]) -> BridgeConfig:
    try:
        return BridgeConfig.model_validate(raw)
    except ValidationError as exc:
        lines = [
            f"  {_location(err['loc'])}: {_ERROR_HINTS.get(err['type'], err['msg'])}"
            for err in exc.errors()
        ]
        msg = "Config validation failed:\n" + "\n".join(lines)
        raise ConfigError(msg) from exc


def _location(loc: tuple[int | str, ...]) -> str:
    return ".".join(str(part) for part in loc) or "config"
