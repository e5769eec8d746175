"""Configuration management for the user store service."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

from .storage import resolve_store_path

DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3333
DEFAULT_LOG_LEVEL = "INFO"

_KNOWN_KEYS = {"store_path", "host", "port", "log_level", "create_missing"}


def _parse_bool(value: object, name: str) -> bool:
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in {"1", "true", "yes", "on"}:
        return True
    if lowered in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"Invalid boolean value {value!r} for {name}")


def _parse_port(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"Invalid port {value!r} for {name}")
    try:
        port = int(str(value).strip())
    except ValueError as exc:
        raise ValueError(f"Invalid port {value!r} for {name}") from exc
    if not 1 <= port <= 65535:
        raise ValueError(f"Port {port} for {name} is out of range")
    return port


def _parse_log_level(value: object, name: str) -> str:
    level = str(value).strip().upper()
    if not isinstance(logging.getLevelName(level), int):
        raise ValueError(f"Unknown log level {value!r} for {name}")
    return level


def _resolve_path(raw: object, base_path: Path | None) -> Path:
    candidate = Path(str(raw)).expanduser()
    if not candidate.is_absolute() and base_path is not None:
        candidate = base_path / candidate
    return candidate.resolve(strict=False)


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the store and the HTTP service."""

    store_path: Path
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    log_level: str = DEFAULT_LOG_LEVEL
    create_missing: bool = True

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "Settings":
        """Create :class:`Settings` from raw configuration data."""

        unknown = set(data) - _KNOWN_KEYS
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        store_raw = data.get("store_path")
        store_path = (
            _resolve_path(store_raw, base_path) if store_raw else resolve_store_path(None)
        )
        return Settings(
            store_path=store_path,
            host=str(data.get("host", DEFAULT_HOST)),
            port=_parse_port(data.get("port", DEFAULT_PORT), "port"),
            log_level=_parse_log_level(data.get("log_level", DEFAULT_LOG_LEVEL), "log_level"),
            create_missing=_parse_bool(data.get("create_missing", True), "create_missing"),
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the YAML configuration file."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (Path(__file__).resolve().parent.parent / "config" / "userstore.yaml").resolve(strict=False)


def load_config_file(config_path: Path) -> Dict[str, object]:
    """Read a YAML configuration file; a missing file yields no settings."""

    if not config_path.exists():
        return {}
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration file {config_path} must contain a mapping")
    return raw


def _apply_environment(settings: Settings, environ: Mapping[str, str]) -> Settings:
    changes: Dict[str, object] = {}
    if environ.get("USERSTORE_PATH"):
        changes["store_path"] = resolve_store_path(environ["USERSTORE_PATH"])
    if environ.get("USERSTORE_HOST"):
        changes["host"] = environ["USERSTORE_HOST"].strip()
    if environ.get("USERSTORE_PORT"):
        changes["port"] = _parse_port(environ["USERSTORE_PORT"], "USERSTORE_PORT")
    if environ.get("USERSTORE_LOG_LEVEL"):
        changes["log_level"] = _parse_log_level(environ["USERSTORE_LOG_LEVEL"], "USERSTORE_LOG_LEVEL")
    if environ.get("USERSTORE_CREATE_MISSING"):
        changes["create_missing"] = _parse_bool(
            environ["USERSTORE_CREATE_MISSING"], "USERSTORE_CREATE_MISSING"
        )
    return replace(settings, **changes) if changes else settings


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Combine defaults, the YAML file and environment overrides."""

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERSTORE_CONFIG"))
    settings = Settings.from_dict(load_config_file(path), base_path=path.parent)
    return _apply_environment(settings, env)


__all__ = [
    "DEFAULT_HOST",
    "DEFAULT_LOG_LEVEL",
    "DEFAULT_PORT",
    "Settings",
    "load_config_file",
    "load_settings",
    "resolve_config_path",
]
