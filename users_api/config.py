"""Configuration management for the users API service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

CONFIG_PATH_ENV = "USERS_API_CONFIG"

# Environment variable -> settings field.
_ENV_KEYS: Dict[str, str] = {
    "HOST": "host",
    "PORT": "port",
    "MYSQL_HOST": "db_host",
    "MYSQL_USER": "db_user",
    "MYSQL_PASSWORD": "db_password",
    "MYSQL_DATABASE": "db_name",
    "MYSQL_PORT": "db_port",
    "DATABASE_URL": "database_url",
    "MAX_BODY_BYTES": "max_body_bytes",
    "LOG_LEVEL": "log_level",
}

_INT_FIELDS = {"port", "db_port", "max_body_bytes"}


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the HTTP server and the MySQL connection."""

    host: str = "0.0.0.0"
    port: int = 3000
    db_host: str = "mysql"
    db_user: str = "root"
    db_password: str = "password"
    db_name: str = "k8s_demo"
    db_port: int = 3306
    database_url: Optional[str] = None
    max_body_bytes: int = 100 * 1024
    log_level: str = "INFO"

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from raw values keyed by field name."""
        known = set(Settings.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        values: Dict[str, object] = {}
        for key, raw in data.items():
            if raw is None:
                continue
            if key in _INT_FIELDS:
                try:
                    values[key] = int(str(raw).strip())
                except ValueError as exc:
                    raise ValueError(f"Configuration value for '{key}' must be an integer") from exc
            else:
                values[key] = str(raw)

        settings = Settings(**values)  # type: ignore[arg-type]
        if settings.max_body_bytes <= 0:
            raise ValueError("Configuration value for 'max_body_bytes' must be positive")
        return settings


def _settings_from_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ValueError("Configuration file must contain a mapping of settings")
    return {str(key): value for key, value in raw.items()}


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    """Resolve the optional YAML configuration file path."""
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def load_settings(
    environ: Optional[Mapping[str, str]] = None,
    *,
    config_path: Optional[Path] = None,
) -> Settings:
    """Build settings from an optional YAML file overlaid with environment variables."""
    env = os.environ if environ is None else environ

    path = config_path or resolve_config_path(env.get(CONFIG_PATH_ENV))
    data: Dict[str, object] = _settings_from_file(path) if path is not None else {}

    for env_key, field_name in _ENV_KEYS.items():
        value = env.get(env_key)
        if value is not None and value != "":
            data[field_name] = value

    return Settings.from_dict(data)


__all__ = ["Settings", "load_settings", "resolve_config_path", "CONFIG_PATH_ENV"]
