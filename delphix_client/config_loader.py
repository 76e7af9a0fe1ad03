"""Config Loader - Loads session settings from YAML.

Optional convenience for scripts and the CLI; the library itself is
configured through ClientConfig and the DelphixSession setters only.

Example file:
    server: delphix.example.com
    api_user: delphix
    api_password: ${DELPHIX_PASSWORD}
    api_version: "1.4.3"
    timeout: 30
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from delphix_client.models import ClientConfig


class ConfigError(Exception):
    """Raised when configuration loading fails."""


_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_client_config(config_path: Path) -> ClientConfig:
    """Load a ClientConfig from YAML with ${ENV_VAR} substitution."""
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if raw_config is None:
        raw_config = {}
    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    try:
        return ClientConfig.model_validate(raw_config)
    except ValidationError as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def merge_overrides(config: ClientConfig, **overrides: Any) -> ClientConfig:
    """Return a copy of config with every non-None override applied.

    Raises:
        ConfigError: If an override fails validation.
    """
    values = config.model_dump()
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return ClientConfig.model_validate(values)
    except ValidationError as e:
        raise ConfigError(f"Invalid setting: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_PATTERN.sub(replacer, s)
