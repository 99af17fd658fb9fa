"""Configuration loading and management.

Lookup order: ``--config``/explicit path, ``$CTXENGINE_CONFIG``, ``./ctxengine.yaml``,
``~/.ctxengine/config.yaml``. ``CTXENGINE_*`` environment variables override
individual keys from the file.
"""

import os
from pathlib import Path
from typing import Optional

import yaml

from .config_models import EngineConfig

# Default config dict
DEFAULT_CONFIG = EngineConfig().to_dict()

CONFIG_ENV = "CTXENGINE_CONFIG"

# env var -> (section, key)
ENV_OVERRIDES = {
    "CTXENGINE_DB_PATH": ("paths", "db_path"),
    "CTXENGINE_LOG_LEVEL": ("logging", "level"),
    "CTXENGINE_PREFERENCE": ("resources", "preference"),
}


def find_config() -> Optional[Path]:
    """Find config file in standard locations."""
    explicit = os.getenv(CONFIG_ENV)
    if explicit:
        return Path(explicit).expanduser()
    locations = [
        Path.cwd() / "ctxengine.yaml",
        Path.home() / ".ctxengine" / "config.yaml",
    ]
    for loc in locations:
        if loc.exists():
            return loc
    return None


def load_config(config_path: Optional[Path] = None) -> dict:
    """Load configuration from file or defaults.

    Returns a dict; use load_config_model() for typed access.
    """
    return load_config_model(config_path).to_dict()


def _env_overrides() -> dict:
    overrides: dict = {}
    for var, (section, key) in ENV_OVERRIDES.items():
        value = os.getenv(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config_model(config_path: Optional[Path] = None) -> EngineConfig:
    """Load configuration as Pydantic model with validation."""
    file_config = {}

    path = config_path or find_config()
    if path and path.exists():
        try:
            with open(path) as f:
                file_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}")
        if not isinstance(file_config, dict):
            raise ValueError(f"Config file {path} must contain a mapping")

    try:
        return EngineConfig.from_dict(_deep_merge(file_config, _env_overrides()))
    except Exception as e:
        raise ValueError(f"Config validation failed: {e}")


def get_paths(config: dict) -> dict:
    """Get expanded paths from config."""
    paths = config.get("paths", DEFAULT_CONFIG["paths"])
    return {
        "db_path": Path(paths["db_path"]).expanduser(),
        "log_file": Path(paths.get("log_file", "~/.ctxengine/engine.log")).expanduser(),
    }
