"""Configuration management for cf-model.

Configuration lives in a single directory:

1. settings.json - Machine-specific tool settings
   - chunk_size: batch progress granularity (provider x scenario rows)
   - synonyms: path to the specialty synonym map (optional, if not colocated)

2. synonyms.yaml - Specialty synonym map (provider specialty -> market specialty)
   - Maintained by hand or via 'cf-model synonyms set'

Config directory resolution:
1. CF_MODEL_CONFIG_PATH environment variable (if set)
2. $XDG_CONFIG_HOME/cf-model/ (~/.config/cf-model/ fallback)

Synonym map resolution:
1. settings.json "synonyms" key (if set)
2. synonyms.yaml in the config directory
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


APP_NAME = "cf-model"
SETTINGS_FILENAME = "settings.json"
SYNONYMS_FILENAME = "synonyms.yaml"
DEFAULT_CHUNK_SIZE = 200


class ConfigError(Exception):
    """Raised when a configuration file exists but cannot be used."""
    pass


def get_config_dir() -> Path:
    """Get the configuration directory path.

    Resolution order:
    1. CF_MODEL_CONFIG_PATH environment variable
    2. ~/.config/cf-model/ (XDG_CONFIG_HOME)

    Returns:
        Path to the configuration directory
    """
    env_path = os.environ.get("CF_MODEL_CONFIG_PATH")
    if env_path:
        return Path(env_path)

    xdg_config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    return Path(xdg_config_home) / APP_NAME


def get_settings_path() -> Path:
    """Get the path to settings.json (may not exist yet)."""
    return get_config_dir() / SETTINGS_FILENAME


def load_settings() -> dict:
    """Load settings from settings.json.

    Returns:
        Settings dictionary (empty dict if file doesn't exist)

    Raises:
        ConfigError: If the file is not a JSON object
    """
    settings_file = get_settings_path()

    if not settings_file.exists():
        return {}

    with open(settings_file, "r") as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {settings_file}: {e}")

    if not isinstance(data, dict):
        raise ConfigError(f"{settings_file} must contain a JSON object")
    return data


def save_settings(settings: dict) -> Path:
    """Save settings to settings.json.

    Args:
        settings: Settings dictionary to save

    Returns:
        Path to the saved settings file
    """
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)

    settings_file = config_dir / SETTINGS_FILENAME

    with open(settings_file, "w") as f:
        json.dump(settings, f, indent=2)

    return settings_file


def get_setting(key: str, default: Any = None) -> Any:
    """Get a setting value from settings.json.

    Args:
        key: Setting key (e.g., "chunk_size", "synonyms")
        default: Default value if key not found

    Returns:
        Setting value or default
    """
    return load_settings().get(key, default)


def set_setting(key: str, value: Any) -> Path:
    """Set a setting value in settings.json.

    Returns:
        Path to the saved settings file
    """
    settings = load_settings()
    settings[key] = value
    return save_settings(settings)


def get_chunk_size() -> int:
    """Batch chunk size from settings, falling back to DEFAULT_CHUNK_SIZE."""
    value = get_setting("chunk_size", DEFAULT_CHUNK_SIZE)
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ConfigError(f"chunk_size must be a positive integer, got: {value!r}")
    return value


def get_synonyms_path() -> Path:
    """Get the path to the synonym map.

    Resolution order:
    1. settings.json "synonyms" key (if set)
    2. synonyms.yaml in config directory
    """
    custom = get_setting("synonyms")
    if custom:
        return Path(custom).expanduser()
    return get_config_dir() / SYNONYMS_FILENAME


def load_synonym_map(path: Optional[Path] = None) -> Dict[str, str]:
    """Load the specialty synonym map.

    Args:
        path: Optional explicit path (uses the resolved default if not given)

    Returns:
        Mapping of provider specialty -> market specialty (empty if no file)

    Raises:
        ConfigError: If the file is not a flat string mapping
    """
    if path is None:
        path = get_synonyms_path()

    if not path.exists():
        return {}

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ConfigError(f"Synonym map must be a mapping: {path}")

    synonyms = {}
    for key, value in data.items():
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"Synonym for '{key}' must be a non-empty string in {path}")
        synonyms[str(key)] = value
    return synonyms


def save_synonym_map(synonyms: Dict[str, str], path: Optional[Path] = None) -> Path:
    """Save the specialty synonym map.

    Returns:
        Path to the saved synonym file
    """
    if path is None:
        path = get_synonyms_path()

    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        yaml.dump(dict(sorted(synonyms.items())), f, default_flow_style=False, sort_keys=False)

    return path
