"""
Configuration loading with multi-layer merging.

Implements the configuration precedence chain:
    defaults < user config < project config < env vars
"""

import json
import logging
import os
from pathlib import Path
from typing import Any

from .models import ClipperConfig

logger = logging.getLogger(__name__)

# Global cache to avoid reloading config multiple times per process
_config_cache: ClipperConfig | None = None


def get_xdg_config_home() -> Path:
    """
    Get XDG config home directory.

    Returns:
        Path to config directory (defaults to ~/.config)
    """
    if xdg_home := os.environ.get("XDG_CONFIG_HOME"):
        return Path(xdg_home)
    return Path.home() / ".config"


def get_xdg_data_home() -> Path:
    """
    Get XDG data home directory.

    Returns:
        Path to data directory (defaults to ~/.local/share)
    """
    if xdg_data := os.environ.get("XDG_DATA_HOME"):
        return Path(xdg_data)
    return Path.home() / ".local" / "share"


def get_user_config_path() -> Path:
    """
    Get path to user configuration file.

    Returns:
        Path to ~/.config/webclipper/config.json (or XDG equivalent)
    """
    return get_xdg_config_home() / "webclipper" / "config.json"


def get_project_config_path(cwd: Path | None = None) -> Path:
    """
    Get path to project configuration file.

    Args:
        cwd: Working directory to search from (defaults to current directory)

    Returns:
        Path to .webclipper.json in the working directory
    """
    if cwd is None:
        cwd = Path.cwd()
    return cwd / ".webclipper.json"


def get_data_dir(config: ClipperConfig) -> Path:
    """
    Resolve the directory that holds persisted state.

    Args:
        config: Loaded configuration

    Returns:
        Configured data directory, or $XDG_DATA_HOME/webclipper
    """
    if config.storage.data_dir is not None:
        return Path(config.storage.data_dir).expanduser()
    return get_xdg_data_home() / "webclipper"


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """
    Deep merge two dictionaries.

    Values in `override` take precedence over values in `base`.
    Nested dicts are merged, not replaced.

    Example:
        >>> deep_merge({"a": 1, "b": {"x": 10}}, {"b": {"y": 2}})
        {'a': 1, 'b': {'x': 10, 'y': 2}}
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def load_json_file(path: Path) -> dict[str, Any] | None:
    """
    Load a JSON file, returning None if it doesn't exist or is invalid.

    Args:
        path: Path to JSON file

    Returns:
        Parsed JSON as dict, or None if file doesn't exist or can't be parsed
    """
    if not path.exists():
        return None

    try:
        with path.open() as f:
            data = json.load(f)
            if isinstance(data, dict):
                return data
            return None
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to parse config at %s: %s", path, e)
        return None


def _section(result: dict[str, Any], name: str) -> dict[str, Any]:
    if not isinstance(result.get(name), dict):
        result[name] = {}
    section: dict[str, Any] = result[name]
    return section


def apply_env_overrides(config_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Apply environment variable overrides to configuration.

    Env vars have the highest precedence and override all config files.

    Supported env vars:
        WEBCLIPPER_API_URL - overrides api.default_url
        WEBCLIPPER_CAPTURE_TIMEOUT - overrides capture.timeout_seconds
        WEBCLIPPER_DATA_DIR - overrides storage.data_dir
        WEBCLIPPER_LOG_LEVEL - overrides logging.level

    Args:
        config_dict: Configuration dictionary to override

    Returns:
        Configuration dictionary with env var overrides applied
    """
    result = config_dict.copy()

    if api_url := os.environ.get("WEBCLIPPER_API_URL"):
        _section(result, "api")["default_url"] = api_url

    if timeout_str := os.environ.get("WEBCLIPPER_CAPTURE_TIMEOUT"):
        try:
            timeout = float(timeout_str)
            if timeout <= 0:
                logger.warning(
                    "WEBCLIPPER_CAPTURE_TIMEOUT must be > 0, got %s, ignoring", timeout_str
                )
            else:
                _section(result, "capture")["timeout_seconds"] = timeout
        except ValueError:
            logger.warning("Invalid WEBCLIPPER_CAPTURE_TIMEOUT value '%s', ignoring", timeout_str)

    if data_dir := os.environ.get("WEBCLIPPER_DATA_DIR"):
        _section(result, "storage")["data_dir"] = data_dir

    if level := os.environ.get("WEBCLIPPER_LOG_LEVEL"):
        _section(result, "logging")["level"] = level

    return result


def get_default_config() -> dict[str, Any]:
    """
    Get hardcoded default configuration.

    Returns:
        Dictionary with default configuration values
    """
    return {
        "api": {"default_url": "http://localhost:4000", "api_key_prefix": "ak_"},
        "capture": {"timeout_seconds": 120.0},
    }


def load_config(project_dir: Path | None = None, use_cache: bool = True) -> ClipperConfig:
    """
    Load configuration with multi-layer merging.

    Configuration precedence (highest to lowest):
        1. Environment variables (WEBCLIPPER_*)
        2. Project config (.webclipper.json)
        3. User config (~/.config/webclipper/config.json)
        4. Hardcoded defaults

    Args:
        project_dir: Directory to load .webclipper.json from (defaults to cwd)
        use_cache: If True, return cached config from previous load

    Returns:
        Validated ClipperConfig instance

    Raises:
        ValidationError: If the merged config fails Pydantic validation
    """
    global _config_cache

    if use_cache and _config_cache is not None:
        return _config_cache

    merged = get_default_config()

    if user_config := load_json_file(get_user_config_path()):
        merged = deep_merge(merged, user_config)

    if project_config := load_json_file(get_project_config_path(project_dir)):
        merged = deep_merge(merged, project_config)

    merged = apply_env_overrides(merged)

    config = ClipperConfig(**merged)
    _config_cache = config

    return config


def clear_cache() -> None:
    """
    Clear the cached configuration.

    Useful for testing or when config files change during execution.
    """
    global _config_cache
    _config_cache = None
