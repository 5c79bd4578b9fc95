"""
Configuration models and loading.

This module provides Pydantic models for webclipper configuration
with multi-layer merging: defaults < user < project < env vars.
"""

from .loader import (
    clear_cache,
    get_data_dir,
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    get_xdg_data_home,
    load_config,
)
from .models import (
    DEFAULT_API_URL,
    ApiConfig,
    CaptureConfig,
    ClipperConfig,
    LoggingConfig,
    StorageConfig,
)

__all__ = [
    # Models
    "DEFAULT_API_URL",
    "ApiConfig",
    "CaptureConfig",
    "ClipperConfig",
    "LoggingConfig",
    "StorageConfig",
    # Loader functions
    "clear_cache",
    "get_data_dir",
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "get_xdg_data_home",
    "load_config",
]
