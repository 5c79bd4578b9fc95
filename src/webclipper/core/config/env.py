"""Environment file loading.

webclipper reads `WEBCLIPPER_*` settings from the process environment. Values
may also come from .env files:

  os.environ (pre-existing) > project .env > user .env

A .env file never replaces a variable that was already exported in the shell.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Iterable

from dotenv import dotenv_values

from webclipper.core.config.loader import get_xdg_config_home


def read_env_file(path: Path) -> dict[str, str]:
    """Parse one .env file, skipping keys without values."""
    if not path.exists():
        return {}
    return {
        str(k): str(v)
        for k, v in dotenv_values(path).items()
        if k is not None and v is not None
    }


def load_layered_env(
    *,
    project_dir: Path | None = None,
    user_env_paths: Iterable[Path] | None = None,
    project_env_paths: Iterable[Path] | None = None,
) -> list[str]:
    """Populate os.environ from user and project .env files.

    Args:
        project_dir: base directory for project env paths (defaults to cwd)
        user_env_paths: explicit user env file paths
        project_env_paths: explicit project env file paths

    Returns:
        Names of the variables that were set by this call
    """
    if project_dir is None:
        project_dir = Path.cwd()
    if user_env_paths is None:
        user_env_paths = [get_xdg_config_home() / "webclipper" / ".env"]
    if project_env_paths is None:
        project_env_paths = [project_dir / ".env"]

    from_files: set[str] = set()
    for layer in (user_env_paths, project_env_paths):
        for path in layer:
            for key, value in read_env_file(Path(path)).items():
                # later layers may replace earlier files, never the shell
                if key not in os.environ or key in from_files:
                    os.environ[key] = value
                    from_files.add(key)
    return sorted(from_files)
