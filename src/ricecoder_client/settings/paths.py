"""Platform-aware settings file locations.

- Windows user: %APPDATA%\\ricecoder\\settings.yaml
- Unix user: $XDG_CONFIG_HOME/ricecoder/ or ~/.config/ricecoder/ or ~/.ricecoder/
- Project: <project_root>/.ricecoder/settings.yaml
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

SETTINGS_FILENAME = "settings.yaml"
APP_NAME = "ricecoder"
SHORT_NAME = ".ricecoder"


def get_user_settings_path() -> Path | None:
    """Get the user-level settings path. The file may not exist."""
    if sys.platform == "win32":
        app_data = os.environ.get("APPDATA")
        if app_data:
            return Path(app_data) / APP_NAME / SETTINGS_FILENAME
        return None

    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / APP_NAME / SETTINGS_FILENAME

    home = Path.home()
    xdg_default = home / ".config"
    if xdg_default.exists():
        return xdg_default / APP_NAME / SETTINGS_FILENAME

    return home / SHORT_NAME / SETTINGS_FILENAME


def get_project_settings_path(project_root: str | Path) -> Path:
    """Get the project-level settings path. The file may not exist."""
    return Path(project_root) / SHORT_NAME / SETTINGS_FILENAME


def get_settings_paths(project_root: str | Path | None = None) -> list[Path]:
    """All settings paths in priority order, lowest first."""
    paths: list[Path] = []

    user_path = get_user_settings_path()
    if user_path:
        paths.append(user_path)

    if project_root:
        paths.append(get_project_settings_path(project_root))

    return paths
