"""Platform-aware path utilities for Chancery.

Provides a single source of truth for config and settings paths so
Windows entry points can map to APPDATA while Unix-like platforms
continue to use XDG-style defaults.
"""
from __future__ import annotations

import os
import platform
from pathlib import Path


def _is_windows() -> bool:
    return platform.system().lower().startswith("windows")


def get_config_root() -> Path:
    """Return the base configuration directory.

    Environment overrides (CHANCERY_CONFIG_DIR) take precedence. On Windows we
    align with %APPDATA%\\Chancery; otherwise $XDG_CONFIG_HOME/chancery or
    ~/.config/chancery is used.
    """

    override = os.environ.get("CHANCERY_CONFIG_DIR")
    if override:
        return Path(override).expanduser()

    if _is_windows():
        appdata = os.environ.get("APPDATA")
        if appdata:
            return Path(appdata) / "Chancery"

    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg).expanduser() / "chancery"
    return Path.home() / ".config" / "chancery"


def get_settings_path() -> Path:
    """Return the settings file holding defaults, presets, and generator choice."""

    override = os.environ.get("CHANCERY_SETTINGS_FILE")
    if override:
        return Path(override).expanduser()
    return get_config_root() / "settings.yaml"


def get_bundle_path() -> Path:
    """Return where the latest composed prompt bundle is published."""

    override = os.environ.get("CHANCERY_BUNDLE_PATH")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".cache" / "chancery" / "prompt_bundle.json"
