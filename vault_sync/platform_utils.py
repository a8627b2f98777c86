"""
Cross-platform utilities for Vault Sync.

Centralises the OS-detection logic used to locate the config
directory and the log file.

Supported platforms:
  - Windows 10/11
  - macOS 12+ (Monterey and newer)
  - Linux
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

# ---- platform flags ----------------------------------------------------

_IS_WINDOWS: bool = sys.platform == "win32"
_IS_MACOS: bool = sys.platform == "darwin"

_APP_DIR_NAME = "VaultSync"

# ---- directories -------------------------------------------------------


def get_config_dir() -> Path:
    """
    Return the application config directory, created if needed.

    - Windows : ``%APPDATA%\\VaultSync``
    - macOS   : ``~/Library/Application Support/VaultSync``
    - Linux   : ``$XDG_CONFIG_HOME/VaultSync`` (default ``~/.config``)
    """
    if _IS_WINDOWS:
        base = os.environ.get("APPDATA", str(Path.home()))
    elif _IS_MACOS:
        base = str(Path.home() / "Library" / "Application Support")
    else:
        base = os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))

    config_dir = Path(base) / _APP_DIR_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_log_path() -> Path:
    """Return the path to the log file (inside the config directory)."""
    return get_config_dir() / "vault_sync.log"
