import os
from pathlib import Path

"""Global constants and path definitions for git-autosync.

This module defines the filesystem layout (adhering to XDG standards where applicable),
application identifiers, and git defaults shared across the application.
"""

# --- Identity ---
APP_NAME = "git-autosync"
"""str: The human-readable application name (also the logger name)."""

REMOTE_NAME = "origin"
"""str: The remote used for push and pull when none is configured."""

# --- Paths ---
_XDG_STATE = os.environ.get("XDG_STATE_HOME")
_BASE_STATE = Path(_XDG_STATE) if _XDG_STATE else Path.home() / ".local/state"

STATE_DIR = _BASE_STATE / "git-autosync"
"""Path: The directory for runtime state data (logs)."""

LOG_FILE = STATE_DIR / "autosync.log"
"""Path: The file path for the watcher logs."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/git-autosync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = CONFIG_DIR / "config.toml"
"""Path: The main configuration file path."""

LOCAL_CONFIG_NAME = "autosync.toml"
"""str: Per-repository configuration file name."""

PYPROJECT_SECTION = "tool.autosync"
"""str: Section of pyproject.toml read when no local config file exists."""

# --- Git / Logic Constants ---
UNMERGED_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})
"""frozenset[str]: Porcelain XY status pairs that denote an unresolved merge."""

CONFLICT_MESSAGE = "Remote repository contains conflicting changes."
"""str: Prompt shown when a push is rejected and a force push can be offered."""
