from __future__ import annotations

import os
from pathlib import Path

APP_NAME = "peerchat"


def xdg_data_home() -> Path:
    """Return XDG_DATA_HOME or default ~/.local/share"""
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


def xdg_state_home() -> Path:
    """Return XDG_STATE_HOME or default ~/.local/state"""
    return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state"))


def data_dir() -> Path:
    """Return the app data directory (XDG_DATA_HOME/peerchat)"""
    return xdg_data_home() / APP_NAME


def state_dir() -> Path:
    """Return the app state directory (XDG_STATE_HOME/peerchat)"""
    return xdg_state_home() / APP_NAME


def db_path() -> Path:
    """Return the path to the SQLite database."""
    return state_dir() / "peerchat.db"


def downloads_dir() -> Path:
    """Return the default directory accepted files are written to."""
    return data_dir() / "downloads"
