"""Centralised logging configuration for peerchat.

Provides:
- Rotating file handler (always DEBUG) at ~/.local/state/peerchat/app.log
- stderr stream handler (configurable level)
- Log export helpers for bug reports
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .paths import state_dir

LOG_DIR = state_dir()
LOG_FILE = LOG_DIR / "app.log"
LOG_FORMAT = "[%(name)s] %(message)s"
FILE_LOG_FORMAT = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
MAX_BYTES = 1_000_000  # 1 MB per file
BACKUP_COUNT = 3

VALID_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

_handlers: list[logging.Handler] = []
_stderr_handler: logging.StreamHandler | None = None
_configured = False


def _resolve_level(console_level: str | None) -> str:
    """``LOG_LEVEL`` env wins, then *console_level*, then INFO."""
    env_level = os.environ.get("LOG_LEVEL", "").upper()
    if env_level in VALID_LEVELS:
        return env_level
    if console_level and console_level.upper() in VALID_LEVELS:
        return console_level.upper()
    return "INFO"


def configure_logging(console_level: str | None = None, *, file_logging: bool = True) -> None:
    """Set up root logger with stderr and (optionally) rotating file handlers.

    Safe to call more than once; later calls are ignored until
    :func:`reset_logging` runs.
    """
    global _stderr_handler, _configured  # noqa: PLW0603

    if _configured:
        return

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    _stderr_handler = logging.StreamHandler(sys.stderr)
    _stderr_handler.setLevel(getattr(logging, _resolve_level(console_level)))
    _stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(_stderr_handler)
    _handlers.append(_stderr_handler)

    if file_logging:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(LOG_FILE, maxBytes=MAX_BYTES, backupCount=BACKUP_COUNT)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT))
        root.addHandler(file_handler)
        _handlers.append(file_handler)

    _configured = True


def reset_logging() -> None:
    """Detach and close the handlers installed by :func:`configure_logging`."""
    global _stderr_handler, _configured  # noqa: PLW0603

    root = logging.getLogger()
    for handler in _handlers:
        root.removeHandler(handler)
        handler.close()
    _handlers.clear()
    _stderr_handler = None
    _configured = False


def set_stderr_level(level_name: str) -> None:
    """Change the stderr handler log level at runtime."""
    if _stderr_handler is None:
        return
    upper = level_name.upper()
    if upper in VALID_LEVELS:
        _stderr_handler.setLevel(getattr(logging, upper))


def get_log_files_chronological() -> list[Path]:
    """Return all log files oldest-first (backup.3 -> backup.1 -> current)."""
    files = [
        LOG_FILE.with_suffix(f".log.{i}")
        for i in range(BACKUP_COUNT, 0, -1)
        if LOG_FILE.with_suffix(f".log.{i}").exists()
    ]
    if LOG_FILE.exists():
        files.append(LOG_FILE)
    return files


def export_logs_to_path(dest: str | Path) -> Path:
    """Concatenate all log files into *dest* (oldest first). Returns dest path."""
    dest = Path(dest)
    with dest.open("w") as out:
        for log_file in get_log_files_chronological():
            with log_file.open() as f:
                shutil.copyfileobj(f, out)
    return dest


def export_logs_to_stdout() -> None:
    for log_file in get_log_files_chronological():
        with log_file.open() as f:
            shutil.copyfileobj(f, sys.stdout)
