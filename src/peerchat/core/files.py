"""File size and type helpers for queued and staged transfers."""

from __future__ import annotations

import mimetypes
from pathlib import Path

SIZE_UNITS = ("Bytes", "KB", "MB", "GB")
DEFAULT_MIME_TYPE = "application/octet-stream"


def format_file_size(size: int) -> str:
    """Format a byte count with a 1024 base, e.g. ``1536 -> "1.5 KB"``.

    Two decimals at most, trailing zeros dropped. Sizes beyond GB stay in GB.
    """
    if size <= 0:
        return "0 Bytes"
    value = float(size)
    index = 0
    while value >= 1024 and index < len(SIZE_UNITS) - 1:
        value /= 1024
        index += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {SIZE_UNITS[index]}"


def guess_mime_type(path: str | Path) -> str:
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed or DEFAULT_MIME_TYPE
