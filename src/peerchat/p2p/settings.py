from __future__ import annotations

from dataclasses import dataclass, replace

from peerchat.core.enums import DuplicatePolicy

MAX_HISTORY = 50
MAX_PENDING_FILES = 5
JOIN_TIMEOUT_SECONDS = 5.0


@dataclass(slots=True)
class ChatSettings:
    # Logging
    log_level: str = "INFO"

    # Rooms
    join_timeout: float = JOIN_TIMEOUT_SECONDS
    member_ttl: float = 0.0  # Seconds without an announcement before a member is evicted; 0 = never

    # Connections
    duplicate_connection_policy: str = DuplicatePolicy.REPLACE.value

    # History
    history_limit: int = MAX_HISTORY

    # Files
    max_pending_files: int = MAX_PENDING_FILES  # Enqueue beyond this is rejected
    download_dir: str = ""  # Empty = XDG data dir

    def clone(self) -> "ChatSettings":
        return replace(self)
