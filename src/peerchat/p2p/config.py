from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from peerchat.core.enums import DuplicatePolicy

from .paths import downloads_dir
from .settings import ChatSettings


@dataclass(slots=True)
class RuntimeChatConfig:
    join_timeout: float
    member_ttl: float
    duplicate_policy: DuplicatePolicy
    history_limit: int
    max_pending_files: int
    download_dir: Path

    def to_log_string(self) -> str:
        return (
            f"join_timeout={self.join_timeout} member_ttl={self.member_ttl} "
            f"duplicate_policy={self.duplicate_policy} history_limit={self.history_limit} "
            f"max_pending_files={self.max_pending_files} download_dir={self.download_dir}"
        )


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_policy(name: str, default: DuplicatePolicy) -> DuplicatePolicy:
    value = os.environ.get(name)
    if value is None:
        return default
    try:
        return DuplicatePolicy(value.strip().lower())
    except ValueError:
        return default


def _policy(value: str) -> DuplicatePolicy:
    try:
        return DuplicatePolicy(value)
    except ValueError:
        return DuplicatePolicy.REPLACE


def runtime_config_from_settings(settings: ChatSettings) -> RuntimeChatConfig:
    return RuntimeChatConfig(
        join_timeout=settings.join_timeout,
        member_ttl=settings.member_ttl,
        duplicate_policy=_policy(settings.duplicate_connection_policy),
        history_limit=settings.history_limit,
        max_pending_files=settings.max_pending_files,
        download_dir=Path(settings.download_dir) if settings.download_dir else downloads_dir(),
    )


def load_runtime_config(settings: ChatSettings | None = None) -> RuntimeChatConfig:
    """Build the runtime config from settings, letting ``PEERCHAT_*`` env vars override."""
    base = runtime_config_from_settings(settings or ChatSettings())
    download_override = os.environ.get("PEERCHAT_DOWNLOAD_DIR")
    return RuntimeChatConfig(
        join_timeout=_env_float("PEERCHAT_JOIN_TIMEOUT", base.join_timeout),
        member_ttl=_env_float("PEERCHAT_MEMBER_TTL", base.member_ttl),
        duplicate_policy=_env_policy("PEERCHAT_DUPLICATE_POLICY", base.duplicate_policy),
        history_limit=_env_int("PEERCHAT_HISTORY_LIMIT", base.history_limit),
        max_pending_files=_env_int("PEERCHAT_MAX_PENDING_FILES", base.max_pending_files),
        download_dir=Path(download_override) if download_override else base.download_dir,
    )
