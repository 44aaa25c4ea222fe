from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Callable, Protocol

from peerchat.core.models import (
    ChatMessage,
    ConnectionInfo,
    PendingOutboundFile,
    RoomContext,
    StagedInboundFile,
    TextMessage,
)
from peerchat.core.types import ChatEventDict

if TYPE_CHECKING:
    from peerchat.p2p.settings import ChatSettings


class ChatService(Protocol):
    def set_event_notify(self, notify_fn: Callable[[], None]) -> None: ...

    def start(self) -> None: ...

    def shutdown(self) -> None: ...

    def get_identity(self) -> str: ...

    def get_context(self) -> RoomContext: ...

    def open_chat(self, target: str) -> None:
        """Connect to a NodeId privately, or join the room of that name."""
        ...

    def connect_peer(self, peer_id: str) -> None: ...

    def join_room(self, room: str) -> None: ...

    def create_room(self, room: str) -> None:
        """Host a room: become reachable under its name and switch to it."""
        ...

    def leave_room(self) -> None: ...

    def list_connections(self) -> list[ConnectionInfo]: ...

    def list_room_members(self, room: str | None = None) -> list[str]: ...

    def send_message(self, content: str) -> TextMessage | None: ...

    def list_messages(self, limit: int = 50) -> list[ChatMessage]: ...

    def enqueue_file(self, pending: PendingOutboundFile) -> bool:
        """Queue a file for sending. Returns False when the queue is full."""
        ...

    def enqueue_path(self, path: str | Path) -> bool: ...

    def remove_pending(self, index: int) -> bool: ...

    def list_pending_files(self) -> list[PendingOutboundFile]: ...

    def flush_files(self) -> int:
        """Send every queued file and clear the queue. Returns the count flushed."""
        ...

    def list_staged_files(self) -> list[StagedInboundFile]: ...

    def accept_file(self, file_id: str) -> Path | None: ...

    def reject_file(self, file_id: str) -> bool: ...

    def poll_events(self, limit: int = 50) -> list[ChatEventDict]: ...

    def list_recent_events(self, limit: int = 50) -> list[ChatEventDict]: ...

    def get_settings(self) -> ChatSettings: ...

    def update_settings(self, settings: ChatSettings) -> None: ...
