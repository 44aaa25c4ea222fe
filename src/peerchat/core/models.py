import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from .enums import ContextKind
from .time import utc_now

NODE_ID_PATTERN = re.compile(r"^id\d{5}$")


def is_node_id(value: object) -> bool:
    return isinstance(value, str) and NODE_ID_PATTERN.match(value) is not None


@dataclass(slots=True, frozen=True)
class TextMessage:
    content: str
    sender: str
    timestamp: datetime = field(default_factory=utc_now)


@dataclass(slots=True, frozen=True)
class FileNotice:
    file_name: str
    size: int
    sender: str
    timestamp: datetime = field(default_factory=utc_now)


ChatMessage = TextMessage | FileNotice


@dataclass(slots=True, frozen=True)
class RoomContext:
    """The local node's current chat target. At most one is active at a time."""

    kind: ContextKind = ContextKind.NONE
    name: str = ""

    @classmethod
    def none(cls) -> "RoomContext":
        return cls()

    @classmethod
    def private(cls, peer_id: str) -> "RoomContext":
        return cls(kind=ContextKind.PRIVATE, name=peer_id)

    @classmethod
    def room(cls, name: str) -> "RoomContext":
        return cls(kind=ContextKind.ROOM, name=name)

    @property
    def room_name(self) -> str | None:
        return self.name if self.kind == ContextKind.ROOM else None


@dataclass(slots=True)
class PendingOutboundFile:
    name: str
    size: int
    mime_type: str = "application/octet-stream"
    raw_bytes: bytes | None = None
    source_path: Path | None = None  # Read lazily at flush time when raw_bytes is None


@dataclass(slots=True)
class StagedInboundFile:
    file_id: str
    name: str
    size: int
    mime_type: str
    raw_bytes: bytes
    sender: str
    received_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class ConnectionInfo:
    remote_id: str
    is_open: bool
    is_discovery: bool = False
    room_id: str | None = None
    opened_at: datetime = field(default_factory=utc_now)


@dataclass(slots=True)
class RoomMember:
    node_id: str
    last_seen: float  # Monotonic clock reading of the last announcement
