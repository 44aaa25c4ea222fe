from .enums import ContextKind, DuplicatePolicy, EventType, JoinState, PayloadType
from .models import (
    ChatMessage,
    ConnectionInfo,
    FileNotice,
    PendingOutboundFile,
    RoomContext,
    RoomMember,
    StagedInboundFile,
    TextMessage,
    is_node_id,
)
from .services import ChatService
from .types import (
    ChatEventDict,
    ClockCallback,
    ConnectionProtocol,
    EmitCallback,
    LoggerCallback,
    PayloadDict,
    TransportProviderProtocol,
)

__all__ = [
    "ChatEventDict",
    "ChatMessage",
    "ChatService",
    "ClockCallback",
    "ConnectionInfo",
    "ConnectionProtocol",
    "ContextKind",
    "DuplicatePolicy",
    "EmitCallback",
    "EventType",
    "FileNotice",
    "JoinState",
    "LoggerCallback",
    "PayloadDict",
    "PayloadType",
    "PendingOutboundFile",
    "RoomContext",
    "RoomMember",
    "StagedInboundFile",
    "TextMessage",
    "TransportProviderProtocol",
    "is_node_id",
]
