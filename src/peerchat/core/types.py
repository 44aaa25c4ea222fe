"""Type definitions for peerchat.

This module documents the wire payload shapes and provides Protocol stubs
for the transport provider so the node can be typed and tested without a
concrete transport installed.
"""

from __future__ import annotations

from typing import Any, Callable, Protocol

# =============================================================================
# Wire payloads
# =============================================================================


class TextPayload:
    """``{"type": "message", ...}``"""

    type: str
    content: str
    sender: str
    timestamp: str  # ISO 8601


class FilePayload:
    """``{"type": "file", ...}``

    ``content`` is raw bytes in memory; JSON transports carry it base64 encoded.
    """

    type: str
    fileName: str
    fileType: str
    content: bytes
    size: int
    sender: str
    timestamp: str  # ISO 8601


class RoomPayload:
    """``room-members``, ``room-join`` and ``room-leave`` share this shape.

    ``timestamp`` (epoch milliseconds) is set on join and leave announcements.
    """

    type: str
    members: list[str]
    roomId: str
    timestamp: int


# Payloads travel as plain dicts; the classes above document their structure.
PayloadDict = dict[str, Any]


class ChatEvent:
    """Event structure emitted by the session and the client.

    Events always have 'type' and 'data' keys.
    """

    type: str
    data: dict[str, Any]


ChatEventDict = dict[str, Any]


# =============================================================================
# Protocol stubs for the transport provider
# =============================================================================
# The provider negotiates channels and delivers ordered, reliable payloads
# between two identified nodes. Anything satisfying these protocols can be
# handed to TransportSession.


class ConnectionProtocol(Protocol):
    """One bidirectional channel to a remote node.

    Events: ``open`` (no args), ``data`` (payload), ``close`` (no args),
    ``error`` (reason string).
    """

    peer: str
    metadata: dict[str, Any]

    @property
    def open(self) -> bool:
        """True once the channel is ready to send and until it closes."""
        ...

    def on(self, event: str, callback: Callable[..., None]) -> None:
        """Register a callback for a connection event."""
        ...

    def send(self, payload: PayloadDict) -> None:
        """Fire-and-forget send; no delivery acknowledgment."""
        ...

    def close(self) -> None:
        ...


class TransportProviderProtocol(Protocol):
    """Connection negotiation for the local node."""

    local_id: str

    def connect(self, remote_id: str, metadata: dict[str, Any] | None = None) -> ConnectionProtocol:
        """Initiate an outbound channel.

        Never raises for unreachable peers; failure arrives as an ``error`` event.
        """
        ...

    def on_connection(self, callback: Callable[[ConnectionProtocol], None]) -> None:
        """Register the callback for connections initiated by remote peers."""
        ...

    def claim_alias(self, name: str) -> None:
        """Make this node reachable under an additional name (room hosting)."""
        ...

    def destroy(self) -> None:
        ...


# Type alias for emit callback used throughout the codebase
EmitCallback = Callable[[ChatEventDict], None]

# Type alias for logger callback
LoggerCallback = Callable[[str], None]

# Clock returning monotonic seconds
ClockCallback = Callable[[], float]
