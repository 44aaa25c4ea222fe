"""Enums for payload types, event types, chat contexts and join states."""

from enum import StrEnum


class PayloadType(StrEnum):
    """Wire payload discriminators carried in the ``type`` field.

        message      - Chat text
        file         - File offer with its full byte content
        room-members - Membership snapshot sent in reply to a discovery connection
        room-join    - Joiner announcing itself to the room
        room-leave   - Member leaving the room
    """

    MESSAGE = "message"
    FILE = "file"
    ROOM_MEMBERS = "room-members"
    ROOM_JOIN = "room-join"
    ROOM_LEAVE = "room-leave"


class EventType(StrEnum):
    """Event types flowing through the session queue and out of the client."""

    # Session lifecycle
    SESSION_STARTED = "session_started"
    SESSION_STOPPED = "session_stopped"

    # Transport events (queued by the event bridge)
    INBOUND_CONNECTION = "inbound_connection"
    CONNECTION_OPEN = "connection_open"
    CONNECTION_DATA = "connection_data"
    CONNECTION_CLOSE = "connection_close"
    CONNECTION_ERROR = "connection_error"
    FILE_READ = "file_read"

    # Client events
    CONTEXT_CHANGED = "context_changed"
    ROOM_JOIN_FAILED = "room_join_failed"
    MEMBERS_UPDATED = "members_updated"
    MESSAGE_SENT = "message_sent"
    MESSAGE_RECEIVED = "message_received"
    FILE_QUEUED = "file_queued"
    FILE_SENT = "file_sent"
    FILE_STAGED = "file_staged"
    FILE_ACCEPTED = "file_accepted"
    FILE_REJECTED = "file_rejected"
    SETTINGS_UPDATED = "settings_updated"
    NOTICE = "notice"


class ContextKind(StrEnum):
    NONE = "none"
    PRIVATE = "private"
    ROOM = "room"


class JoinState(StrEnum):
    """Lifecycle of a single room-join attempt.

    IDLE -> CONNECTING -> OPEN -> JOINED, or IDLE -> CONNECTING -> FAILED.
    """

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    JOINED = "joined"
    FAILED = "failed"


class DuplicatePolicy(StrEnum):
    """What the connection registry does when a remote opens a second channel."""

    REPLACE = "replace"  # close and drop the older connection
    REJECT = "reject"  # close the newcomer
