from __future__ import annotations

import logging
import random
import sqlite3
import time
from pathlib import Path
from typing import Any, Callable

from peerchat.core.enums import EventType, PayloadType
from peerchat.core.files import guess_mime_type
from peerchat.core.models import (
    ChatMessage,
    ConnectionInfo,
    FileNotice,
    PendingOutboundFile,
    RoomContext,
    StagedInboundFile,
    TextMessage,
    is_node_id,
)
from peerchat.core.services import ChatService
from peerchat.core.time import to_iso
from peerchat.core.types import (
    ChatEventDict,
    ClockCallback,
    ConnectionProtocol,
    PayloadDict,
    TransportProviderProtocol,
)

from .codec import (
    build_file_payload,
    build_room_join,
    build_room_leave,
    build_room_members,
    build_text_payload,
    parse_room_payload,
    parse_text_payload,
)
from .config import load_runtime_config
from .db import open_db
from .history import ChatHistoryStore
from .identity import get_or_create_identity
from .kv_store import KeyValueStore
from .logging_setup import set_stderr_level
from .membership import RoomJoinAttempt, RoomMembership
from .registry import ConnectionRegistry
from .router import MessageRouter
from .session import TransportSession
from .settings import ChatSettings
from .settings_store import SettingsStore
from .transfers import FileSink, FileTransferManager, read_content, save_to_directory

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str], TransportProviderProtocol]

EVENT_HISTORY_LIMIT = 500

# Roles of connections we are waiting on, keyed by id(conn).
_ROLE_PRIVATE = "private"
_ROLE_DISCOVERY = "discovery"
_ROLE_INBOUND = "inbound"


class ChatClient(ChatService):
    """Peer-to-peer chat node: one object owning every piece of chat state.

    Transport callbacks only queue events; all state changes happen inside
    :meth:`poll_events` (or a direct user call) on the caller's thread.
    """

    def __init__(
        self,
        transport_factory: TransportFactory,
        *,
        db: sqlite3.Connection | None = None,
        settings_store: SettingsStore | None = None,
        clock: ClockCallback = time.monotonic,
        file_sink: FileSink | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._event_notify: Callable[[], None] | None = None
        self._event_buffer: list[ChatEventDict] = []
        self._event_history: list[ChatEventDict] = []
        self._clock = clock
        self._db = db if db is not None else open_db()
        self._kv = KeyValueStore(self._db)
        self._settings_store = settings_store or SettingsStore(self._db)
        self._settings = self._settings_store.load()
        self._config = load_runtime_config(self._settings)
        logger.debug("runtime config %s", self._config.to_log_string())

        self._node_id = get_or_create_identity(self._kv, rng)
        self._session = TransportSession(transport_factory(self._node_id), logger=self._log)
        self._registry = ConnectionRegistry(self._config.duplicate_policy)
        self._membership = RoomMembership(self._node_id, clock=clock)
        self._history = ChatHistoryStore(self._kv, limit=self._config.history_limit)
        self._history.load_persisted()
        self._transfers = FileTransferManager(
            max_pending=self._config.max_pending_files,
            sink=file_sink or self._save_download,
        )
        self._router = MessageRouter()
        self._router.register(PayloadType.MESSAGE, self._on_text)
        self._router.register(PayloadType.FILE, self._on_file)
        self._router.register(PayloadType.ROOM_MEMBERS, self._on_room_announcement)
        self._router.register(PayloadType.ROOM_JOIN, self._on_room_announcement)
        self._router.register(PayloadType.ROOM_LEAVE, self._on_room_leave)

        self._context = RoomContext.none()
        self._join: RoomJoinAttempt | None = None
        self._pending_private: str | None = None
        self._roles: dict[int, tuple[ConnectionProtocol, str]] = {}

    def _log(self, message: str) -> None:
        logger.debug(message)

    def _save_download(self, staged: StagedInboundFile) -> Path:
        return save_to_directory(self._config.download_dir)(staged)

    # -- lifecycle ---------------------------------------------------------

    def set_event_notify(self, notify_fn: Callable[[], None]) -> None:
        self._event_notify = notify_fn
        self._session.set_event_notify(notify_fn)

    def start(self) -> None:
        if self._session.started:
            return
        self._session.start()
        logger.info("node %s started", self._node_id)

    def shutdown(self) -> None:
        if not self._session.started:
            return
        self._set_context(RoomContext.none())
        self._registry.close_all()
        self._roles.clear()
        self._join = None
        self._pending_private = None
        self._session.stop()
        logger.info("node %s stopped", self._node_id)
        self._append_event({"type": EventType.SESSION_STOPPED, "data": {"node_id": self._node_id}})

    def get_identity(self) -> str:
        return self._node_id

    def get_context(self) -> RoomContext:
        return self._context

    # -- chat targets ------------------------------------------------------

    def open_chat(self, target: str) -> None:
        target = target.strip()
        if not target:
            return
        if is_node_id(target):
            self.connect_peer(target)
        else:
            self.join_room(target)

    def connect_peer(self, peer_id: str) -> None:
        if peer_id == self._node_id:
            self._notice("warning", "Cannot open a chat with yourself.")
            return
        self.start()
        self._abandon_join("superseded")
        conn = self._dial(peer_id)
        if conn is None:
            return
        self._roles[id(conn)] = (conn, _ROLE_PRIVATE)
        self._pending_private = peer_id

    def join_room(self, room: str) -> None:
        room = room.strip()
        if not room:
            return
        self.start()
        self._abandon_join("superseded")
        self._pending_private = None
        conn = self._dial(room, {"isDiscovery": True, "roomId": room})
        if conn is None:
            self._append_event(
                {
                    "type": EventType.ROOM_JOIN_FAILED,
                    "data": {"room": room, "reason": "connect failed"},
                }
            )
            return
        self._roles[id(conn)] = (conn, _ROLE_DISCOVERY)
        self._join = RoomJoinAttempt(
            room=room, deadline=self._clock() + self._config.join_timeout, connection=conn
        )
        logger.info("joining room %s (timeout %.1fs)", room, self._config.join_timeout)

    def create_room(self, room: str) -> None:
        room = room.strip()
        if not room:
            return
        self.start()
        try:
            self._session.claim_alias(room)
        except ValueError as exc:
            self._notice("error", f"Could not create room {room}: {exc}")
            return
        self._abandon_join("superseded")
        self._pending_private = None
        self._membership.merge(room, [])
        self._set_context(RoomContext.room(room))
        logger.info("hosting room %s", room)

    def leave_room(self) -> None:
        if self._context.room_name is None:
            return
        self._set_context(RoomContext.none())

    def _dial(
        self, remote_id: str, metadata: dict[str, Any] | None = None
    ) -> ConnectionProtocol | None:
        try:
            return self._session.connect(remote_id, metadata)
        except Exception as exc:  # noqa: BLE001
            logger.warning("connect to %s failed: %s", remote_id, exc)
            self._notice("error", f"Connection to {remote_id} failed: {exc}")
            return None

    def _abandon_join(self, reason: str) -> None:
        if self._join is not None and self._join.pending:
            logger.debug("abandoning join of %s: %s", self._join.room, reason)
            self._join.mark_failed(reason)
        self._join = None

    def _set_context(self, context: RoomContext) -> None:
        previous = self._context
        if previous == context:
            return
        if previous.room_name is not None:
            sent = self._registry.broadcast(build_room_leave(self._node_id, previous.room_name))
            logger.debug("left room %s (announced to %d)", previous.room_name, sent)
        self._context = context
        self._append_event(
            {
                "type": EventType.CONTEXT_CHANGED,
                "data": {"kind": str(context.kind), "name": context.name},
            }
        )

    # -- connections and members -------------------------------------------

    def list_connections(self) -> list[ConnectionInfo]:
        return self._registry.snapshot()

    def list_room_members(self, room: str | None = None) -> list[str]:
        room = room if room is not None else self._context.room_name
        if room is None:
            return []
        return self._membership.members(room)

    # -- messages ----------------------------------------------------------

    def send_message(self, content: str) -> TextMessage | None:
        if not content.strip():
            return None
        message = TextMessage(content=content, sender=self._node_id)
        recipients = self._registry.broadcast(build_text_payload(message))
        self._history.append(message)
        self._append_event(
            {
                "type": EventType.MESSAGE_SENT,
                "data": {
                    "content": content,
                    "recipients": recipients,
                    "at": to_iso(message.timestamp),
                },
            }
        )
        return message

    def list_messages(self, limit: int = 50) -> list[ChatMessage]:
        return self._history.recent(limit)

    # -- outbound files ----------------------------------------------------

    def enqueue_file(self, pending: PendingOutboundFile) -> bool:
        if not self._transfers.enqueue(pending):
            self._notice(
                "warning",
                f"File queue is full ({self._transfers.max_pending} max); "
                f"{pending.name} was not added.",
            )
            return False
        self._append_event(
            {
                "type": EventType.FILE_QUEUED,
                "data": {
                    "name": pending.name,
                    "size": pending.size,
                    "queued": len(self._transfers.pending()),
                },
            }
        )
        return True

    def enqueue_path(self, path: str | Path) -> bool:
        source = Path(path)
        try:
            size = source.stat().st_size
        except OSError as exc:
            self._notice("error", f"Cannot read {source}: {exc.strerror or exc}")
            return False
        return self.enqueue_file(
            PendingOutboundFile(
                name=source.name,
                size=size,
                mime_type=guess_mime_type(source),
                source_path=source,
            )
        )

    def remove_pending(self, index: int) -> bool:
        return self._transfers.remove_pending(index)

    def list_pending_files(self) -> list[PendingOutboundFile]:
        return self._transfers.pending()

    def flush_files(self) -> int:
        """Read every queued file and hand it to the event loop for broadcast.

        The queue is emptied up front; files that cannot be read are dropped
        with a notice.
        """
        batch = self._transfers.take_pending()
        for pending in batch:
            try:
                content = read_content(pending)
            except OSError as exc:
                self._notice("error", f"Could not read {pending.name}: {exc}")
                continue
            self._session.emit(
                {"type": EventType.FILE_READ, "data": {"file": pending, "content": content}}
            )
        if batch:
            logger.info("flushed %d queued file(s)", len(batch))
        return len(batch)

    # -- inbound files -----------------------------------------------------

    def list_staged_files(self) -> list[StagedInboundFile]:
        return self._transfers.staged()

    def accept_file(self, file_id: str) -> Path | None:
        try:
            result = self._transfers.accept(file_id)
        except OSError as exc:
            self._notice("error", f"Could not save file: {exc}")
            return None
        if result is None:
            return None
        staged, location = result
        self._append_event(
            {
                "type": EventType.FILE_ACCEPTED,
                "data": {
                    "file_id": staged.file_id,
                    "name": staged.name,
                    "path": str(location) if location is not None else None,
                },
            }
        )
        return location

    def reject_file(self, file_id: str) -> bool:
        staged = self._transfers.reject(file_id)
        if staged is None:
            return False
        self._append_event(
            {
                "type": EventType.FILE_REJECTED,
                "data": {"file_id": staged.file_id, "name": staged.name},
            }
        )
        return True

    # -- event loop --------------------------------------------------------

    def poll_events(self, limit: int = 50) -> list[ChatEventDict]:
        """Process queued transport events and return the user-facing events they produced."""
        for event in self._session.drain_events(max_items=limit):
            try:
                self._process_event(event)
            except (RuntimeError, OSError) as exc:
                logger.warning("event %s failed: %s", event.get("type"), exc)
        # An open still waiting in the queue beats the deadline.
        if self._session.pending_events() == 0:
            self._check_join_deadline()
        self._prune_members()

        events = list(self._event_buffer)
        self._event_buffer.clear()
        return events

    def list_recent_events(self, limit: int = 50) -> list[ChatEventDict]:
        if limit <= 0:
            return []
        return self._event_history[-limit:]

    def _process_event(self, event: ChatEventDict) -> None:
        event_type = event.get("type")
        data: dict[str, Any] = event.get("data") or {}
        conn = data.get("connection")

        if event_type == EventType.SESSION_STARTED:
            self._append_event(event)
        elif event_type == EventType.INBOUND_CONNECTION:
            self._roles[id(conn)] = (conn, _ROLE_INBOUND)
        elif event_type == EventType.CONNECTION_OPEN:
            self._on_open(conn)
        elif event_type == EventType.CONNECTION_DATA:
            payload = data.get("payload")
            self._mark_seen(conn, payload)
            self._router.route(conn, payload)
        elif event_type == EventType.CONNECTION_CLOSE:
            self._on_close(conn, None)
        elif event_type == EventType.CONNECTION_ERROR:
            self._on_close(conn, data.get("reason") or "unknown error")
        elif event_type == EventType.FILE_READ:
            self._send_file(data["file"], data["content"])
        else:
            logger.debug("ignoring event %s", event_type)

    def _mark_seen(self, conn: ConnectionProtocol, payload: object) -> None:
        # A discovery channel's peer is the room alias; the payload names the real sender.
        self._membership.touch(conn.peer)
        sender = payload.get("sender") if isinstance(payload, dict) else None
        if isinstance(sender, str) and sender != conn.peer:
            self._membership.touch(sender)

    def _on_open(self, conn: ConnectionProtocol) -> None:
        _, role = self._roles.pop(id(conn), (conn, _ROLE_INBOUND))
        if role == _ROLE_DISCOVERY:
            self._on_discovery_open(conn)
        elif role == _ROLE_PRIVATE:
            self._registry.register(conn)
            if self._pending_private == conn.peer:
                self._pending_private = None
                self._set_context(RoomContext.private(conn.peer))
        else:
            self._on_inbound_open(conn)

    def _on_discovery_open(self, conn: ConnectionProtocol) -> None:
        attempt = self._join
        if attempt is None or attempt.connection is not conn or not attempt.mark_open():
            # The join already failed or was superseded; keep the channel anyway.
            logger.info("late discovery connection to %s registered", conn.peer)
            self._registry.register(conn)
            return
        self._set_context(RoomContext.room(attempt.room))
        self._registry.register(conn)
        self._registry.broadcast(build_room_join(self._node_id, attempt.room))
        attempt.mark_joined()
        self._join = None
        logger.info("joined room %s via %s", attempt.room, conn.peer)

    def _on_inbound_open(self, conn: ConnectionProtocol) -> None:
        if not self._registry.register(conn):
            return
        metadata = conn.metadata or {}
        if not metadata.get("isDiscovery"):
            return
        room = metadata.get("roomId")
        if not isinstance(room, str) or not room:
            room = self._context.room_name
        if room is None:
            logger.debug("discovery from %s names no room", conn.peer)
            return
        added = self._membership.merge(room, [conn.peer])
        if added:
            self._members_updated(room, added=added)
        reply = build_room_members(self._membership.members(room) + [self._node_id], room)
        try:
            conn.send(reply)
        except Exception as exc:  # noqa: BLE001
            logger.warning("room-members reply to %s failed: %s", conn.peer, exc)

    def _on_close(self, conn: ConnectionProtocol, reason: str | None) -> None:
        self._roles.pop(id(conn), None)
        self._registry.unregister(conn)
        attempt = self._join
        if attempt is not None and attempt.connection is conn:
            if attempt.mark_failed(reason or "connection closed"):
                self._join = None
                self._join_failed(attempt)
                return
        if self._pending_private == conn.peer and reason is not None:
            self._pending_private = None
        if reason is not None:
            self._notice("error", f"Connection to {conn.peer} failed: {reason}")

    def _check_join_deadline(self) -> None:
        attempt = self._join
        if attempt is None or not attempt.expired(self._clock()):
            return
        attempt.mark_failed("timed out")
        # The discovery channel keeps its role so a late open registers as a straggler;
        # the entry goes away on its close or error event, or at shutdown.
        self._join = None
        self._join_failed(attempt)

    def _join_failed(self, attempt: RoomJoinAttempt) -> None:
        logger.warning("joining room %s failed: %s", attempt.room, attempt.failure)
        self._append_event(
            {
                "type": EventType.ROOM_JOIN_FAILED,
                "data": {"room": attempt.room, "reason": attempt.failure},
            }
        )
        self._notice("error", f"Could not join room {attempt.room}: {attempt.failure}")

    def _prune_members(self) -> None:
        for room, evicted in self._membership.prune(self._config.member_ttl).items():
            logger.info("evicted %d stale member(s) from %s", len(evicted), room)
            self._members_updated(room, removed=evicted)

    def _send_file(self, pending: PendingOutboundFile, content: bytes) -> None:
        payload = build_file_payload(
            file_name=pending.name,
            file_type=pending.mime_type,
            content=content,
            sender=self._node_id,
        )
        recipients = self._registry.broadcast(payload)
        self._history.append(
            FileNotice(file_name=pending.name, size=len(content), sender=self._node_id)
        )
        self._append_event(
            {
                "type": EventType.FILE_SENT,
                "data": {"name": pending.name, "size": len(content), "recipients": recipients},
            }
        )

    # -- payload handlers --------------------------------------------------

    def _on_text(self, conn: ConnectionProtocol, payload: PayloadDict) -> None:
        message = parse_text_payload(payload)
        self._history.append(message)
        self._append_event(
            {
                "type": EventType.MESSAGE_RECEIVED,
                "data": {
                    "peer": conn.peer,
                    "sender": message.sender,
                    "content": message.content,
                    "at": to_iso(message.timestamp),
                },
            }
        )

    def _on_file(self, conn: ConnectionProtocol, payload: PayloadDict) -> None:
        staged = self._transfers.stage_payload(payload)
        self._append_event(
            {
                "type": EventType.FILE_STAGED,
                "data": {
                    "file_id": staged.file_id,
                    "name": staged.name,
                    "size": staged.size,
                    "sender": staged.sender,
                },
            }
        )

    def _on_room_announcement(self, conn: ConnectionProtocol, payload: PayloadDict) -> None:
        room, members = parse_room_payload(payload)
        added = self._membership.apply_announcement(self._context, room, members)
        if added:
            self._members_updated(room, added=added)

    def _on_room_leave(self, conn: ConnectionProtocol, payload: PayloadDict) -> None:
        room, members = parse_room_payload(payload)
        removed = self._membership.apply_leave(self._context, room, members)
        if removed:
            self._members_updated(room, removed=removed)

    # -- settings ----------------------------------------------------------

    def get_settings(self) -> ChatSettings:
        return self._settings.clone()

    def update_settings(self, settings: ChatSettings) -> None:
        updated = settings.clone()
        self._settings = updated
        self._settings_store.save(updated)
        self._config = load_runtime_config(updated)
        self._registry.policy = self._config.duplicate_policy
        self._history.limit = self._config.history_limit
        self._transfers.max_pending = self._config.max_pending_files
        set_stderr_level(updated.log_level)
        self._append_event(
            {"type": EventType.SETTINGS_UPDATED, "data": {"config": self._config.to_log_string()}}
        )

    # -- helpers -----------------------------------------------------------

    def _members_updated(
        self, room: str, *, added: list[str] | None = None, removed: list[str] | None = None
    ) -> None:
        self._append_event(
            {
                "type": EventType.MEMBERS_UPDATED,
                "data": {
                    "room": room,
                    "members": self._membership.members(room),
                    "added": added or [],
                    "removed": removed or [],
                },
            }
        )

    def _notice(self, level: str, message: str) -> None:
        self._append_event({"type": EventType.NOTICE, "data": {"level": level, "message": message}})

    def _append_event(self, event: ChatEventDict) -> None:
        self._event_buffer.append(event)
        self._append_history(event)
        if self._event_notify is not None:
            try:
                self._event_notify()
            except Exception as exc:  # noqa: BLE001
                logger.debug("event notify failed: %s", exc)

    def _append_history(self, event: ChatEventDict) -> None:
        self._event_history.append(event)
        if len(self._event_history) > EVENT_HISTORY_LIMIT:
            self._event_history = self._event_history[-EVENT_HISTORY_LIMIT:]
