"""Room membership as seen from the local node, plus room-join attempt tracking.

Membership converges by pairwise gossip: a joiner announces itself with
``room-join`` and the node answering its discovery connection replies with
``room-members``. Announcements only apply while the local context is the
announced room. Nothing here is globally synchronized.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from peerchat.core.enums import JoinState
from peerchat.core.models import RoomContext, RoomMember
from peerchat.core.types import ClockCallback, ConnectionProtocol

logger = logging.getLogger(__name__)


class RoomMembership:
    """Mapping of room name to the members believed to be in it, with last-seen times.

    The local NodeId is never stored.
    """

    def __init__(self, self_id: str, clock: ClockCallback = time.monotonic) -> None:
        self._self_id = self_id
        self._clock = clock
        self._rooms: dict[str, dict[str, RoomMember]] = {}

    def merge(self, room: str, members: list[str]) -> list[str]:
        """Union *members* into *room*, refreshing last-seen. Returns the new ids."""
        now = self._clock()
        entries = self._rooms.setdefault(room, {})
        added: list[str] = []
        for node_id in members:
            if node_id == self._self_id:
                continue
            member = entries.get(node_id)
            if member is None:
                entries[node_id] = RoomMember(node_id=node_id, last_seen=now)
                added.append(node_id)
            else:
                member.last_seen = now
        return added

    def touch(self, node_id: str) -> None:
        """Refresh last-seen for *node_id* in every room that already lists it."""
        now = self._clock()
        for entries in self._rooms.values():
            member = entries.get(node_id)
            if member is not None:
                member.last_seen = now

    def remove(self, room: str, members: list[str]) -> list[str]:
        entries = self._rooms.get(room)
        if not entries:
            return []
        removed = [node_id for node_id in members if entries.pop(node_id, None) is not None]
        return removed

    def apply_announcement(
        self, context: RoomContext, room_id: str, members: list[str]
    ) -> list[str] | None:
        """Merge a ``room-join``/``room-members`` announcement under the room guard.

        Returns None when *room_id* is not the current room (nothing applied).
        """
        if context.room_name is None or context.room_name != room_id:
            logger.debug("ignoring announcement for %r (context %r)", room_id, context.name)
            return None
        return self.merge(room_id, members)

    def apply_leave(
        self, context: RoomContext, room_id: str, members: list[str]
    ) -> list[str] | None:
        if context.room_name is None or context.room_name != room_id:
            logger.debug("ignoring leave for %r (context %r)", room_id, context.name)
            return None
        return self.remove(room_id, members)

    def prune(self, ttl: float) -> dict[str, list[str]]:
        """Evict members not seen for *ttl* seconds. ``ttl <= 0`` disables eviction."""
        if ttl <= 0:
            return {}
        cutoff = self._clock() - ttl
        evicted: dict[str, list[str]] = {}
        for room, entries in self._rooms.items():
            stale = [node_id for node_id, m in entries.items() if m.last_seen < cutoff]
            for node_id in stale:
                del entries[node_id]
            if stale:
                evicted[room] = stale
        return evicted

    def members(self, room: str) -> list[str]:
        return sorted(self._rooms.get(room, {}))

    def member_records(self, room: str) -> list[RoomMember]:
        return sorted(self._rooms.get(room, {}).values(), key=lambda m: m.node_id)

    def __contains__(self, room: object) -> bool:
        return room in self._rooms


@dataclass(slots=True)
class RoomJoinAttempt:
    """One attempt to join *room* through a discovery connection."""

    room: str
    deadline: float
    state: JoinState = JoinState.CONNECTING
    connection: ConnectionProtocol | None = None
    failure: str | None = None

    @property
    def pending(self) -> bool:
        return self.state == JoinState.CONNECTING

    def expired(self, now: float) -> bool:
        return self.pending and now >= self.deadline

    def mark_open(self) -> bool:
        if self.state != JoinState.CONNECTING:
            return False
        self.state = JoinState.OPEN
        return True

    def mark_joined(self) -> bool:
        if self.state != JoinState.OPEN:
            return False
        self.state = JoinState.JOINED
        return True

    def mark_failed(self, reason: str) -> bool:
        if self.state != JoinState.CONNECTING:
            return False
        self.state = JoinState.FAILED
        self.failure = reason
        return True
