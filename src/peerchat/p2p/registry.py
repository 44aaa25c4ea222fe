from __future__ import annotations

import logging
from datetime import datetime

from peerchat.core.enums import DuplicatePolicy
from peerchat.core.models import ConnectionInfo
from peerchat.core.time import utc_now
from peerchat.core.types import ConnectionProtocol, PayloadDict

logger = logging.getLogger(__name__)


def _close_quietly(conn: ConnectionProtocol) -> None:
    try:
        conn.close()
    except Exception as exc:  # noqa: BLE001
        logger.debug("close %s failed: %s", conn.peer, exc)


class ConnectionRegistry:
    """Open peer channels keyed by remote id.

    A second channel to an already registered remote is resolved by
    *policy*: REPLACE closes the older channel, REJECT closes the newcomer.
    """

    def __init__(self, policy: DuplicatePolicy = DuplicatePolicy.REPLACE) -> None:
        self._policy = policy
        self._connections: dict[str, ConnectionProtocol] = {}
        self._opened_at: dict[str, datetime] = {}

    @property
    def policy(self) -> DuplicatePolicy:
        return self._policy

    @policy.setter
    def policy(self, value: DuplicatePolicy) -> None:
        self._policy = value

    def register(self, conn: ConnectionProtocol) -> bool:
        """Add an open connection. Returns False if the duplicate policy rejected it."""
        existing = self._connections.get(conn.peer)
        if existing is conn:
            return True
        if existing is not None:
            if self._policy == DuplicatePolicy.REJECT:
                logger.info("rejecting duplicate connection to %s", conn.peer)
                _close_quietly(conn)
                return False
            logger.info("replacing connection to %s", conn.peer)
            _close_quietly(existing)
        self._connections[conn.peer] = conn
        self._opened_at[conn.peer] = utc_now()
        logger.debug("registered %s (%d open)", conn.peer, len(self._connections))
        return True

    def unregister(self, conn: ConnectionProtocol) -> bool:
        """Remove *conn* if it is the registered channel for its remote."""
        if self._connections.get(conn.peer) is not conn:
            return False
        del self._connections[conn.peer]
        self._opened_at.pop(conn.peer, None)
        logger.debug("unregistered %s (%d open)", conn.peer, len(self._connections))
        return True

    def broadcast(self, payload: PayloadDict) -> int:
        """Best-effort send to every open connection. Returns how many accepted it."""
        sent = 0
        for conn in list(self._connections.values()):
            if not conn.open:
                continue
            try:
                conn.send(payload)
            except Exception as exc:  # noqa: BLE001
                logger.warning("send to %s failed: %s", conn.peer, exc)
                continue
            sent += 1
        return sent

    def get(self, remote_id: str) -> ConnectionProtocol | None:
        return self._connections.get(remote_id)

    def connections(self) -> list[ConnectionProtocol]:
        return list(self._connections.values())

    def snapshot(self) -> list[ConnectionInfo]:
        infos: list[ConnectionInfo] = []
        for remote_id, conn in self._connections.items():
            metadata = conn.metadata or {}
            room_id = metadata.get("roomId")
            infos.append(
                ConnectionInfo(
                    remote_id=remote_id,
                    is_open=conn.open,
                    is_discovery=bool(metadata.get("isDiscovery")),
                    room_id=room_id if isinstance(room_id, str) else None,
                    opened_at=self._opened_at.get(remote_id, utc_now()),
                )
            )
        return infos

    def close_all(self) -> None:
        for conn in list(self._connections.values()):
            _close_quietly(conn)
        self._connections.clear()
        self._opened_at.clear()

    def __contains__(self, remote_id: object) -> bool:
        return remote_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
