from __future__ import annotations

import logging
from typing import Callable

from peerchat.core.enums import PayloadType
from peerchat.core.types import ConnectionProtocol, PayloadDict

from .codec import PayloadError

logger = logging.getLogger(__name__)

PayloadHandler = Callable[[ConnectionProtocol, PayloadDict], None]


class MessageRouter:
    """Dispatches inbound payloads to the handler owning their ``type``.

    Unknown types and malformed payloads are dropped without error.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, PayloadHandler] = {}

    def register(self, payload_type: PayloadType | str, handler: PayloadHandler) -> None:
        self._handlers[str(payload_type)] = handler

    def route(self, conn: ConnectionProtocol, payload: object) -> bool:
        """Hand *payload* to its handler. Returns False if it was dropped."""
        if not isinstance(payload, dict):
            logger.debug("dropping non-object payload from %s", conn.peer)
            return False
        payload_type = payload.get("type")
        handler = self._handlers.get(payload_type) if isinstance(payload_type, str) else None
        if handler is None:
            logger.debug("dropping payload of unknown type %r from %s", payload_type, conn.peer)
            return False
        try:
            handler(conn, payload)
        except PayloadError as exc:
            logger.debug("dropping malformed %s payload from %s: %s", payload_type, conn.peer, exc)
            return False
        return True
