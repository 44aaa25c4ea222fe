from __future__ import annotations

import logging
import queue
from typing import Any, Callable

from peerchat.core.enums import EventType
from peerchat.core.types import (
    ChatEventDict,
    ConnectionProtocol,
    LoggerCallback,
    TransportProviderProtocol,
)

from .event_bridge import attach_connection_callbacks, attach_transport_callbacks

logger = logging.getLogger(__name__)


class TransportSession:
    """Lifecycle wrapper around a transport provider.

    Transport callbacks never touch chat state: they only put ``{type, data}``
    events on a FIFO queue that the owner drains from a single thread.
    """

    def __init__(
        self, transport: TransportProviderProtocol, logger: LoggerCallback | None = None
    ) -> None:
        self._transport = transport
        self._logger = logger
        self._event_queue: queue.Queue[ChatEventDict] = queue.Queue()
        self._event_notify: Callable[[], None] | None = None
        self._started = False

    def _log(self, message: str) -> None:
        if self._logger is not None:
            self._logger(message)

    def set_event_notify(self, notify_fn: Callable[[], None]) -> None:
        self._event_notify = notify_fn

    def emit(self, payload: ChatEventDict) -> None:
        self._event_queue.put_nowait(payload)
        if self._event_notify is not None:
            try:
                self._event_notify()
            except Exception as exc:  # noqa: BLE001
                logger.debug("event notify failed: %s", exc)

    @property
    def local_id(self) -> str:
        return self._transport.local_id

    @property
    def started(self) -> bool:
        return self._started

    def start(self) -> None:
        if self._started:
            return
        attach_transport_callbacks(transport=self._transport, emit=self.emit, logger=self._log)
        self._started = True
        self.emit({"type": EventType.SESSION_STARTED, "data": {"node_id": self.local_id}})

    def stop(self) -> None:
        if not self._started:
            return
        self._log("destroying transport")
        try:
            self._transport.destroy()
        except Exception as exc:  # noqa: BLE001
            logger.warning("transport destroy failed: %s", exc)
        self._started = False
        while not self._event_queue.empty():
            try:
                self._event_queue.get_nowait()
            except queue.Empty:
                break

    def connect(self, remote_id: str, metadata: dict[str, Any] | None = None) -> ConnectionProtocol:
        """Start an outbound connection; its events arrive later on the queue."""
        if not self._started:
            raise RuntimeError("Session is not started.")
        self._log(f"connecting to {remote_id} metadata={metadata or {}}")
        conn = self._transport.connect(remote_id, metadata or {})
        attach_connection_callbacks(conn=conn, emit=self.emit, logger=self._log)
        return conn

    def claim_alias(self, name: str) -> None:
        if not self._started:
            raise RuntimeError("Session is not started.")
        self._log(f"claiming alias {name}")
        self._transport.claim_alias(name)

    def pending_events(self) -> int:
        return self._event_queue.qsize()

    def drain_events(self, max_items: int = 100) -> list[ChatEventDict]:
        items: list[ChatEventDict] = []
        for _ in range(max_items):
            try:
                items.append(self._event_queue.get_nowait())
            except queue.Empty:
                break
        return items
