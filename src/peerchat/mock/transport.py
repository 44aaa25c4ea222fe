"""In-process loopback transport for tests, demos and local development.

Nodes attached to the same :class:`LoopbackNetwork` can reach each other by
NodeId or by a claimed alias. Nothing is delivered until :meth:`LoopbackNetwork.pump`
runs, so connects and sends stay asynchronous from the caller's point of view.
Payloads cross the network as JSON text, the same way a real data channel
carries them.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import TYPE_CHECKING, Any, Callable, Iterable

from peerchat.core.types import ChatEventDict, ConnectionProtocol, PayloadDict
from peerchat.p2p.codec import decode_json, encode_json

if TYPE_CHECKING:
    from peerchat.core.services import ChatService

logger = logging.getLogger(__name__)


class LoopbackConnection:
    def __init__(
        self, owner: LoopbackTransport, peer: str, metadata: dict[str, Any] | None = None
    ) -> None:
        self.peer = peer
        self.metadata = dict(metadata or {})
        self._owner = owner
        self._remote: LoopbackConnection | None = None
        self._open = False
        self._closed = False
        self._callbacks: dict[str, list[Callable[..., None]]] = {}

    @property
    def open(self) -> bool:
        return self._open

    def on(self, event: str, callback: Callable[..., None]) -> None:
        self._callbacks.setdefault(event, []).append(callback)

    def _fire(self, event: str, *args: Any) -> None:
        for callback in list(self._callbacks.get(event, [])):
            callback(*args)

    def send(self, payload: PayloadDict) -> None:
        if not self._open or self._remote is None:
            raise RuntimeError(f"connection to {self.peer} is not open")
        raw = encode_json(payload)
        remote = self._remote
        self._owner.network.schedule(lambda: remote._receive(raw))

    def _receive(self, raw: str) -> None:
        if self._open:
            self._fire("data", decode_json(raw))

    def _mark_open(self) -> None:
        if self._closed or self._open:
            return
        self._open = True
        self._fire("open")

    def _fail(self, reason: str) -> None:
        self._closed = True
        self._fire("error", reason)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        was_open, self._open = self._open, False
        self._owner.forget(self)
        network = self._owner.network
        if was_open:
            network.schedule(lambda: self._fire("close"))
        remote = self._remote
        if remote is not None:
            network.schedule(remote.close)


class LoopbackTransport:
    """One node's endpoint on a :class:`LoopbackNetwork`."""

    def __init__(self, network: LoopbackNetwork, local_id: str) -> None:
        self.network = network
        self.local_id = local_id
        self._on_connection: Callable[[ConnectionProtocol], None] | None = None
        self._connections: list[LoopbackConnection] = []
        self._destroyed = False
        network.attach(self, local_id)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def connect(self, remote_id: str, metadata: dict[str, Any] | None = None) -> LoopbackConnection:
        conn = LoopbackConnection(self, remote_id, metadata)
        self._connections.append(conn)
        self.network.schedule(lambda: self.network.establish(self, conn))
        return conn

    def on_connection(self, callback: Callable[[ConnectionProtocol], None]) -> None:
        self._on_connection = callback

    def claim_alias(self, name: str) -> None:
        self.network.attach(self, name)

    def accept(self, conn: LoopbackConnection) -> None:
        self._connections.append(conn)
        if self._on_connection is not None:
            self._on_connection(conn)

    def forget(self, conn: LoopbackConnection) -> None:
        if conn in self._connections:
            self._connections.remove(conn)

    def connections(self) -> list[LoopbackConnection]:
        return list(self._connections)

    def destroy(self) -> None:
        if self._destroyed:
            return
        self._destroyed = True
        for conn in list(self._connections):
            conn.close()
        self.network.detach(self)


class LoopbackNetwork:
    """Name registry plus a FIFO of pending deliveries."""

    def __init__(self) -> None:
        self._names: dict[str, LoopbackTransport] = {}
        self._deliveries: deque[Callable[[], None]] = deque()
        self._unresponsive: set[str] = set()

    def transport(self, local_id: str) -> LoopbackTransport:
        """Create a transport for *local_id*; usable as a ChatClient transport factory."""
        return LoopbackTransport(self, local_id)

    def attach(self, transport: LoopbackTransport, name: str) -> None:
        owner = self._names.get(name)
        if owner is not None and owner is not transport:
            raise ValueError(f"{name} is already taken")
        self._names[name] = transport

    def detach(self, transport: LoopbackTransport) -> None:
        for name in [n for n, t in self._names.items() if t is transport]:
            del self._names[name]

    def resolve(self, name: str) -> LoopbackTransport | None:
        return self._names.get(name)

    def set_unresponsive(self, name: str, unresponsive: bool = True) -> None:
        """Connections to *name* neither open nor fail while set."""
        if unresponsive:
            self._unresponsive.add(name)
        else:
            self._unresponsive.discard(name)

    def schedule(self, delivery: Callable[[], None]) -> None:
        self._deliveries.append(delivery)

    def establish(self, dialer: LoopbackTransport, conn: LoopbackConnection) -> None:
        if conn._closed:
            return
        if conn.peer in self._unresponsive:
            logger.debug("%s is unresponsive, leaving %s hanging", conn.peer, dialer.local_id)
            return
        target = self.resolve(conn.peer)
        if target is None or target.destroyed:
            dialer.forget(conn)
            conn._fail(f"could not connect to peer {conn.peer}")
            return
        remote = LoopbackConnection(target, dialer.local_id, conn.metadata)
        conn._remote = remote
        remote._remote = conn
        target.accept(remote)

        def _open_both() -> None:
            remote._mark_open()
            conn._mark_open()

        self.schedule(_open_both)

    def pending(self) -> int:
        return len(self._deliveries)

    def pump(self, max_steps: int = 10_000) -> int:
        """Run queued deliveries, including ones they schedule. Returns how many ran."""
        steps = 0
        while self._deliveries and steps < max_steps:
            delivery = self._deliveries.popleft()
            delivery()
            steps += 1
        return steps


def run_until_idle(
    network: LoopbackNetwork, clients: Iterable[ChatService], max_rounds: int = 100
) -> list[list[ChatEventDict]]:
    """Alternate network delivery and client polling until nothing moves.

    Returns the user-facing events each client produced, in *clients* order.
    """
    nodes = list(clients)
    produced: list[list[ChatEventDict]] = [[] for _ in nodes]
    for _ in range(max_rounds):
        delivered = network.pump()
        for index, node in enumerate(nodes):
            produced[index].extend(node.poll_events(limit=1000))
        if delivered == 0 and network.pending() == 0:
            break
    return produced
