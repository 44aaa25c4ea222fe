from __future__ import annotations

from typing import Any, Callable

from peerchat.core.enums import DuplicatePolicy
from peerchat.p2p.registry import ConnectionRegistry


class FakeConnection:
    def __init__(
        self,
        peer: str,
        *,
        is_open: bool = True,
        metadata: dict[str, Any] | None = None,
        fail_send: bool = False,
    ) -> None:
        self.peer = peer
        self.metadata = metadata or {}
        self._open = is_open
        self.fail_send = fail_send
        self.sent: list[dict[str, Any]] = []
        self.closed = False

    @property
    def open(self) -> bool:
        return self._open

    def on(self, event: str, callback: Callable[..., None]) -> None:
        pass

    def send(self, payload: dict[str, Any]) -> None:
        if self.fail_send:
            raise RuntimeError("channel broken")
        self.sent.append(payload)

    def close(self) -> None:
        self.closed = True
        self._open = False


def test_broadcast_skips_connections_that_are_not_open() -> None:
    registry = ConnectionRegistry()
    live = FakeConnection("id10001")
    pending = FakeConnection("id20002", is_open=False)
    registry.register(live)
    registry.register(pending)

    sent = registry.broadcast({"type": "message", "content": "hi"})

    assert sent == 1
    assert live.sent == [{"type": "message", "content": "hi"}]
    assert pending.sent == []


def test_broadcast_continues_past_send_failures() -> None:
    registry = ConnectionRegistry()
    broken = FakeConnection("id10001", fail_send=True)
    healthy = FakeConnection("id20002")
    registry.register(broken)
    registry.register(healthy)

    assert registry.broadcast({"type": "message"}) == 1
    assert healthy.sent == [{"type": "message"}]


def test_broadcast_with_no_connections_is_a_no_op() -> None:
    assert ConnectionRegistry().broadcast({"type": "message"}) == 0


def test_replace_policy_closes_older_connection() -> None:
    registry = ConnectionRegistry(DuplicatePolicy.REPLACE)
    first = FakeConnection("id10001")
    second = FakeConnection("id10001")

    assert registry.register(first) is True
    assert registry.register(second) is True

    assert first.closed is True
    assert registry.get("id10001") is second
    assert len(registry) == 1


def test_reject_policy_closes_newcomer() -> None:
    registry = ConnectionRegistry(DuplicatePolicy.REJECT)
    first = FakeConnection("id10001")
    second = FakeConnection("id10001")

    registry.register(first)
    assert registry.register(second) is False

    assert second.closed is True
    assert first.closed is False
    assert registry.get("id10001") is first


def test_registering_same_connection_twice_is_harmless() -> None:
    registry = ConnectionRegistry()
    conn = FakeConnection("id10001")
    registry.register(conn)
    registry.register(conn)

    assert conn.closed is False
    assert len(registry) == 1


def test_unregister_is_safe_when_already_removed() -> None:
    registry = ConnectionRegistry()
    conn = FakeConnection("id10001")
    registry.register(conn)

    assert registry.unregister(conn) is True
    assert registry.unregister(conn) is False
    assert "id10001" not in registry


def test_unregister_ignores_replaced_connection() -> None:
    registry = ConnectionRegistry()
    old = FakeConnection("id10001")
    new = FakeConnection("id10001")
    registry.register(old)
    registry.register(new)

    assert registry.unregister(old) is False
    assert registry.get("id10001") is new


def test_snapshot_reports_metadata() -> None:
    registry = ConnectionRegistry()
    registry.register(FakeConnection("team", metadata={"isDiscovery": True, "roomId": "team"}))
    registry.register(FakeConnection("id20002", is_open=False))

    infos = {info.remote_id: info for info in registry.snapshot()}

    assert infos["team"].is_discovery is True
    assert infos["team"].room_id == "team"
    assert infos["id20002"].is_open is False
    assert infos["id20002"].room_id is None


def test_close_all_closes_and_clears() -> None:
    registry = ConnectionRegistry()
    conns = [FakeConnection("id10001"), FakeConnection("id20002")]
    for conn in conns:
        registry.register(conn)

    registry.close_all()

    assert all(conn.closed for conn in conns)
    assert len(registry) == 0


def test_policy_can_change_at_runtime() -> None:
    registry = ConnectionRegistry()
    registry.policy = DuplicatePolicy.REJECT
    registry.register(FakeConnection("id10001"))

    assert registry.register(FakeConnection("id10001")) is False
