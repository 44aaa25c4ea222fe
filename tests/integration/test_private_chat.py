"""Private chats, message delivery and duplicate connection handling."""

from __future__ import annotations

import pytest

from peerchat.core.enums import EventType
from peerchat.core.models import RoomContext
from peerchat.mock import LoopbackNetwork, ManualClock, run_until_idle
from peerchat.p2p.client import ChatClient
from peerchat.p2p.db import open_db
from peerchat.p2p.identity import IDENTITY_KEY
from peerchat.p2p.kv_store import KeyValueStore


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    monkeypatch.delenv("PEERCHAT_DUPLICATE_POLICY", raising=False)


def _node(network: LoopbackNetwork, node_id: str) -> ChatClient:
    conn = open_db(":memory:")
    KeyValueStore(conn).set(IDENTITY_KEY, node_id)
    return ChatClient(network.transport, db=conn, clock=ManualClock())


def _received(events: list[dict]) -> list[str]:
    return [e["data"]["content"] for e in events if e["type"] == EventType.MESSAGE_RECEIVED]


def test_private_chat_switches_context_on_open() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    b = _node(network, "id20002")
    b.start()

    a.open_chat("id20002")
    assert a.get_context() == RoomContext.none()
    run_until_idle(network, [a, b])

    assert a.get_context() == RoomContext.private("id20002")
    # The accepting side registers the channel but keeps its own context.
    assert b.get_context() == RoomContext.none()
    assert [info.remote_id for info in b.list_connections()] == ["id10001"]


def test_messages_reach_the_other_side() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    b = _node(network, "id20002")
    b.start()
    a.open_chat("id20002")
    run_until_idle(network, [a, b])

    sent = a.send_message("hi there")
    _, b_events = run_until_idle(network, [a, b])

    assert _received(b_events) == ["hi there"]
    received = b.list_messages()[-1]
    assert received.sender == "id10001"
    assert received.content == "hi there"
    assert received.timestamp == sent.timestamp  # type: ignore[union-attr]

    b.send_message("hello back")
    a_events, _ = run_until_idle(network, [a, b])
    assert _received(a_events) == ["hello back"]


def test_blank_target_is_ignored() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")

    a.open_chat("   ")

    assert a.poll_events() == []


def test_chat_with_self_is_refused() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")

    a.open_chat("id10001")

    notices = [e for e in a.poll_events() if e["type"] == EventType.NOTICE]
    assert notices[0]["data"]["level"] == "warning"


def test_unknown_peer_reports_transport_error() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")

    a.open_chat("id99999")
    (events,) = run_until_idle(network, [a])

    notices = [e for e in events if e["type"] == EventType.NOTICE]
    assert notices[0]["data"] == {
        "level": "error",
        "message": "Connection to id99999 failed: could not connect to peer id99999",
    }
    assert a.get_context() == RoomContext.none()
    assert a.list_connections() == []


def test_duplicate_connection_replaces_older_one() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    b = _node(network, "id20002")
    b.start()

    a.open_chat("id20002")
    a.open_chat("id20002")
    run_until_idle(network, [a, b])

    assert len(a.list_connections()) == 1
    assert len(b.list_connections()) == 1
    a.send_message("only once")
    _, b_events = run_until_idle(network, [a, b])
    assert _received(b_events) == ["only once"]


def test_duplicate_connection_rejected_by_policy(monkeypatch) -> None:
    monkeypatch.setenv("PEERCHAT_DUPLICATE_POLICY", "reject")
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    b = _node(network, "id20002")
    b.start()

    a.open_chat("id20002")
    a.open_chat("id20002")
    run_until_idle(network, [a, b])

    assert len(a.list_connections()) == 1
    assert len(b.list_connections()) == 1
    a.send_message("only once")
    _, b_events = run_until_idle(network, [a, b])
    assert _received(b_events) == ["only once"]


def test_closed_connection_is_unregistered() -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    b = _node(network, "id20002")
    b.start()
    a.open_chat("id20002")
    run_until_idle(network, [a, b])

    b.shutdown()
    run_until_idle(network, [a, b])

    assert a.list_connections() == []
    assert a.send_message("anyone?") is not None


def test_synchronous_connect_failure_becomes_notice(monkeypatch) -> None:
    network = LoopbackNetwork()
    a = _node(network, "id10001")
    a.start()

    def refuse(remote_id, metadata=None):
        raise OSError("no route")

    monkeypatch.setattr(a._session._transport, "connect", refuse)
    a.open_chat("id20002")
    (events,) = run_until_idle(network, [a])

    notices = [e for e in events if e["type"] == EventType.NOTICE]
    assert notices[0]["data"]["message"] == "Connection to id20002 failed: no route"
    assert a.get_context() == RoomContext.none()
