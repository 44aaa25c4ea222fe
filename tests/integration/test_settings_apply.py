from pathlib import Path

from peerchat.core.enums import DuplicatePolicy, EventType
from peerchat.core.models import PendingOutboundFile, TextMessage
from peerchat.mock import LoopbackNetwork, ManualClock
from peerchat.p2p.client import ChatClient
from peerchat.p2p.db import open_db
from peerchat.p2p.settings import ChatSettings
from peerchat.p2p.settings_store import SettingsStore


def test_client_updates_and_persists_settings(tmp_path: Path, monkeypatch) -> None:
    for name in (
        "PEERCHAT_MAX_PENDING_FILES",
        "PEERCHAT_HISTORY_LIMIT",
        "PEERCHAT_DUPLICATE_POLICY",
    ):
        monkeypatch.delenv(name, raising=False)
    conn = open_db(str(tmp_path / "peerchat.db"))
    store = SettingsStore(conn)
    client = ChatClient(
        LoopbackNetwork().transport, db=conn, settings_store=store, clock=ManualClock()
    )

    settings = client.get_settings()
    settings.max_pending_files = 2
    settings.history_limit = 3
    settings.duplicate_connection_policy = "reject"
    client.update_settings(settings)

    updated = client.get_settings()
    assert updated.max_pending_files == 2
    assert client._registry.policy == DuplicatePolicy.REJECT

    reloaded = store.load()
    assert reloaded.max_pending_files == 2
    assert reloaded.history_limit == 3

    for index in range(2):
        assert client.enqueue_file(PendingOutboundFile(name=f"{index}.bin", size=1, raw_bytes=b"x"))
    assert client.enqueue_file(PendingOutboundFile(name="2.bin", size=1, raw_bytes=b"x")) is False

    for index in range(5):
        client.send_message(f"m{index}")
    assert [m.content for m in client.list_messages() if isinstance(m, TextMessage)] == [
        "m2",
        "m3",
        "m4",
    ]

    events = client.poll_events()
    assert any(e["type"] == EventType.SETTINGS_UPDATED for e in events)


def test_get_settings_returns_a_copy(tmp_path: Path) -> None:
    conn = open_db(str(tmp_path / "peerchat.db"))
    client = ChatClient(LoopbackNetwork().transport, db=conn, clock=ManualClock())

    settings = client.get_settings()
    settings.history_limit = 1

    assert client.get_settings() == ChatSettings()


def test_saved_settings_apply_on_next_start(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.delenv("PEERCHAT_JOIN_TIMEOUT", raising=False)
    conn = open_db(str(tmp_path / "peerchat.db"))
    SettingsStore(conn).save(ChatSettings(join_timeout=1.0))
    clock = ManualClock()
    network = LoopbackNetwork()
    network.set_unresponsive("ghost")
    client = ChatClient(network.transport, db=conn, clock=clock)

    client.join_room("ghost")
    network.pump()
    clock.advance(1.0)
    events = client.poll_events()

    assert any(e["type"] == EventType.ROOM_JOIN_FAILED for e in events)
