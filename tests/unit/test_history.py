from __future__ import annotations

import json
import sqlite3
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from peerchat.core.models import FileNotice, TextMessage
from peerchat.p2p.db import open_db
from peerchat.p2p.history import HISTORY_KEY, ChatHistoryStore
from peerchat.p2p.kv_store import KeyValueStore

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def conn(tmp_path: Path):
    c = open_db(str(tmp_path / "test.db"))
    yield c
    c.close()


def _message(index: int) -> TextMessage:
    return TextMessage(
        content=f"message {index}",
        sender="id10001",
        timestamp=BASE_TIME + timedelta(seconds=index),
    )


def test_history_keeps_newest_fifty_in_order(conn: sqlite3.Connection) -> None:
    store = ChatHistoryStore(KeyValueStore(conn))
    for index in range(51):
        store.append(_message(index))

    contents = [m.content for m in store.get_all()]
    assert len(contents) == 50
    assert contents == [f"message {i}" for i in range(1, 51)]


def test_history_is_persisted_on_every_append(conn: sqlite3.Connection) -> None:
    store = ChatHistoryStore(KeyValueStore(conn))
    for index in range(51):
        store.append(_message(index))

    reloaded = ChatHistoryStore(KeyValueStore(conn)).load_persisted()

    assert [m.content for m in reloaded] == [f"message {i}" for i in range(1, 51)]
    assert reloaded[0].timestamp == BASE_TIME + timedelta(seconds=1)


def test_missing_history_loads_empty(conn: sqlite3.Connection) -> None:
    assert ChatHistoryStore(KeyValueStore(conn)).load_persisted() == []


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        json.dumps({"type": "message"}),
        json.dumps([{"type": "message", "sender": "id10001"}]),
        json.dumps([{"type": "telemetry"}]),
        json.dumps(["just a string"]),
    ],
)
def test_corrupt_history_is_discarded(conn: sqlite3.Connection, raw: str) -> None:
    kv = KeyValueStore(conn)
    kv.set(HISTORY_KEY, raw)

    store = ChatHistoryStore(kv)
    assert store.load_persisted() == []

    store.append(_message(1))
    assert json.loads(kv.get(HISTORY_KEY) or "[]")[0]["content"] == "message 1"


def test_file_notices_round_trip(conn: sqlite3.Connection) -> None:
    kv = KeyValueStore(conn)
    store = ChatHistoryStore(kv)
    store.append(
        FileNotice(file_name="notes.txt", size=2048, sender="id20002", timestamp=BASE_TIME)
    )
    store.append(_message(2))

    reloaded = ChatHistoryStore(kv).load_persisted()

    assert isinstance(reloaded[0], FileNotice)
    assert reloaded[0].file_name == "notes.txt"
    assert reloaded[0].size == 2048
    assert isinstance(reloaded[1], TextMessage)


def test_memory_only_history() -> None:
    store = ChatHistoryStore(None, limit=3)
    for index in range(5):
        store.append(_message(index))

    assert [m.content for m in store.get_all()] == ["message 2", "message 3", "message 4"]
    assert store.load_persisted() == []


def test_recent_and_limit_setter(conn: sqlite3.Connection) -> None:
    kv = KeyValueStore(conn)
    store = ChatHistoryStore(kv)
    for index in range(10):
        store.append(_message(index))

    assert [m.content for m in store.recent(2)] == ["message 8", "message 9"]
    assert store.recent(0) == []

    store.limit = 4
    assert len(store) == 4
    assert len(ChatHistoryStore(kv).load_persisted()) == 4


def test_clear_persists_empty_history(conn: sqlite3.Connection) -> None:
    kv = KeyValueStore(conn)
    store = ChatHistoryStore(kv)
    store.append(_message(1))
    store.clear()

    assert json.loads(kv.get(HISTORY_KEY) or "null") == []
