from __future__ import annotations

import sqlite3

from peerchat.core.time import to_iso, utc_now


class KeyValueStore:
    """Small string key-value store for identity and chat history, backed by SQLite."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_state WHERE key = ?", (key,)).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT OR REPLACE INTO kv_state (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, to_iso(utc_now())),
        )
        self._conn.commit()

    def delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv_state WHERE key = ?", (key,))
        self._conn.commit()

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None
