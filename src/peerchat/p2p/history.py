"""Bounded chat history persisted as a whole on every change."""

from __future__ import annotations

import json
import logging
import sqlite3

from peerchat.core.models import ChatMessage

from .codec import PayloadError, message_to_record, record_to_message
from .kv_store import KeyValueStore
from .settings import MAX_HISTORY

logger = logging.getLogger(__name__)

HISTORY_KEY = "chat_history"


class ChatHistoryStore:
    """Append-only message log trimmed to the most recent *limit* entries.

    Oldest entries are evicted first. Every mutation rewrites the persisted
    copy in full; with no backing store the log lives in memory only.
    """

    def __init__(self, store: KeyValueStore | None = None, limit: int = MAX_HISTORY) -> None:
        self._store = store
        self._limit = max(1, limit)
        self._messages: list[ChatMessage] = []

    @property
    def limit(self) -> int:
        return self._limit

    @limit.setter
    def limit(self, value: int) -> None:
        self._limit = max(1, value)
        if len(self._messages) > self._limit:
            del self._messages[: len(self._messages) - self._limit]
            self.persist_all()

    def load_persisted(self) -> list[ChatMessage]:
        """Replace the in-memory log with the persisted one.

        Absent or corrupt data yields an empty log; corrupt data is left in
        place until the next write overwrites it.
        """
        self._messages = []
        if self._store is None:
            return []
        try:
            raw = self._store.get(HISTORY_KEY)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("history load failed: %s", exc)
            return []
        if raw is None:
            return []
        try:
            records = json.loads(raw)
            if not isinstance(records, list):
                raise PayloadError("history is not a list")
            messages = [record_to_message(record) for record in records]
        except (json.JSONDecodeError, PayloadError) as exc:
            logger.warning("discarding corrupt chat history: %s", exc)
            return []
        self._messages = messages[-self._limit :]
        return list(self._messages)

    def append(self, message: ChatMessage) -> None:
        self._messages.append(message)
        if len(self._messages) > self._limit:
            del self._messages[: len(self._messages) - self._limit]
        self.persist_all()

    def persist_all(self) -> None:
        if self._store is None:
            return
        payload = json.dumps([message_to_record(m) for m in self._messages])
        try:
            self._store.set(HISTORY_KEY, payload)
        except (sqlite3.Error, OSError) as exc:
            logger.warning("history save failed: %s", exc)

    def clear(self) -> None:
        self._messages = []
        self.persist_all()

    def get_all(self) -> list[ChatMessage]:
        return list(self._messages)

    def recent(self, limit: int = MAX_HISTORY) -> list[ChatMessage]:
        if limit <= 0:
            return []
        return self._messages[-limit:]

    def __len__(self) -> int:
        return len(self._messages)
