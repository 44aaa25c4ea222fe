"""Builders and parsers for the JSON-serializable wire payloads.

Payloads are plain dicts with a ``type`` discriminator. Parsers validate the
fields a handler depends on and raise :class:`PayloadError` for anything
malformed, so the router can drop the payload without touching state.
"""

from __future__ import annotations

import base64
import binascii
import json
from datetime import datetime
from typing import Any

from peerchat.core.enums import PayloadType
from peerchat.core.models import ChatMessage, FileNotice, TextMessage
from peerchat.core.time import epoch_ms, parse_iso, to_iso, utc_now
from peerchat.core.types import PayloadDict


class PayloadError(ValueError):
    """Payload is missing a field or carries a field of the wrong type."""


def _require_str(payload: PayloadDict, key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise PayloadError(f"{payload.get('type')!r} payload needs string field {key!r}")
    return value


def _timestamp(payload: PayloadDict) -> datetime:
    raw = payload.get("timestamp")
    if not isinstance(raw, str):
        return utc_now()
    try:
        return parse_iso(raw)
    except ValueError:
        return utc_now()


# ---------------------------------------------------------------------------
# Chat text
# ---------------------------------------------------------------------------


def build_text_payload(message: TextMessage) -> PayloadDict:
    return {
        "type": PayloadType.MESSAGE.value,
        "content": message.content,
        "sender": message.sender,
        "timestamp": to_iso(message.timestamp),
    }


def parse_text_payload(payload: PayloadDict) -> TextMessage:
    return TextMessage(
        content=_require_str(payload, "content"),
        sender=_require_str(payload, "sender"),
        timestamp=_timestamp(payload),
    )


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


def build_file_payload(
    *, file_name: str, file_type: str, content: bytes, sender: str, size: int | None = None
) -> PayloadDict:
    return {
        "type": PayloadType.FILE.value,
        "fileName": file_name,
        "fileType": file_type,
        "content": content,
        "size": len(content) if size is None else size,
        "sender": sender,
        "timestamp": to_iso(utc_now()),
    }


def file_content_bytes(payload: PayloadDict) -> bytes:
    """Return the raw bytes of a file payload (bytes, or base64 text off a JSON wire)."""
    content = payload.get("content")
    if isinstance(content, (bytes, bytearray, memoryview)):
        return bytes(content)
    if isinstance(content, str):
        try:
            return base64.b64decode(content, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise PayloadError("file payload content is not valid base64") from exc
    raise PayloadError("file payload needs byte content")


def file_payload_size(payload: PayloadDict, content: bytes) -> int:
    size = payload.get("size")
    if isinstance(size, int) and not isinstance(size, bool) and size >= 0:
        return size
    return len(content)


# ---------------------------------------------------------------------------
# Room coordination
# ---------------------------------------------------------------------------


def build_room_members(members: list[str], room_id: str) -> PayloadDict:
    return {"type": PayloadType.ROOM_MEMBERS.value, "members": list(members), "roomId": room_id}


def build_room_join(node_id: str, room_id: str, timestamp: int | None = None) -> PayloadDict:
    return {
        "type": PayloadType.ROOM_JOIN.value,
        "members": [node_id],
        "roomId": room_id,
        "timestamp": epoch_ms() if timestamp is None else timestamp,
    }


def build_room_leave(node_id: str, room_id: str) -> PayloadDict:
    return {
        "type": PayloadType.ROOM_LEAVE.value,
        "members": [node_id],
        "roomId": room_id,
        "timestamp": epoch_ms(),
    }


def parse_room_payload(payload: PayloadDict) -> tuple[str, list[str]]:
    """Return ``(room_id, members)``; non-string member entries are skipped."""
    room_id = _require_str(payload, "roomId")
    members = payload.get("members")
    if not isinstance(members, list):
        raise PayloadError(f"{payload.get('type')!r} payload needs a members list")
    return room_id, [m for m in members if isinstance(m, str) and m]


# ---------------------------------------------------------------------------
# History records and JSON framing
# ---------------------------------------------------------------------------


def message_to_record(message: ChatMessage) -> dict[str, Any]:
    if isinstance(message, FileNotice):
        return {
            "type": PayloadType.FILE.value,
            "fileName": message.file_name,
            "size": message.size,
            "sender": message.sender,
            "timestamp": to_iso(message.timestamp),
        }
    return build_text_payload(message)


def record_to_message(record: Any) -> ChatMessage:
    if not isinstance(record, dict):
        raise PayloadError("history record is not an object")
    kind = record.get("type")
    if kind == PayloadType.MESSAGE:
        return parse_text_payload(record)
    if kind == PayloadType.FILE:
        size = record.get("size")
        return FileNotice(
            file_name=_require_str(record, "fileName"),
            size=size if isinstance(size, int) and not isinstance(size, bool) else 0,
            sender=_require_str(record, "sender"),
            timestamp=_timestamp(record),
        )
    raise PayloadError(f"unknown history record type {kind!r}")


def _json_default(value: object) -> object:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return base64.b64encode(bytes(value)).decode("ascii")
    raise TypeError(f"{type(value).__name__} is not JSON serializable")


def encode_json(payload: PayloadDict) -> str:
    """Serialize a payload for a text transport; byte content becomes base64."""
    return json.dumps(payload, default=_json_default, separators=(",", ":"))


def decode_json(raw: str | bytes) -> PayloadDict:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise PayloadError(f"payload is not JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise PayloadError("payload is not a JSON object")
    return payload
