from __future__ import annotations

from datetime import UTC, datetime

import pytest

from peerchat.core.models import FileNotice, TextMessage
from peerchat.p2p.codec import (
    PayloadError,
    build_file_payload,
    build_room_join,
    build_room_leave,
    build_room_members,
    build_text_payload,
    decode_json,
    encode_json,
    file_content_bytes,
    message_to_record,
    parse_room_payload,
    parse_text_payload,
    record_to_message,
)


def test_text_payload_shape() -> None:
    message = TextMessage(
        content="hi", sender="id10001", timestamp=datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)
    )

    assert build_text_payload(message) == {
        "type": "message",
        "content": "hi",
        "sender": "id10001",
        "timestamp": "2024-01-02T03:04:05+00:00",
    }


def test_parse_text_payload_accepts_z_suffix() -> None:
    message = parse_text_payload(
        {
            "type": "message",
            "content": "hi",
            "sender": "id20002",
            "timestamp": "2024-01-02T03:04:05.000Z",
        }
    )

    assert message.timestamp == datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def test_parse_text_payload_tolerates_bad_timestamp() -> None:
    message = parse_text_payload(
        {"type": "message", "content": "hi", "sender": "id20002", "timestamp": "yesterday"}
    )

    assert message.content == "hi"
    assert message.timestamp.tzinfo is not None


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "message", "sender": "id20002"},
        {"type": "message", "content": "hi"},
        {"type": "message", "content": 5, "sender": "id20002"},
    ],
)
def test_parse_text_payload_rejects_missing_fields(payload: dict) -> None:
    with pytest.raises(PayloadError):
        parse_text_payload(payload)


def test_file_payload_survives_json_framing() -> None:
    payload = build_file_payload(
        file_name="photo.png", file_type="image/png", content=b"\x89PNG\r\n", sender="id10001"
    )

    decoded = decode_json(encode_json(payload))

    assert decoded["fileName"] == "photo.png"
    assert decoded["size"] == 6
    assert isinstance(decoded["content"], str)
    assert file_content_bytes(decoded) == b"\x89PNG\r\n"


def test_room_payload_shapes() -> None:
    join = build_room_join("id20002", "team", timestamp=1700000000000)
    members = build_room_members(["id20002", "id10001"], "team")
    leave = build_room_leave("id20002", "team")

    assert join == {
        "type": "room-join",
        "members": ["id20002"],
        "roomId": "team",
        "timestamp": 1700000000000,
    }
    assert members == {"type": "room-members", "members": ["id20002", "id10001"], "roomId": "team"}
    assert leave["type"] == "room-leave"
    assert leave["members"] == ["id20002"]
    assert isinstance(leave["timestamp"], int)


def test_parse_room_payload_skips_bad_members() -> None:
    room, members = parse_room_payload(
        {"type": "room-members", "roomId": "team", "members": ["id10001", 7, None, "", "id20002"]}
    )

    assert room == "team"
    assert members == ["id10001", "id20002"]


@pytest.mark.parametrize(
    "payload",
    [
        {"type": "room-members", "members": ["id10001"]},
        {"type": "room-members", "roomId": "team"},
        {"type": "room-join", "roomId": "team", "members": "id10001"},
    ],
)
def test_parse_room_payload_rejects_malformed(payload: dict) -> None:
    with pytest.raises(PayloadError):
        parse_room_payload(payload)


@pytest.mark.parametrize("raw", ["not json", "[1, 2]", '"text"', b"\xff\xfe"])
def test_decode_json_requires_object(raw: str | bytes) -> None:
    with pytest.raises(PayloadError):
        decode_json(raw)


def test_history_records() -> None:
    notice = FileNotice(
        file_name="a.bin", size=3, sender="id10001", timestamp=datetime(2024, 1, 1, tzinfo=UTC)
    )

    record = message_to_record(notice)

    assert record["type"] == "file"
    assert "content" not in record
    assert record_to_message(record) == notice


def test_unknown_history_record_is_rejected() -> None:
    with pytest.raises(PayloadError):
        record_to_message({"type": "room-join", "members": []})
