from __future__ import annotations

import argparse
import json
from typing import Any

from peerchat.core.files import format_file_size
from peerchat.core.models import FileNotice
from peerchat.p2p.client import ChatClient
from peerchat.p2p.codec import message_to_record
from peerchat.p2p.db import open_db
from peerchat.p2p.history import ChatHistoryStore
from peerchat.p2p.identity import IDENTITY_KEY, get_or_create_identity
from peerchat.p2p.kv_store import KeyValueStore
from peerchat.p2p.settings_store import SettingsStore

DEMO_HOST_ID = "id10001"
DEMO_GUEST_ID = "id20002"


def add_global_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--debug",
        dest="debug",
        action="store_true",
        help="Enable verbose debug logs",
    )
    parser.add_argument(
        "--db",
        default=None,
        help="SQLite database path (default: XDG state dir)",
    )


def register_subcommands(sub: argparse._SubParsersAction) -> None:
    sub.add_parser("identity", help="Print this node's id, creating one if needed")

    history = sub.add_parser("history", help="Print persisted chat history as JSON lines")
    history.add_argument("--limit", type=int, default=50, help="Print at most N messages")

    demo = sub.add_parser("demo", help="Run a two-node room over the loopback transport")
    demo.add_argument("--room", default="team", help="Room name to create and join")
    demo.add_argument("--message", default="hello from the guest", help="Text the guest sends")

    export = sub.add_parser("export-logs", help="Export application logs for bug reports")
    export.add_argument(
        "-o",
        "--output",
        default=None,
        help="Write logs to file (default: stdout)",
    )


def _debug(enabled: bool, message: str) -> None:
    if enabled:
        print(f"[debug] {message}", flush=True)


def _print_json(record: dict[str, Any]) -> None:
    print(json.dumps(record, default=str))


def _identity(db_path: str | None) -> int:
    conn = open_db(db_path)
    try:
        print(get_or_create_identity(KeyValueStore(conn)))
    finally:
        conn.close()
    return 0


def _history(db_path: str | None, limit: int) -> int:
    conn = open_db(db_path)
    try:
        store = ChatHistoryStore(KeyValueStore(conn))
        store.load_persisted()
        for message in store.recent(limit):
            record = message_to_record(message)
            if isinstance(message, FileNotice):
                record["sizeLabel"] = format_file_size(message.size)
            _print_json(record)
    finally:
        conn.close()
    return 0


def _demo_client(network: Any, node_id: str) -> ChatClient:
    conn = open_db(":memory:")
    KeyValueStore(conn).set(IDENTITY_KEY, node_id)
    return ChatClient(network.transport, db=conn, settings_store=SettingsStore(conn))


def _demo(room: str, message: str, debug: bool) -> int:
    from peerchat.mock.transport import LoopbackNetwork, run_until_idle

    network = LoopbackNetwork()
    host = _demo_client(network, DEMO_HOST_ID)
    guest = _demo_client(network, DEMO_GUEST_ID)
    nodes = [host, guest]

    def settle() -> None:
        for node, events in zip(nodes, run_until_idle(network, nodes)):
            for event in events:
                _print_json({"node": node.get_identity(), **event})

    _debug(debug, f"{DEMO_HOST_ID} creates room {room}")
    host.create_room(room)
    settle()
    _debug(debug, f"{DEMO_GUEST_ID} joins room {room}")
    guest.join_room(room)
    settle()
    guest.send_message(message)
    settle()

    _print_json(
        {
            "status": "members",
            DEMO_HOST_ID: host.list_room_members(room),
            DEMO_GUEST_ID: guest.list_room_members(room),
        }
    )
    for node in nodes:
        node.shutdown()
    settle()
    return 0


def _export_logs(output: str | None) -> int:
    from peerchat.p2p.logging_setup import export_logs_to_path, export_logs_to_stdout

    if output:
        export_logs_to_path(output)
        print(f"Logs written to {output}")
    else:
        export_logs_to_stdout()
    return 0


def run(args: argparse.Namespace) -> int:
    if args.command == "export-logs":
        return _export_logs(args.output)

    _debug(args.debug, f"command={args.command} db={args.db or '<default>'}")
    if args.command == "identity":
        return _identity(args.db)
    if args.command == "history":
        return _history(args.db, args.limit)
    if args.command == "demo":
        return _demo(args.room, args.message, args.debug)
    raise RuntimeError(f"Unsupported command: {args.command}")
