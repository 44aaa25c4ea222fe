from __future__ import annotations

from typing import Any

from peerchat.core.enums import EventType
from peerchat.core.types import (
    ConnectionProtocol,
    EmitCallback,
    LoggerCallback,
    TransportProviderProtocol,
)


def attach_connection_callbacks(
    *,
    conn: ConnectionProtocol,
    emit: EmitCallback,
    logger: LoggerCallback,
) -> None:
    """Forward a connection's lifecycle and data events onto the session queue."""

    def on_open() -> None:
        logger(f"connection open peer={conn.peer}")
        emit({"type": EventType.CONNECTION_OPEN, "data": {"connection": conn}})

    def on_data(payload: Any) -> None:
        payload_type = payload.get("type") if isinstance(payload, dict) else None
        logger(f"data rx peer={conn.peer} type={payload_type}")
        emit({"type": EventType.CONNECTION_DATA, "data": {"connection": conn, "payload": payload}})

    def on_close() -> None:
        logger(f"connection closed peer={conn.peer}")
        emit({"type": EventType.CONNECTION_CLOSE, "data": {"connection": conn}})

    def on_error(reason: Any = None) -> None:
        logger(f"connection error peer={conn.peer} reason={reason}")
        emit(
            {
                "type": EventType.CONNECTION_ERROR,
                "data": {"connection": conn, "reason": str(reason) if reason else "unknown error"},
            }
        )

    conn.on("open", on_open)
    conn.on("data", on_data)
    conn.on("close", on_close)
    conn.on("error", on_error)


def attach_transport_callbacks(
    *,
    transport: TransportProviderProtocol,
    emit: EmitCallback,
    logger: LoggerCallback,
) -> None:
    """Queue connections initiated by remote peers and wire their callbacks."""

    def on_connection(conn: ConnectionProtocol) -> None:
        metadata = conn.metadata or {}
        logger(
            f"inbound connection peer={conn.peer} "
            f"discovery={bool(metadata.get('isDiscovery'))} room={metadata.get('roomId')}"
        )
        attach_connection_callbacks(conn=conn, emit=emit, logger=logger)
        emit({"type": EventType.INBOUND_CONNECTION, "data": {"connection": conn}})

    transport.on_connection(on_connection)
    logger("registered inbound connection callback")
