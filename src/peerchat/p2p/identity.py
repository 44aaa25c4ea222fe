"""Local node identity: ``id`` followed by five digits, generated once and reused."""

from __future__ import annotations

import logging
import random
import sqlite3

from peerchat.core.models import is_node_id

from .kv_store import KeyValueStore

logger = logging.getLogger(__name__)

IDENTITY_KEY = "identity"


def generate_node_id(rng: random.Random | None = None) -> str:
    source = rng or random
    return f"id{source.randint(10000, 99999)}"


def get_or_create_identity(
    store: KeyValueStore | None, rng: random.Random | None = None
) -> str:
    """Return the persisted identity, generating and persisting one if needed.

    A stored value that does not match the NodeId pattern is replaced. When
    storage fails the identity is generated anyway and lives only for this
    session.
    """
    if store is None:
        return generate_node_id(rng)
    try:
        stored = store.get(IDENTITY_KEY)
    except (sqlite3.Error, OSError) as exc:
        logger.warning("identity load failed, using ephemeral identity: %s", exc)
        return generate_node_id(rng)
    if is_node_id(stored):
        return stored  # type: ignore[return-value]
    if stored is not None:
        logger.info("discarding malformed stored identity %r", stored)

    node_id = generate_node_id(rng)
    try:
        store.set(IDENTITY_KEY, node_id)
    except (sqlite3.Error, OSError) as exc:
        logger.warning("identity save failed, %s is ephemeral: %s", node_id, exc)
    else:
        logger.info("generated new identity %s", node_id)
    return node_id
