"""Outbound file queue and inbound staging area.

Outbound files wait in a small queue until flushed; a flush hands every
entry over for transmission and empties the queue whether or not anyone
was connected to receive it. Inbound files wait in staging until the user
accepts (materialized through the file sink, then removed) or rejects them.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable
from uuid import uuid4

from peerchat.core.models import PendingOutboundFile, StagedInboundFile
from peerchat.core.types import PayloadDict

from .codec import PayloadError, file_content_bytes, file_payload_size
from .settings import MAX_PENDING_FILES

logger = logging.getLogger(__name__)

FileSink = Callable[[StagedInboundFile], Path]


def _unique_path(directory: Path, name: str) -> Path:
    candidate = directory / name
    stem, suffix = candidate.stem, candidate.suffix
    counter = 1
    while candidate.exists():
        candidate = directory / f"{stem} ({counter}){suffix}"
        counter += 1
    return candidate


def save_to_directory(directory: Path) -> FileSink:
    """Sink writing accepted files into *directory* without overwriting existing ones."""

    def _save(staged: StagedInboundFile) -> Path:
        directory.mkdir(parents=True, exist_ok=True)
        # Only the final component of a sender-supplied name is trusted.
        target = _unique_path(directory, Path(staged.name).name or "download")
        target.write_bytes(staged.raw_bytes)
        return target

    return _save


def read_content(pending: PendingOutboundFile) -> bytes:
    if pending.raw_bytes is not None:
        return pending.raw_bytes
    if pending.source_path is None:
        raise OSError(f"{pending.name} has neither bytes nor a source path")
    return pending.source_path.read_bytes()


class FileTransferManager:
    def __init__(
        self,
        *,
        max_pending: int = MAX_PENDING_FILES,
        sink: FileSink | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._max_pending = max_pending
        self._sink = sink
        self._id_factory = id_factory or (lambda: str(uuid4()))
        self._pending: list[PendingOutboundFile] = []
        self._staged: list[StagedInboundFile] = []

    # -- outbound ----------------------------------------------------------

    @property
    def max_pending(self) -> int:
        return self._max_pending

    @max_pending.setter
    def max_pending(self, value: int) -> None:
        # Entries already queued beyond a lowered cap are kept until flushed.
        self._max_pending = max(0, value)

    def enqueue(self, pending: PendingOutboundFile) -> bool:
        """Queue *pending*. At capacity the file is rejected and the queue is unchanged."""
        if len(self._pending) >= self._max_pending:
            logger.info("outbound queue full (%d), rejecting %s", self._max_pending, pending.name)
            return False
        self._pending.append(pending)
        return True

    def remove_pending(self, index: int) -> bool:
        if not 0 <= index < len(self._pending):
            return False
        del self._pending[index]
        return True

    def take_pending(self) -> list[PendingOutboundFile]:
        """Remove and return every queued file, leaving the queue empty."""
        batch, self._pending = self._pending, []
        return batch

    def pending(self) -> list[PendingOutboundFile]:
        return list(self._pending)

    # -- inbound -----------------------------------------------------------

    def stage_payload(self, payload: PayloadDict) -> StagedInboundFile:
        """Stage a ``file`` payload. Raises PayloadError if it is malformed."""
        name = payload.get("fileName")
        sender = payload.get("sender")
        if not isinstance(name, str) or not isinstance(sender, str):
            raise PayloadError("file payload needs fileName and sender")
        content = file_content_bytes(payload)
        mime_type = payload.get("fileType")
        staged = StagedInboundFile(
            file_id=self._id_factory(),
            name=name,
            size=file_payload_size(payload, content),
            mime_type=mime_type if isinstance(mime_type, str) and mime_type else "",
            raw_bytes=content,
            sender=sender,
        )
        self._staged.append(staged)
        return staged

    def find(self, file_id: str) -> StagedInboundFile | None:
        for staged in self._staged:
            if staged.file_id == file_id:
                return staged
        return None

    def accept(self, file_id: str) -> tuple[StagedInboundFile, Path | None] | None:
        """Materialize and remove a staged file. Unknown ids return None.

        The entry stays staged if the sink raises.
        """
        staged = self.find(file_id)
        if staged is None:
            return None
        location = self._sink(staged) if self._sink is not None else None
        self._staged.remove(staged)
        return staged, location

    def reject(self, file_id: str) -> StagedInboundFile | None:
        staged = self.find(file_id)
        if staged is None:
            return None
        self._staged.remove(staged)
        return staged

    def staged(self) -> list[StagedInboundFile]:
        return list(self._staged)
