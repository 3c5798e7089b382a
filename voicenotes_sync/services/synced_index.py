"""The set of recordings already materialized in the vault."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from voicenotes_sync.exceptions import FileSystemError
from voicenotes_sync.filesystem.frontmatter import read_recording_id
from voicenotes_sync.filesystem.note_store import normalize_path

if TYPE_CHECKING:
    from collections.abc import Iterator

    from voicenotes_sync.filesystem.note_store import NoteStore

logger = logging.getLogger(__name__)


@dataclass
class SyncedIndex:
    """Maps ``recording_id`` to the vault path of its note.

    Never persisted: it is rebuilt from the notes' front matter, so it cannot
    drift from what is actually on disk.
    """

    paths_by_id: dict[int, str] = field(default_factory=dict)

    @classmethod
    def scan(cls, store: NoteStore, sync_directory: str) -> SyncedIndex:
        """Rebuild the index by reading ``recording_id`` from every note."""
        index = cls()
        for rel_path in store.list_markdown(sync_directory):
            try:
                content = store.read_text(rel_path)
            except FileSystemError as exc:
                logger.warning("Skipping unreadable note %s: %s", rel_path, exc)
                continue
            recording_id = read_recording_id(content)
            if recording_id is not None:
                index.add(recording_id, rel_path)
        logger.debug("Synced index rebuilt with %d recordings", len(index))
        return index

    def __contains__(self, recording_id: object) -> bool:
        return recording_id in self.paths_by_id

    def __len__(self) -> int:
        return len(self.paths_by_id)

    def __iter__(self) -> Iterator[int]:
        return iter(self.paths_by_id)

    def add(self, recording_id: int, rel_path: str) -> None:
        self.paths_by_id[recording_id] = normalize_path(rel_path)

    def path_for(self, recording_id: int) -> str | None:
        return self.paths_by_id.get(recording_id)

    def discard(self, recording_id: int) -> None:
        self.paths_by_id.pop(recording_id, None)

    def discard_path(self, rel_path: str) -> int | None:
        """Drop whichever recording is stored at ``rel_path``; returns its id."""
        target = normalize_path(rel_path)
        for recording_id, path in list(self.paths_by_id.items()):
            if path == target:
                del self.paths_by_id[recording_id]
                return recording_id
        return None
