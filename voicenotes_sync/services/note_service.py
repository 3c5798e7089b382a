"""Materialization of recordings (and their sub-notes) into vault notes."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from voicenotes_sync.exceptions import ApiError, AuthenticationError, FileSystemError
from voicenotes_sync.filesystem.frontmatter import read_recording_id
from voicenotes_sync.schemas.recording import ContentShape, CreationKind, EmailContent
from voicenotes_sync.services.asset_service import AttachmentBlocks, AudioAsset
from voicenotes_sync.services.datetime_service import format_date
from voicenotes_sync.services.format_service import (
    format_bullets,
    format_duration,
    format_hashtags,
    format_tags,
    format_todos,
    format_wiki_links,
)
from voicenotes_sync.services.slug_service import render_filename

if TYPE_CHECKING:
    from collections.abc import Iterator

    from voicenotes_sync.config import Settings
    from voicenotes_sync.filesystem.note_store import NoteStore
    from voicenotes_sync.remote.client import VoiceNotesClient
    from voicenotes_sync.rendering.template_renderer import TemplateRenderer
    from voicenotes_sync.schemas.recording import Creation, Recording
    from voicenotes_sync.services.asset_service import AssetResolver
    from voicenotes_sync.services.synced_index import SyncedIndex

logger = logging.getLogger(__name__)


class NoteOutcome(StrEnum):
    """What happened to one recording during a pass."""

    CREATE = "create"
    UPDATE = "update"
    SKIP_EXISTING = "skip_existing"
    EXCLUDED = "excluded"
    MISSING_TITLE = "missing_title"
    FAILED = "failed"

    @property
    def wrote_file(self) -> bool:
        return self in (NoteOutcome.CREATE, NoteOutcome.UPDATE)


@dataclass
class NoteResult:
    recording_id: int | None
    outcome: NoteOutcome
    path: str | None = None
    message: str | None = None
    deleted_remote: bool = False
    children: list[NoteResult] = field(default_factory=list)

    def walk(self) -> Iterator[NoteResult]:
        """Yield sub-note results (depth first) followed by this result."""
        for child in self.children:
            yield from child.walk()
        yield self


def creation_text(creation: Creation, todo_tag: str = "") -> str | None:
    """Flatten a creation's content into markdown according to its shape."""
    kind = creation.kind
    data = creation.content.data
    if kind is None:
        return None
    if kind.shape is ContentShape.LIST:
        if isinstance(data, list):
            if kind is CreationKind.TODO:
                return format_todos(data, todo_tag)
            return format_bullets(data)
        return creation.markdown_content or None
    if kind.shape is ContentShape.EMAIL:
        if creation.markdown_content:
            return creation.markdown_content
        if isinstance(data, EmailContent):
            return f"**Subject:** {data.subject}\n\n{data.body}".strip()
        return None
    if creation.markdown_content:
        return creation.markdown_content
    if isinstance(data, str):
        return data or None
    if isinstance(data, list):
        return "\n".join(data) or None
    return None


class NoteMaterializer:
    """Decides the fate of one recording and writes its note.

    Sub-notes are rendered first, each into its own file with a
    ``parent_note`` back-link, and are always rewritten; a top-level note that
    already exists on disk is left untouched.
    """

    def __init__(
        self,
        settings: Settings,
        store: NoteStore,
        renderer: TemplateRenderer,
        assets: AssetResolver,
        client: VoiceNotesClient,
    ) -> None:
        self.settings = settings
        self.store = store
        self.renderer = renderer
        self.assets = assets
        self.client = client

    # -- naming -------------------------------------------------------------

    def note_name(self, title: str, created_at: str) -> str:
        """Sanitized file stem for a recording (also the wiki-link target)."""
        date = format_date(created_at, self.settings.filename_date_format, self.settings.timezone)
        return render_filename(self.settings.filename_template, title, date)

    def _note_rel_path(self, name: str) -> str:
        return posixpath.join(self.settings.sync_directory, f"{name}.md")

    def note_path(self, recording: Recording) -> str:
        """Vault path for ``recording``.

        When a different recording already owns the plain path, the id is
        appended to the stem instead of overwriting it.
        """
        name = self.note_name(recording.title or "", recording.created_at)
        path = self._note_rel_path(name)
        if not self.store.exists(path):
            return path
        try:
            owner = read_recording_id(self.store.read_text(path))
        except FileSystemError:
            return path
        if owner is None or owner == recording.recording_id:
            return path
        logger.info(
            "Note %s belongs to recording %s; disambiguating %s",
            path,
            owner,
            recording.recording_id,
        )
        return self._note_rel_path(f"{name} ({recording.recording_id})")

    def is_excluded(self, recording: Recording) -> bool:
        excluded = {tag.strip() for tag in self.settings.exclude_tags if tag.strip()}
        return bool(excluded & recording.tag_names)

    # -- processing -------------------------------------------------------------

    async def process_recording(
        self,
        recording: Recording,
        index: SyncedIndex,
        *,
        parent_name: str | None = None,
        skip_indexed: bool = False,
    ) -> NoteResult:
        """Materialize ``recording`` and its sub-notes.

        Failures are confined to the recording that caused them, except
        ``AuthenticationError``, which ends the pass.
        """
        children: list[NoteResult] = []
        try:
            return await self._process(recording, index, children, parent_name, skip_indexed)
        except AuthenticationError:
            raise
        except Exception as exc:
            logger.exception("Error processing recording %s", recording.recording_id)
            return NoteResult(
                recording.recording_id,
                NoteOutcome.FAILED,
                message=str(exc) or type(exc).__name__,
                children=children,
            )

    async def _process(
        self,
        recording: Recording,
        index: SyncedIndex,
        children: list[NoteResult],
        parent_name: str | None,
        skip_indexed: bool,
    ) -> NoteResult:
        rid = recording.recording_id
        is_subnote = parent_name is not None

        if not recording.title:
            logger.warning("Recording %s has no title", rid)
            return NoteResult(
                rid,
                NoteOutcome.MISSING_TITLE,
                message=f"Unable to grab voice recording with id: {rid}",
            )

        path = self.note_path(recording)
        name = posixpath.splitext(posixpath.basename(path))[0]

        for subnote in recording.subnotes:
            children.append(
                await self.process_recording(subnote, index, parent_name=name)
            )

        if self.is_excluded(recording):
            logger.info("Recording %s skipped due to excluded tags", rid)
            return NoteResult(rid, NoteOutcome.EXCLUDED, children=children)

        if not is_subnote and skip_indexed and rid in index:
            return NoteResult(
                rid, NoteOutcome.SKIP_EXISTING, path=index.path_for(rid), children=children
            )

        exists = self.store.exists(path)
        if exists and not is_subnote:
            logger.debug("Note %s already exists; skipping", path)
            return NoteResult(rid, NoteOutcome.SKIP_EXISTING, path=path, children=children)

        context = await self.build_context(recording, parent_name, children)
        content = self.renderer.create_complete_note(
            self.settings.note_template,
            self.settings.frontmatter_template,
            context,
        )
        self.store.ensure_directory(self.settings.sync_directory)
        self.store.write_text(path, content)
        outcome = NoteOutcome.UPDATE if exists else NoteOutcome.CREATE
        logger.info("%s note %s for recording %s", outcome.value.capitalize(), path, rid)

        index.add(rid, path)
        deleted = await self._delete_remote(rid)
        return NoteResult(rid, outcome, path=path, deleted_remote=deleted, children=children)

    async def _delete_remote(self, recording_id: int) -> bool:
        if not self.settings.deletion_enabled:
            return False
        try:
            deleted = await self.client.delete_recording(recording_id)
        except ApiError as exc:
            logger.warning("Failed to delete recording %s remotely: %s", recording_id, exc)
            return False
        if deleted:
            logger.info("Deleted recording %s from the server", recording_id)
        return deleted

    # -- context -------------------------------------------------------------

    def _subnote_links(self, recording: Recording, children: list[NoteResult]) -> str | None:
        written = {child.recording_id: child.path for child in children if child.path}
        names: list[str] = []
        for subnote in recording.subnotes:
            if not subnote.title:
                continue
            path = written.get(subnote.recording_id)
            if path:
                names.append(posixpath.splitext(posixpath.basename(path))[0])
            else:
                names.append(self.note_name(subnote.title, subnote.created_at))
        return format_wiki_links(names)

    async def build_context(
        self,
        recording: Recording,
        parent_name: str | None = None,
        children: list[NoteResult] | None = None,
    ) -> dict[str, Any]:
        """Template context for one recording; absent data is None."""
        settings = self.settings

        audio = AudioAsset()
        if settings.download_audio:
            audio = await self.assets.resolve_audio(recording)
        blocks = AttachmentBlocks()
        if recording.attachments:
            blocks = await self.assets.resolve_attachments(recording)

        creations: dict[str, str | None] = {}
        for kind in CreationKind:
            creation = recording.creation(kind)
            creations[kind.value] = (
                creation_text(creation, settings.todo_tag) if creation is not None else None
            )

        if settings.human_readable_duration:
            duration: str | int = format_duration(recording.duration)
        else:
            duration = recording.duration

        related = format_wiki_links(
            self.note_name(note.title, note.created_at) for note in recording.related_notes
        )

        return {
            "recording_id": recording.recording_id,
            "title": recording.title,
            "date": format_date(recording.created_at, settings.date_format, settings.timezone),
            "duration": duration,
            "created_at": format_date(
                recording.created_at, settings.date_format, settings.timezone
            ),
            "updated_at": format_date(
                recording.updated_at, settings.date_format, settings.timezone
            ),
            "transcript": recording.transcript or None,
            "embedded_audio_link": audio.embed_link or None,
            "audio_filename": audio.filename or None,
            **creations,
            "tags": format_hashtags(recording.tags),
            "frontmatter_tags": format_tags(recording.tags),
            "attachments": blocks.attachments,
            "manual_entries": blocks.manual_entries,
            "related_notes": related,
            "subnotes": self._subnote_links(recording, children or []),
            "parent_note": f"[[{parent_name}]]" if parent_name is not None else None,
        }
