"""Sync orchestration: fetch recordings, materialize notes, report outcomes."""

from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from voicenotes_sync.exceptions import AuthenticationError, FileSystemError, VoiceNotesError
from voicenotes_sync.filesystem.frontmatter import read_created_at
from voicenotes_sync.schemas.recording import Recording
from voicenotes_sync.services.datetime_service import is_today
from voicenotes_sync.services.format_service import format_wiki_links
from voicenotes_sync.services.note_service import NoteOutcome, NoteResult
from voicenotes_sync.services.notice_service import AUTH_EXPIRED_NOTICE, sync_complete_notice
from voicenotes_sync.services.synced_index import SyncedIndex

if TYPE_CHECKING:
    from voicenotes_sync.config import Settings
    from voicenotes_sync.filesystem.note_store import NoteStore
    from voicenotes_sync.remote.client import VoiceNotesClient
    from voicenotes_sync.services.note_service import NoteMaterializer
    from voicenotes_sync.services.notice_service import Notifier

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Aggregate outcome of one sync pass (sub-notes included)."""

    full: bool = False
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped_existing: int = 0
    excluded: int = 0
    missing_title: int = 0
    failed: int = 0
    deleted_remote: int = 0
    errors: list[str] = field(default_factory=list)
    auth_failed: bool = False
    aborted: bool = False
    already_running: bool = False

    @property
    def unsynced(self) -> int:
        """Recordings not synced because of excluded tags."""
        return self.excluded

    @property
    def written(self) -> int:
        return self.created + self.updated

    def record(self, result: NoteResult) -> None:
        for item in result.walk():
            match item.outcome:
                case NoteOutcome.CREATE:
                    self.created += 1
                case NoteOutcome.UPDATE:
                    self.updated += 1
                case NoteOutcome.SKIP_EXISTING:
                    self.skipped_existing += 1
                case NoteOutcome.EXCLUDED:
                    self.excluded += 1
                case NoteOutcome.MISSING_TITLE:
                    self.missing_title += 1
                case NoteOutcome.FAILED:
                    self.failed += 1
            if item.deleted_remote:
                self.deleted_remote += 1
            if item.message and item.outcome in (NoteOutcome.MISSING_TITLE, NoteOutcome.FAILED):
                self.errors.append(f"{item.recording_id}: {item.message}")


class SyncOrchestrator:
    """Runs sync passes one at a time.

    The synced index is rebuilt from the vault at the start of every pass;
    a pass requested while another is in flight returns immediately with
    ``already_running`` set.
    """

    def __init__(
        self,
        settings: Settings,
        client: VoiceNotesClient,
        store: NoteStore,
        materializer: NoteMaterializer,
        notifier: Notifier,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.materializer = materializer
        self.notifier = notifier
        self.index = SyncedIndex()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def rebuild_index(self) -> SyncedIndex:
        self.index = SyncedIndex.scan(self.store, self.settings.sync_directory)
        return self.index

    async def sync(self, full: bool = False) -> SyncReport:
        """Run a quick (first page) or full (every page) pass."""
        if self._lock.locked():
            logger.info("Sync already in progress; ignoring new request")
            return SyncReport(full=full, already_running=True)
        async with self._lock:
            return await self._run(full)

    async def _run(self, full: bool) -> SyncReport:
        report = SyncReport(full=full)
        logger.info("Starting %s sync", "full" if full else "quick")
        try:
            self.rebuild_index()
            items = await self.fetch_recordings(full)
        except AuthenticationError as exc:
            self._handle_auth_failure(report, exc)
            return report
        except VoiceNotesError as exc:
            logger.exception("Sync pass aborted")
            report.aborted = True
            report.errors.append(str(exc))
            self.notifier.notify(f"Sync failed: {exc}")
            return report

        report.fetched = len(items)
        for item in items:
            try:
                result = await self._process_item(item, skip_indexed=not full)
            except AuthenticationError as exc:
                self._handle_auth_failure(report, exc)
                return report
            report.record(result)
            self._notify_failures(result)

        logger.info(
            "Sync finished: %d created, %d updated, %d skipped, %d excluded, %d failed",
            report.created,
            report.updated,
            report.skipped_existing,
            report.excluded,
            report.failed + report.missing_title,
        )
        self.notifier.notify(sync_complete_notice(report.unsynced))
        return report

    async def fetch_recordings(self, full: bool) -> list[dict[str, Any]]:
        """First page only, or every page when ``full`` (pagination is link-driven)."""
        page = await self.client.list_recordings()
        items = list(page.data)
        if not full:
            return items

        seen: set[str] = set()
        while page.links.next:
            link = page.links.next
            if link in seen:
                logger.warning("Pagination loop detected at %s; stopping", link)
                break
            seen.add(link)
            page = await self.client.list_recordings_at(link)
            items.extend(page.data)
        logger.debug("Fetched %d recordings across %d pages", len(items), len(seen) + 1)
        return items

    async def _process_item(self, item: dict[str, Any], skip_indexed: bool) -> NoteResult:
        try:
            recording = Recording.model_validate(item)
        except ValidationError as exc:
            recording_id = item.get("recording_id")
            logger.warning("Skipping malformed recording %s: %s", recording_id, exc)
            return NoteResult(
                recording_id,
                NoteOutcome.FAILED,
                message=f"Could not read voice recording with id: {recording_id}",
            )
        return await self.materializer.process_recording(
            recording, self.index, skip_indexed=skip_indexed
        )

    def _notify_failures(self, result: NoteResult) -> None:
        for item in result.walk():
            if item.message and item.outcome in (NoteOutcome.MISSING_TITLE, NoteOutcome.FAILED):
                self.notifier.notify(item.message)

    async def startup_sync(self) -> SyncReport:
        """Full pass when the vault holds no synced notes yet, quick pass otherwise."""
        existing = SyncedIndex.scan(self.store, self.settings.sync_directory)
        return await self.sync(full=len(existing) == 0)

    def _handle_auth_failure(self, report: SyncReport, exc: AuthenticationError) -> None:
        logger.warning("Authentication failed during sync: %s", exc)
        self.client.session.invalidate()
        report.auth_failed = True
        report.aborted = True
        report.errors.append(str(exc))
        self.notifier.notify(AUTH_EXPIRED_NOTICE)

    # -- local housekeeping ---------------------------------------------------

    def forget(self, recording_id: int) -> None:
        """Drop a recording from the index so the next pass writes it again."""
        self.index.discard(recording_id)

    def delete_local_note(self, rel_path: str) -> bool:
        """Delete a synced note and its index entry. Returns True if a file was removed."""
        removed = self.store.delete(rel_path)
        recording_id = self.index.discard_path(rel_path)
        if removed:
            logger.info("Deleted local note %s (recording %s)", rel_path, recording_id)
        return removed

    def todays_note_links(self) -> list[str]:
        """Wiki-link lines for notes whose ``created_at`` is today."""
        names: list[str] = []
        for rel_path in self.store.list_markdown(self.settings.sync_directory):
            try:
                created_at = read_created_at(self.store.read_text(rel_path))
            except FileSystemError as exc:
                logger.warning("Skipping unreadable note %s: %s", rel_path, exc)
                continue
            if created_at and is_today(created_at, self.settings.timezone):
                names.append(posixpath.splitext(posixpath.basename(rel_path))[0])
        links = format_wiki_links(names)
        return links.splitlines() if links else []
