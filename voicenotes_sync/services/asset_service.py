"""Download-once resolution of recording audio and attachments."""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING

from voicenotes_sync.exceptions import ApiError
from voicenotes_sync.schemas.recording import AttachmentType
from voicenotes_sync.services.format_service import filename_from_url

if TYPE_CHECKING:
    from voicenotes_sync.config import Settings
    from voicenotes_sync.filesystem.note_store import NoteStore
    from voicenotes_sync.remote.client import VoiceNotesClient
    from voicenotes_sync.schemas.recording import Attachment, Recording
    from voicenotes_sync.services.notice_service import Notifier

logger = logging.getLogger(__name__)

AUDIO_DIR = "audio"
ATTACHMENTS_DIR = "attachments"


@dataclass(frozen=True)
class AudioAsset:
    embed_link: str = ""
    filename: str = ""


@dataclass(frozen=True)
class AttachmentBlocks:
    """Markdown for the ``attachments`` and ``manual_entries`` context fields."""

    attachments: str | None = None
    manual_entries: str | None = None


class AssetResolver:
    """Fetches and stores binary media referenced by a recording.

    Every download is skipped when the target file already exists, so
    re-syncing a recording never re-fetches its assets.
    """

    def __init__(
        self,
        client: VoiceNotesClient,
        store: NoteStore,
        settings: Settings,
        notifier: Notifier,
    ) -> None:
        self.client = client
        self.store = store
        self.settings = settings
        self.notifier = notifier

    def audio_path(self, recording: Recording) -> str:
        rid = recording.recording_id
        return posixpath.join(self.settings.sync_directory, AUDIO_DIR, str(rid), f"{rid}.mp3")

    async def resolve_audio(self, recording: Recording) -> AudioAsset:
        """Download the recording's audio and return its embed link.

        A failing signed-URL request only produces a warning notice; the note
        is still written, just without audio.
        """
        rid = recording.recording_id
        filename = f"{rid}.mp3"
        target = self.audio_path(recording)
        self.store.ensure_directory(posixpath.dirname(target))

        if not self.store.exists(target):
            try:
                signed_url = await self.client.get_signed_audio_url(rid)
                data = await self.client.download_binary(signed_url)
            except ApiError as exc:
                logger.warning("Audio download failed for recording %s: %s", rid, exc)
                self.notifier.notify(f"Could not download audio for recording {rid}.")
                return AudioAsset()
            self.store.write_binary(target, data)
            logger.debug("Saved audio for recording %s to %s", rid, target)

        return AudioAsset(embed_link=f"![[{filename}]]", filename=filename)

    async def _download_attachment(self, url: str) -> str | None:
        filename = filename_from_url(url)
        if not filename:
            logger.warning("Ignoring attachment with no filename: %s", url)
            return None
        target = posixpath.join(self.settings.sync_directory, ATTACHMENTS_DIR, filename)
        if not self.store.exists(target):
            data = await self.client.download_binary(url)
            self.store.write_binary(target, data)
            logger.debug("Saved attachment %s", target)
        return filename

    async def _file_lines(self, attachment: Attachment) -> list[str]:
        if not attachment.url:
            return []
        if self.settings.download_attachments:
            filename = await self._download_attachment(attachment.url)
            if filename is None:
                return []
            lines = [f"- ![[{filename}]]"]
        else:
            lines = [f"- ![]({attachment.url})"]
        if self.settings.show_image_descriptions and attachment.description:
            lines.append(f"  *{attachment.description}*")
        return lines

    async def resolve_attachments(self, recording: Recording) -> AttachmentBlocks:
        """Build the attachments block; manual entries are collected separately."""
        attachment_lines: list[str] = []
        manual_lines: list[str] = []
        for attachment in recording.attachments:
            if attachment.type == AttachmentType.DESCRIPTION:
                if attachment.description:
                    attachment_lines.append(f"- {attachment.description}")
            elif attachment.type == AttachmentType.FILE:
                attachment_lines.extend(await self._file_lines(attachment))
            elif attachment.type == AttachmentType.MANUAL:
                if attachment.description:
                    manual_lines.append(f"- {attachment.description}")
            else:
                logger.debug("Ignoring attachment of unknown type %s", attachment.type)
        return AttachmentBlocks(
            attachments="\n".join(attachment_lines) or None,
            manual_entries="\n".join(manual_lines) or None,
        )
