"""Tests for the note materializer state machine and context building."""

from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, patch

import pytest

from voicenotes_sync.exceptions import ApiError, AuthenticationError
from voicenotes_sync.filesystem.frontmatter import load_metadata, read_recording_id
from voicenotes_sync.schemas.recording import Creation
from voicenotes_sync.services.note_service import NoteOutcome, creation_text
from voicenotes_sync.services.synced_index import SyncedIndex

from conftest import recording_payload

if TYPE_CHECKING:
    from collections.abc import Callable

    from voicenotes_sync.schemas.recording import Recording

    from conftest import FakeVoicenotes, Pipeline

NOTE = "voicenotes/2024-01-15 Recording 1.md"


class TestCreationText:
    def test_points_become_bullets(self) -> None:
        creation = Creation.model_validate({"type": "points", "content": {"data": ["a", "b"]}})
        assert creation_text(creation) == "- a\n- b"

    def test_todos_carry_tag(self) -> None:
        creation = Creation.model_validate({"type": "todo", "content": {"data": ["call"]}})
        assert creation_text(creation, "todo") == "- [ ] call #todo"

    def test_text_prefers_markdown_content(self) -> None:
        creation = Creation.model_validate(
            {"type": "summary", "content": {"data": "plain"}, "markdown_content": "**md**"}
        )
        assert creation_text(creation) == "**md**"

    def test_text_falls_back_to_string_data(self) -> None:
        creation = Creation.model_validate({"type": "blog", "content": {"data": "plain"}})
        assert creation_text(creation) == "plain"

    def test_email_from_structured_content(self) -> None:
        creation = Creation.model_validate(
            {"type": "email", "content": {"data": {"subject": "Hi", "body": "Text"}}}
        )
        assert creation_text(creation) == "**Subject:** Hi\n\nText"

    def test_tidy_transcript_alias(self) -> None:
        creation = Creation.model_validate(
            {"type": "tidy_transcript", "content": {}, "markdown_content": "Tidy"}
        )
        assert creation_text(creation) == "Tidy"

    def test_unknown_type_ignored(self) -> None:
        creation = Creation.model_validate({"type": "haiku", "markdown_content": "x"})
        assert creation_text(creation) is None


class TestProcessRecording:
    async def test_creates_note_with_recording_id(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        index = SyncedIndex()

        result = await pipeline.materializer.process_recording(make_recording(1), index)

        assert result.outcome is NoteOutcome.CREATE
        assert result.path == NOTE
        content = pipeline.store.read_text(NOTE)
        assert read_recording_id(content) == 1
        assert "# Recording 1" in content
        assert "## Transcript\n\nTranscript of recording 1." in content
        assert 1 in index

    async def test_missing_title(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        result = await pipeline.materializer.process_recording(
            make_recording(3, title=None), SyncedIndex()
        )
        assert result.outcome is NoteOutcome.MISSING_TITLE
        assert result.message == "Unable to grab voice recording with id: 3"
        assert pipeline.store.list_markdown("voicenotes") == []

    async def test_excluded_tag_writes_nothing(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline(exclude_tags=["private"])
        recording = make_recording(tags=[{"name": "work"}, {"name": "private"}])

        result = await pipeline.materializer.process_recording(recording, SyncedIndex())

        assert result.outcome is NoteOutcome.EXCLUDED
        assert not pipeline.store.exists(NOTE)

    async def test_existing_top_level_note_left_alone(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        pipeline.store.write_text(NOTE, "---\nrecording_id: 1\n---\nmy edits")

        result = await pipeline.materializer.process_recording(make_recording(1), SyncedIndex())

        assert result.outcome is NoteOutcome.SKIP_EXISTING
        assert pipeline.store.read_text(NOTE).endswith("my edits")

    async def test_subnotes_rendered_first_and_always_rewritten(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        sub_path = "voicenotes/2024-01-15 Recording 2.md"
        pipeline.store.write_text(NOTE, "---\nrecording_id: 1\n---\nparent edits")
        pipeline.store.write_text(sub_path, "---\nrecording_id: 2\n---\nstale")
        parent = make_recording(1, subnotes=[recording_payload(2)])

        result = await pipeline.materializer.process_recording(parent, SyncedIndex())

        assert result.outcome is NoteOutcome.SKIP_EXISTING
        (child,) = result.children
        assert child.outcome is NoteOutcome.UPDATE
        sub_content = pipeline.store.read_text(sub_path)
        assert "stale" not in sub_content
        assert "## Parent Note\n\n- [[2024-01-15 Recording 1]]" in sub_content

    async def test_parent_links_to_subnotes(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        parent = make_recording(1, subnotes=[recording_payload(2), recording_payload(3)])

        result = await pipeline.materializer.process_recording(parent, SyncedIndex())

        assert [c.outcome for c in result.children] == [NoteOutcome.CREATE, NoteOutcome.CREATE]
        content = pipeline.store.read_text(NOTE)
        assert (
            "## Subnotes\n\n- [[2024-01-15 Recording 2]]\n- [[2024-01-15 Recording 3]]" in content
        )

    async def test_subnotes_processed_even_when_parent_excluded(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline(exclude_tags=["private"])
        parent = make_recording(1, tags=[{"name": "private"}], subnotes=[recording_payload(2)])

        result = await pipeline.materializer.process_recording(parent, SyncedIndex())

        assert result.outcome is NoteOutcome.EXCLUDED
        assert result.children[0].outcome is NoteOutcome.CREATE

    async def test_skip_indexed_in_quick_mode(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        index = SyncedIndex({1: "voicenotes/renamed by user.md"})

        result = await pipeline.materializer.process_recording(
            make_recording(1), index, skip_indexed=True
        )

        assert result.outcome is NoteOutcome.SKIP_EXISTING
        assert result.path == "voicenotes/renamed by user.md"
        assert not pipeline.store.exists(NOTE)

    async def test_collision_with_other_recording_gets_id_suffix(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        pipeline.store.write_text(NOTE, "---\nrecording_id: 77\n---\nsomeone else")
        recording = make_recording(1)

        result = await pipeline.materializer.process_recording(recording, SyncedIndex())

        assert result.outcome is NoteOutcome.CREATE
        assert result.path == "voicenotes/2024-01-15 Recording 1 (1).md"
        assert pipeline.store.read_text(NOTE).endswith("someone else")

    async def test_failure_is_isolated(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        with patch.object(
            pipeline.materializer.renderer, "create_complete_note", side_effect=RuntimeError("boom")
        ):
            result = await pipeline.materializer.process_recording(
                make_recording(1), SyncedIndex()
            )
        assert result.outcome is NoteOutcome.FAILED
        assert result.message == "boom"

    async def test_authentication_error_propagates(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline(download_audio=True)
        pipeline.client.get_signed_audio_url = AsyncMock(  # type: ignore[method-assign]
            side_effect=AuthenticationError("expired")
        )
        with pytest.raises(AuthenticationError):
            await pipeline.materializer.process_recording(make_recording(1), SyncedIndex())


class TestRemoteDeletion:
    async def test_deletes_only_with_both_flags(
        self,
        build_pipeline: Callable[..., Pipeline],
        make_recording: Callable[..., Recording],
        fake_api: FakeVoicenotes,
    ) -> None:
        pipeline = build_pipeline(delete_synced=True)
        await pipeline.materializer.process_recording(make_recording(1), SyncedIndex())
        assert fake_api.deleted == []

        pipeline = build_pipeline(delete_synced=True, really_delete_synced=True)
        result = await pipeline.materializer.process_recording(make_recording(2), SyncedIndex())
        assert fake_api.deleted == [2]
        assert result.deleted_remote is True

    async def test_delete_failure_keeps_note(
        self,
        build_pipeline: Callable[..., Pipeline],
        make_recording: Callable[..., Recording],
        fake_api: FakeVoicenotes,
    ) -> None:
        pipeline = build_pipeline(delete_synced=True, really_delete_synced=True)
        pipeline.client.delete_recording = AsyncMock(  # type: ignore[method-assign]
            side_effect=ApiError("nope", 500)
        )
        result = await pipeline.materializer.process_recording(make_recording(1), SyncedIndex())
        assert result.outcome is NoteOutcome.CREATE
        assert result.deleted_remote is False


class TestBuildContext:
    async def test_full_context(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline(todo_tag="todo", download_audio=True)
        recording = make_recording(
            5,
            duration=5000,
            tags=[{"name": "work"}, {"name": "project ideas"}],
            creations=[
                {"type": "summary", "markdown_content": "Sum"},
                {"type": "points", "content": {"data": ["p1", "p2"]}},
                {"type": "todo", "content": {"data": ["t1"]}},
                {"type": "summary", "markdown_content": "Ignored duplicate"},
            ],
            related_notes=[{"title": "Other", "created_at": "2024-01-10T08:00:00Z"}],
        )

        context = await pipeline.materializer.build_context(recording, parent_name="Parent")

        assert context["recording_id"] == 5
        assert context["duration"] == "5s"
        assert context["date"] == "2024-01-15"
        assert context["summary"] == "Sum"
        assert context["points"] == "- p1\n- p2"
        assert context["todo"] == "- [ ] t1 #todo"
        assert context["tidy"] is None
        assert context["tags"] == "#work #project-ideas"
        assert context["frontmatter_tags"] == "tags: work,project-ideas"
        assert context["related_notes"] == "- [[2024-01-10 Other]]"
        assert context["parent_note"] == "[[Parent]]"
        assert context["embedded_audio_link"] == "![[5.mp3]]"
        assert context["audio_filename"] == "5.mp3"
        assert context["subnotes"] is None

    async def test_raw_duration_when_not_human_readable(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline(human_readable_duration=False)
        context = await pipeline.materializer.build_context(make_recording(duration=65000))
        assert context["duration"] == 65000

    async def test_written_frontmatter_is_yaml(
        self, build_pipeline: Callable[..., Pipeline], make_recording: Callable[..., Recording]
    ) -> None:
        pipeline = build_pipeline()
        recording = make_recording(tags=[{"name": "work"}])
        await pipeline.materializer.process_recording(recording, SyncedIndex())

        metadata = load_metadata(pipeline.store.read_text(NOTE))

        assert metadata is not None
        assert metadata["recording_id"] == 1
        assert metadata["duration"] == "1m05s"
        assert metadata["tags"] == "work"
