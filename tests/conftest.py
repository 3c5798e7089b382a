"""Shared test fixtures for Voicenotes sync."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from unittest.mock import AsyncMock

import httpx
import pytest

from voicenotes_sync.config import Settings
from voicenotes_sync.filesystem.note_store import NoteStore
from voicenotes_sync.remote.client import AuthSession, VoiceNotesClient
from voicenotes_sync.remote.retry import RetryPolicy
from voicenotes_sync.rendering.template_renderer import TemplateRenderer
from voicenotes_sync.schemas.recording import Recording
from voicenotes_sync.services.asset_service import AssetResolver
from voicenotes_sync.services.note_service import NoteMaterializer
from voicenotes_sync.services.notice_service import CollectingNotifier
from voicenotes_sync.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Callable
    from pathlib import Path

logger = logging.getLogger(__name__)

API_BASE = "https://api.example.com/api"
FILES_HOST = "files.example.com"
TEST_TOKEN = "test-token"
TEST_EMAIL = "user@example.com"
TEST_PASSWORD = "correct-horse"


def recording_payload(recording_id: int, **overrides: Any) -> dict[str, Any]:
    """A wire-format recording with sensible defaults."""
    payload: dict[str, Any] = {
        "recording_id": recording_id,
        "id": recording_id + 1000,
        "title": f"Recording {recording_id}",
        "transcript": f"Transcript of recording {recording_id}.",
        "duration": 65000,
        "created_at": "2024-01-15T10:30:00.000000Z",
        "updated_at": "2024-01-15T11:00:00.000000Z",
        "tags": [],
        "creations": [],
        "attachments": [],
        "subnotes": [],
        "related_notes": [],
    }
    payload.update(overrides)
    return payload


@dataclass
class FakeVoicenotes:
    """In-memory stand-in for the Voicenotes API, served through MockTransport."""

    pages: list[list[dict[str, Any]]] = field(default_factory=lambda: [[]])
    valid_token: str = TEST_TOKEN
    email: str = TEST_EMAIL
    password: str = TEST_PASSWORD
    issued_token: str = "fresh-token"
    audio_bytes: bytes = b"ID3-audio"
    file_bytes: bytes = b"\x89PNG-image"
    signed_url_status: int = 200
    # Each entry is served (and consumed) before the real answer
    queued_responses: list[httpx.Response] = field(default_factory=list)
    requests: list[httpx.Request] = field(default_factory=list)
    login_calls: int = 0
    deleted: list[int] = field(default_factory=list)

    def _page_link(self, number: int) -> str:
        return f"{API_BASE}/recordings?page={number}"

    def _authorized(self, request: httpx.Request) -> bool:
        return request.headers.get("Authorization") == f"Bearer {self.valid_token}"

    def count(self, method: str, path: str) -> int:
        return sum(1 for r in self.requests if r.method == method and r.url.path == path)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.queued_responses:
            return self.queued_responses.pop(0)

        url = request.url
        if url.host == FILES_HOST:
            if url.path.startswith("/audio/"):
                return httpx.Response(200, content=self.audio_bytes)
            return httpx.Response(200, content=self.file_bytes)

        path = url.path.removeprefix("/api")
        if request.method == "POST" and path == "/auth/login":
            self.login_calls += 1
            body = json.loads(request.content)
            if body == {"email": self.email, "password": self.password}:
                self.valid_token = self.issued_token
                return httpx.Response(200, json={"authorisation": {"token": self.issued_token}})
            return httpx.Response(401, json={"message": "Invalid credentials"})

        if not self._authorized(request):
            return httpx.Response(401, json={"message": "Unauthenticated."})

        if request.method == "GET" and path == "/auth/me":
            return httpx.Response(
                200, json={"id": 7, "name": "Test User", "email": self.email, "recordings_count": 3}
            )
        if request.method == "GET" and path == "/recordings":
            number = int(url.params.get("page", "1"))
            data = self.pages[number - 1] if number <= len(self.pages) else []
            next_link = self._page_link(number + 1) if number < len(self.pages) else None
            return httpx.Response(200, json={"data": data, "links": {"next": next_link}})
        if request.method == "GET" and path.endswith("/signed-url"):
            recording_id = path.split("/")[2]
            if self.signed_url_status != 200:
                return httpx.Response(self.signed_url_status, json={"message": "nope"})
            return httpx.Response(
                200, json={"url": f"https://{FILES_HOST}/audio/{recording_id}.mp3?sig=abc"}
            )
        if request.method == "DELETE" and path.startswith("/recordings/"):
            self.deleted.append(int(path.split("/")[2]))
            return httpx.Response(200, json={})
        return httpx.Response(404, json={"message": "Not found"})


@pytest.fixture
def fake_api() -> FakeVoicenotes:
    return FakeVoicenotes()


@pytest.fixture
def retry_sleep() -> AsyncMock:
    return AsyncMock()


@pytest.fixture
def make_client(
    fake_api: FakeVoicenotes, retry_sleep: AsyncMock
) -> Callable[..., VoiceNotesClient]:
    def factory(session: AuthSession | None = None, **policy: Any) -> VoiceNotesClient:
        return VoiceNotesClient(
            session if session is not None else AuthSession(token=TEST_TOKEN),
            base_url=API_BASE,
            retry_policy=RetryPolicy(sleep=retry_sleep, **policy),
            transport=httpx.MockTransport(fake_api.handler),
        )

    return factory


@pytest.fixture
async def client(
    make_client: Callable[..., VoiceNotesClient],
) -> AsyncGenerator[VoiceNotesClient]:
    api_client = make_client()
    yield api_client
    await api_client.aclose()


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    path = tmp_path / "vault"
    path.mkdir()
    return path


@pytest.fixture
def settings(vault: Path) -> Settings:
    return Settings(
        _env_file=None,
        vault_dir=vault,
        token=TEST_TOKEN,
        api_base_url=API_BASE,
        timezone="UTC",
    )


@pytest.fixture
def note_store(vault: Path) -> NoteStore:
    return NoteStore(vault)


@pytest.fixture
def notifier() -> CollectingNotifier:
    return CollectingNotifier()


@pytest.fixture
def make_recording() -> Callable[..., Recording]:
    def factory(recording_id: int = 1, **overrides: Any) -> Recording:
        return Recording.model_validate(recording_payload(recording_id, **overrides))

    return factory


@dataclass
class Pipeline:
    settings: Settings
    client: VoiceNotesClient
    store: NoteStore
    notifier: CollectingNotifier
    materializer: NoteMaterializer
    orchestrator: SyncOrchestrator


@pytest.fixture
def build_pipeline(
    client: VoiceNotesClient,
    note_store: NoteStore,
    notifier: CollectingNotifier,
    settings: Settings,
) -> Callable[..., Pipeline]:
    """Wire the engine against the fake API; keyword arguments override settings."""

    def factory(**changes: Any) -> Pipeline:
        effective = settings.model_copy(update=changes)
        assets = AssetResolver(client, note_store, effective, notifier)
        materializer = NoteMaterializer(
            effective, note_store, TemplateRenderer(), assets, client
        )
        orchestrator = SyncOrchestrator(effective, client, note_store, materializer, notifier)
        return Pipeline(effective, client, note_store, notifier, materializer, orchestrator)

    return factory
