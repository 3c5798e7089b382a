"""Engine wiring: builds the sync pipeline from settings."""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING

from voicenotes_sync.filesystem.note_store import NoteStore
from voicenotes_sync.remote.client import AuthSession, VoiceNotesClient
from voicenotes_sync.remote.retry import RetryPolicy
from voicenotes_sync.rendering.template_renderer import TemplateRenderer
from voicenotes_sync.services.asset_service import AssetResolver
from voicenotes_sync.services.note_service import NoteMaterializer
from voicenotes_sync.services.notice_service import LogNotifier
from voicenotes_sync.services.scheduler_service import SyncScheduler
from voicenotes_sync.services.sync_service import SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from voicenotes_sync.config import Settings, SettingsStore
    from voicenotes_sync.services.notice_service import Notifier

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging(debug: bool) -> None:
    """Send engine logs to stdout; HTTP library chatter only shows with ``debug``."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format=_LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    library_levels = {
        "httpx": logging.INFO if debug else logging.WARNING,
        "httpcore": logging.WARNING,
    }
    for name, level in library_levels.items():
        logging.getLogger(name).setLevel(level)


@dataclass
class SyncEngine:
    settings: Settings
    session: AuthSession
    client: VoiceNotesClient
    store: NoteStore
    materializer: NoteMaterializer
    orchestrator: SyncOrchestrator

    def scheduler(self) -> SyncScheduler:
        return SyncScheduler(
            self.orchestrator.sync,
            self.settings.sync_interval_minutes,
            first_run=self.orchestrator.startup_sync,
        )


class TokenPersister:
    """Writes token changes (including clearing on expiry) to the settings file."""

    def __init__(self, settings_store: SettingsStore, settings: Settings) -> None:
        self.settings_store = settings_store
        self.settings = settings

    def __call__(self, token: str | None) -> None:
        self.settings = self.settings_store.update(self.settings, token=token)
        logger.debug("Stored token %s", "updated" if token else "cleared")


@asynccontextmanager
async def open_sync_engine(
    settings: Settings,
    store: SettingsStore | None = None,
    notifier: Notifier | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> AsyncGenerator[SyncEngine]:
    """Build the full pipeline; the HTTP client is closed on exit.

    When ``store`` is given, token changes made during the session (re-login,
    invalidation after a 401) are written back to the settings file.
    """
    settings.validate_templates()
    session = AuthSession(
        token=settings.token,
        username=settings.username,
        password=settings.password,
        on_token_change=TokenPersister(store, settings) if store is not None else None,
    )
    retry_policy = RetryPolicy(
        max_rate_limit_retries=settings.max_rate_limit_retries,
        default_retry_after=settings.default_retry_after_seconds,
    )
    client = VoiceNotesClient(
        session,
        base_url=settings.api_base_url,
        retry_policy=retry_policy,
        timeout=settings.request_timeout_seconds,
        transport=transport,
    )
    notifier = notifier or LogNotifier()
    note_store = NoteStore(settings.vault_dir)
    renderer = TemplateRenderer()
    assets = AssetResolver(client, note_store, settings, notifier)
    materializer = NoteMaterializer(settings, note_store, renderer, assets, client)
    orchestrator = SyncOrchestrator(settings, client, note_store, materializer, notifier)
    try:
        yield SyncEngine(
            settings=settings,
            session=session,
            client=client,
            store=note_store,
            materializer=materializer,
            orchestrator=orchestrator,
        )
    finally:
        await client.aclose()
