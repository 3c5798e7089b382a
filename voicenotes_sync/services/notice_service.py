"""Short user-visible notices emitted during sync."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

logger = logging.getLogger(__name__)

AUTH_EXPIRED_NOTICE = "Login token was invalid, please try logging in again."


def sync_complete_notice(unsynced_count: int) -> str:
    return f"Sync complete. {unsynced_count} recordings were not synced due to excluded tags."


class Notifier(Protocol):
    """Surfaces a one-line message to the user. Never given stack traces."""

    def notify(self, message: str) -> None: ...


class LogNotifier:
    """Notifier that writes notices to a logger at INFO level."""

    def __init__(self, name: str = "voicenotes_sync.notice") -> None:
        self._logger = logging.getLogger(name)

    def notify(self, message: str) -> None:
        self._logger.info("%s", message)


@dataclass
class CollectingNotifier:
    """Notifier that keeps every message, for the CLI summary and tests."""

    messages: list[str] = field(default_factory=list)

    def notify(self, message: str) -> None:
        logger.debug("Notice: %s", message)
        self.messages.append(message)
