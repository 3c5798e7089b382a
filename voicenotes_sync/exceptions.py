"""Exception types raised by the sync engine.

Convention:
- ``AuthenticationError``: the bearer token is missing, expired or rejected
  and could not be re-established. The orchestrator clears the stored token,
  asks the user to log in again and halts the current pass.
- ``ApiError``: any other non-2xx answer or transport failure. Carries the
  HTTP status and response body for diagnostic logging only.
- ``RateLimitedError``: the server kept answering 429 past the retry cap.
- ``FileSystemError``: a local read/write/mkdir failed. The affected note is
  abandoned; the pass continues.

Missing titles and excluded tags are *not* errors; they are ordinary
materialization outcomes (see ``NoteOutcome``).
"""

from __future__ import annotations


class VoiceNotesError(Exception):
    """Base class for all engine errors."""


class AuthenticationError(VoiceNotesError):
    """Raised when the remote service rejects or lacks credentials."""


class ApiError(VoiceNotesError):
    """Raised for non-auth HTTP failures."""

    def __init__(self, message: str, status_code: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body

    def __str__(self) -> str:
        base = super().__str__()
        if self.status_code is None:
            return base
        return f"{base} (HTTP {self.status_code})"


class RateLimitedError(ApiError):
    """Raised when 429 responses persist beyond the configured retry cap."""


class FileSystemError(VoiceNotesError):
    """Raised when a local note store operation fails."""

    def __init__(self, message: str, path: str = "") -> None:
        super().__init__(message)
        self.path = path
