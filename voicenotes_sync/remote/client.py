"""Voicenotes HTTP API client."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from voicenotes_sync.exceptions import ApiError, AuthenticationError, RateLimitedError
from voicenotes_sync.remote.retry import RetryPolicy
from voicenotes_sync.schemas.recording import RecordingPage, SignedUrl, UserProfile

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.voicenotes.com/api"
_BODY_SNIPPET = 500


@dataclass
class AuthSession:
    """Bearer token plus optional credentials for silent re-login.

    ``on_token_change`` is called with the new token (or None) whenever it
    changes so the host can persist it.
    """

    token: str | None = None
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    on_token_change: Callable[[str | None], None] | None = field(default=None, repr=False)

    @property
    def has_token(self) -> bool:
        return bool(self.token and self.token.strip())

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def set_token(self, token: str | None) -> None:
        token = token or None
        if token == self.token:
            return
        self.token = token
        if self.on_token_change is not None:
            self.on_token_change(token)

    def invalidate(self) -> None:
        self.set_token(None)


def _snippet(response: httpx.Response) -> str:
    return response.text[:_BODY_SNIPPET]


class VoiceNotesClient:
    """Async client for the Voicenotes recordings API.

    Every authenticated call carries ``Authorization: Bearer <token>``. On 401
    the token is dropped; when credentials are stored, exactly one re-login is
    attempted and the request retried once, otherwise AuthenticationError is
    raised. 429 responses are waited out according to ``retry_policy``.
    """

    def __init__(
        self,
        session: AuthSession,
        base_url: str = DEFAULT_API_URL,
        retry_policy: RetryPolicy | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> VoiceNotesClient:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def build_url(self, endpoint: str) -> str:
        """Join a relative endpoint to the API root; absolute links pass through."""
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"
        return f"{self.base_url}{endpoint}"

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send one request, waiting out 429 responses."""
        attempt = 0
        while True:
            try:
                response = await self._http.request(method, url, **kwargs)
            except httpx.HTTPError as exc:
                msg = f"{method} {url} failed: {exc}"
                raise ApiError(msg) from exc
            if response.status_code != 429:
                return response
            if not self.retry_policy.should_retry(attempt):
                msg = f"Rate limit persisted after {attempt} retries"
                raise RateLimitedError(msg, response.status_code, _snippet(response))
            await self.retry_policy.wait(response, attempt, url)
            attempt += 1

    async def _request(self, method: str, endpoint: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request with the 401 re-login policy."""
        url = self.build_url(endpoint)
        relogin_attempted = False
        if not self.session.has_token:
            if not self.session.has_credentials:
                msg = "No authentication token available"
                raise AuthenticationError(msg)
            await self._relogin()
            relogin_attempted = True

        while True:
            headers = {"Authorization": f"Bearer {self.session.token}"}
            response = await self._send(method, url, headers=headers, **kwargs)
            if response.status_code == 401:
                self.session.invalidate()
                if relogin_attempted or not self.session.has_credentials:
                    msg = "Authentication failed - token invalid or expired"
                    raise AuthenticationError(msg)
                logger.info("Token rejected; attempting re-login for %s", self.session.username)
                relogin_attempted = True
                await self._relogin()
                continue
            if response.is_success:
                return response
            msg = f"{method} {url} returned an error"
            raise ApiError(msg, response.status_code, _snippet(response))

    async def _relogin(self) -> None:
        await self.login(self.session.username or "", self.session.password or "")

    async def login(self, username: str, password: str) -> str:
        """Exchange credentials for a bearer token and store it on the session."""
        if not username or not password:
            msg = "Username and password are required"
            raise AuthenticationError(msg)

        logger.info("Logging in to Voicenotes as %s", username)
        response = await self._send(
            "POST",
            self.build_url("/auth/login"),
            json={"email": username, "password": password},
        )
        if response.status_code in (401, 403, 422):
            msg = f"Login rejected ({response.status_code})"
            raise AuthenticationError(msg)
        if response.status_code != 200:
            msg = "Login failed"
            raise ApiError(msg, response.status_code, _snippet(response))
        try:
            token = response.json()["authorisation"]["token"]
        except (ValueError, KeyError, TypeError) as exc:
            msg = "Login response missing authorisation token"
            raise ApiError(msg, response.status_code, _snippet(response)) from exc

        self.session.username = username
        self.session.set_token(token)
        return str(token)

    def _parse_page(self, response: httpx.Response) -> RecordingPage:
        try:
            return RecordingPage.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            msg = "Malformed recordings page"
            raise ApiError(msg, response.status_code, _snippet(response)) from exc

    async def list_recordings(self, page: int | None = None) -> RecordingPage:
        """Fetch the newest page of recordings (or page ``page``)."""
        params = {"page": page} if page is not None else None
        response = await self._request("GET", "/recordings", params=params)
        return self._parse_page(response)

    async def list_recordings_at(self, link: str) -> RecordingPage:
        """Follow an opaque pagination link returned by the server."""
        response = await self._request("GET", link)
        return self._parse_page(response)

    async def get_signed_audio_url(self, recording_id: int) -> str:
        """Return a short-lived download URL for a recording's audio."""
        response = await self._request("GET", f"/recordings/{recording_id}/signed-url")
        try:
            return SignedUrl.model_validate(response.json()).url
        except (ValueError, ValidationError) as exc:
            msg = f"Malformed signed-url response for recording {recording_id}"
            raise ApiError(msg, response.status_code, _snippet(response)) from exc

    async def download_binary(self, url: str) -> bytes:
        """Download raw bytes from a signed URL (no Authorization header)."""
        response = await self._send("GET", url)
        if not response.is_success:
            msg = f"Download of {url} failed"
            raise ApiError(msg, response.status_code, _snippet(response))
        return response.content

    async def delete_recording(self, recording_id: int) -> bool:
        """Delete a recording on the server. Irreversible."""
        response = await self._request("DELETE", f"/recordings/{recording_id}")
        return response.status_code == 200

    async def get_current_user(self) -> UserProfile | None:
        """Return the logged-in user's profile, or None if the token is unusable."""
        if not self.session.has_token and not self.session.has_credentials:
            return None
        try:
            response = await self._request("GET", "/auth/me")
            return UserProfile.model_validate(response.json())
        except AuthenticationError:
            logger.info("Current token is not valid")
            return None
        except (ApiError, ValueError, ValidationError) as exc:
            logger.warning("Failed to fetch user profile: %s", exc)
            return None
