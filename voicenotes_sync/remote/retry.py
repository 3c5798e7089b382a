"""Rate-limit retry policy for the Voicenotes client."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    import httpx

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """How the client waits out HTTP 429 responses.

    The wait is the server's ``Retry-After`` header when present, then a
    ``retry_after`` field in the JSON body, then ``default_retry_after``
    scaled by ``backoff_multiplier ** attempt``. ``sleep`` is injectable so
    tests can replay 429 sequences without waiting.
    """

    max_rate_limit_retries: int = 5
    default_retry_after: float = 5.0
    backoff_multiplier: float = 1.0
    sleep: Callable[[float], Awaitable[None]] = field(default=asyncio.sleep, repr=False)

    def should_retry(self, attempt: int) -> bool:
        """Whether the ``attempt``-th 429 (0-based) may still be retried."""
        return attempt < self.max_rate_limit_retries

    def retry_after(self, response: httpx.Response, attempt: int) -> float:
        """Seconds to wait before retrying a rate-limited request."""
        header = response.headers.get("Retry-After")
        if header:
            try:
                return max(float(header), 0.0)
            except ValueError:
                logger.debug("Ignoring non-numeric Retry-After header: %r", header)
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and "retry_after" in body:
            try:
                return max(float(body["retry_after"]), 0.0)
            except (TypeError, ValueError):
                logger.debug("Ignoring invalid retry_after field: %r", body["retry_after"])
        return self.default_retry_after * (self.backoff_multiplier**attempt)

    async def wait(self, response: httpx.Response, attempt: int, url: str) -> None:
        delay = self.retry_after(response, attempt)
        logger.warning(
            "Rate limited on %s; waiting %.1fs before retry %d/%d",
            url,
            delay,
            attempt + 1,
            self.max_rate_limit_retries,
        )
        await self.sleep(delay)
