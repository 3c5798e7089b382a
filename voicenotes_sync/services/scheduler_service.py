"""Periodic automatic sync."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Owns the single auto-sync timer.

    ``start`` arms the timer (optionally running a pass right away),
    ``stop`` disarms it and ``reset`` re-arms it with a new interval. Passes
    run as their own tasks: stopping the timer never cancels a pass that is
    already in progress, and a tick that lands while a pass is running is
    dropped. ``first_run``, when given, replaces ``run`` for the immediate
    pass made by ``start``.
    """

    def __init__(
        self,
        run: Callable[[], Awaitable[object]],
        interval_minutes: float,
        first_run: Callable[[], Awaitable[object]] | None = None,
    ) -> None:
        if interval_minutes <= 0:
            msg = "Sync interval must be positive"
            raise ValueError(msg)
        self._run = run
        self._first_run = first_run
        self.interval_minutes = interval_minutes
        self._timer: asyncio.Task[None] | None = None
        self._current: asyncio.Task[None] | None = None

    @property
    def interval_seconds(self) -> float:
        return self.interval_minutes * 60

    @property
    def is_armed(self) -> bool:
        return self._timer is not None and not self._timer.done()

    @property
    def is_running(self) -> bool:
        return self._current is not None and not self._current.done()

    def start(self, run_immediately: bool = True) -> None:
        """Arm the timer, cancelling any previous one first."""
        self.stop()
        if run_immediately:
            self._launch(self._first_run or self._run)
        self._timer = asyncio.create_task(self._tick_forever())
        logger.info("Automatic sync every %s minutes", self.interval_minutes)

    def stop(self) -> None:
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            logger.debug("Automatic sync timer cancelled")
        self._timer = None

    def set_enabled(self, enabled: bool) -> None:
        """Enabling arms the timer and syncs now; disabling cancels the timer."""
        if not enabled:
            self.stop()
        elif not self.is_armed:
            self.start(run_immediately=True)

    def reset(self, interval_minutes: float | None = None) -> None:
        """Change the interval; an armed timer restarts from now."""
        if interval_minutes is not None:
            if interval_minutes <= 0:
                msg = "Sync interval must be positive"
                raise ValueError(msg)
            self.interval_minutes = interval_minutes
        if self.is_armed:
            self.start(run_immediately=False)

    def trigger(self) -> bool:
        """Start a pass now unless one is already running."""
        return self._launch(self._run)

    def _launch(self, run: Callable[[], Awaitable[object]]) -> bool:
        if self.is_running:
            logger.info("Previous sync still running; skipping this tick")
            return False
        self._current = asyncio.create_task(self._run_pass(run))
        return True

    async def wait_idle(self) -> None:
        """Wait for the pass in progress, if any."""
        if self._current is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(self._current)

    async def _tick_forever(self) -> None:
        while True:
            await asyncio.sleep(self.interval_seconds)
            self.trigger()

    async def _run_pass(self, run: Callable[[], Awaitable[object]]) -> None:
        try:
            await run()
        except Exception:
            # Keep the timer alive; the next tick retries
            logger.exception("Automatic sync failed")
