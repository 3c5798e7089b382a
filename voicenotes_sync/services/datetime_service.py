"""Datetime formatting for note titles, filenames and front matter."""

from __future__ import annotations

import logging

import pendulum

logger = logging.getLogger(__name__)


def _resolve_tz(tz: str | None) -> pendulum.Timezone | pendulum.FixedTimezone:
    if tz:
        return pendulum.timezone(tz)
    return pendulum.local_timezone()


def parse_timestamp(
    value: str,
    tz: str | None = None,
    naive_tz: str | None = "UTC",
) -> pendulum.DateTime:
    """Parse a timestamp and convert it to ``tz`` (local time when None).

    Values without an offset are read in ``naive_tz``; server timestamps are
    UTC, while dates written into front matter are already in ``tz``.
    """
    source_tz = _resolve_tz(naive_tz)
    parsed = pendulum.parse(value.strip(), tz=source_tz, strict=False)
    if not isinstance(parsed, pendulum.DateTime):
        # pendulum.parse returns Date for some date-only inputs
        if not isinstance(parsed, pendulum.Date):
            msg = f"Not a date or datetime: {value!r}"
            raise ValueError(msg)
        parsed = pendulum.datetime(parsed.year, parsed.month, parsed.day, tz=source_tz)
    return parsed.in_timezone(_resolve_tz(tz))


def format_date(value: str, fmt: str, tz: str | None = None) -> str:
    """Format ``value`` with moment-style tokens; unparseable input is returned unchanged."""
    try:
        return parse_timestamp(value, tz).format(fmt)
    except ValueError as exc:
        logger.debug("Could not format date %r: %s", value, exc)
        return value


def is_today(value: str, tz: str | None = None, now: pendulum.DateTime | None = None) -> bool:
    """True when a front matter date falls on the current calendar day in ``tz``."""
    try:
        moment = parse_timestamp(value, tz, naive_tz=tz)
    except ValueError:
        return False
    current = (now or pendulum.now()).in_timezone(_resolve_tz(tz))
    return moment.date() == current.date()
