"""Filename generation for synced notes."""

from __future__ import annotations

import re

MAX_FILENAME_BYTES = 255

_ILLEGAL_RE = re.compile(r'[/?<>\\:*|"]')
_CONTROL_RE = re.compile(r"[\x00-\x1f\x80-\x9f]")
_RESERVED_RE = re.compile(r"^\.+$")
_WINDOWS_RESERVED_RE = re.compile(r"^(con|prn|aux|nul|com[0-9]|lpt[0-9])(\..*)?$", re.IGNORECASE)
_WINDOWS_TRAILING_RE = re.compile(r"[. ]+$")

_DATE_PLACEHOLDER_RE = re.compile(r"\{\{\s*date\s*\}\}")
_TITLE_PLACEHOLDER_RE = re.compile(r"\{\{\s*title\s*\}\}")


def _truncate_utf8(text: str, limit: int) -> str:
    encoded = text.encode("utf-8")
    if len(encoded) <= limit:
        return text
    return encoded[:limit].decode("utf-8", "ignore")


def sanitize_filename(name: str) -> str:
    """Make ``name`` safe as a single path segment on every common platform.

    - Drop path separators and characters reserved on Windows
    - Drop control characters
    - Reject ``.``/``..`` and reserved device names (con, nul, lpt1, ...)
    - Strip trailing dots and spaces
    - Truncate to 255 bytes of UTF-8
    """
    text = _ILLEGAL_RE.sub("", name)
    text = _CONTROL_RE.sub("", text)
    text = _RESERVED_RE.sub("", text)
    text = _WINDOWS_RESERVED_RE.sub("", text)
    text = _WINDOWS_TRAILING_RE.sub("", text)
    return _truncate_utf8(text, MAX_FILENAME_BYTES)


def render_filename(template: str, title: str, date: str) -> str:
    """Expand ``{{date}}``/``{{title}}`` in ``template`` and sanitize the result.

    Returns "untitled" when nothing usable is left.
    """
    # Callable replacements so backslashes in titles are taken literally
    expanded = _DATE_PLACEHOLDER_RE.sub(lambda _: date, template)
    expanded = _TITLE_PLACEHOLDER_RE.sub(lambda _: title, expanded)
    return sanitize_filename(expanded.strip()) or "untitled"
