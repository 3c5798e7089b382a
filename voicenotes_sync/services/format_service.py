"""Plain-text formatting of recording fields for templates."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from urllib.parse import unquote, urlparse

if TYPE_CHECKING:
    from collections.abc import Iterable

    from voicenotes_sync.schemas.recording import Tag

_WHITESPACE_RE = re.compile(r"\s+")


def format_duration(duration_ms: int) -> str:
    """Format milliseconds as ``5s`` or ``1m05s``."""
    minutes, remainder = divmod(max(duration_ms, 0), 60_000)
    seconds = remainder // 1000
    if minutes > 0:
        return f"{minutes}m{seconds:02d}s"
    return f"{seconds}s"


def _tag_slug(name: str) -> str:
    return _WHITESPACE_RE.sub("-", name.strip())


def format_tags(tags: Iterable[Tag]) -> str:
    """Front matter form: ``tags: work,project-ideas`` (empty when no tags)."""
    names = [_tag_slug(tag.name) for tag in tags]
    if not names:
        return ""
    return f"tags: {','.join(names)}"


def format_hashtags(tags: Iterable[Tag]) -> str | None:
    """Body form: ``#work #project-ideas``."""
    names = [f"#{_tag_slug(tag.name)}" for tag in tags]
    return " ".join(names) or None


def format_bullets(items: Iterable[str]) -> str | None:
    lines = [f"- {item}" for item in items]
    return "\n".join(lines) or None


def format_todos(items: Iterable[str], todo_tag: str = "") -> str | None:
    """Render todo items as unchecked task lines, optionally tagged."""
    suffix = f" #{todo_tag}" if todo_tag else ""
    lines = [f"- [ ] {item}{suffix}" for item in items]
    return "\n".join(lines) or None


def format_wiki_links(names: Iterable[str]) -> str | None:
    lines = [f"- [[{name}]]" for name in names]
    return "\n".join(lines) or None


def filename_from_url(url: str) -> str:
    """Last path segment of ``url``, or an empty string if there is none."""
    path = urlparse(url).path
    return unquote(path.rsplit("/", 1)[-1])
