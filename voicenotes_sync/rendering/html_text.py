"""Flatten HTML fragments in rendered notes to plain markdown text."""

from __future__ import annotations

import re

HTML_ENTITIES: dict[str, str] = {
    "&lt;": "<",
    "&gt;": ">",
    "&amp;": "&",
    "&quot;": '"',
    "&#39;": "'",
    "&nbsp;": " ",
}

_ENTITY_RE = re.compile(r"&[a-zA-Z0-9#]+;")
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
# A tag must open with a name (or ! for comments/doctypes) so "3 < 5" survives.
_TAG_RE = re.compile(r"</?[A-Za-z!][^>]*(?:>|$)")


def decode_entities(text: str) -> str:
    """Decode the known named entities; unknown ones are left as-is."""
    return _ENTITY_RE.sub(lambda m: HTML_ENTITIES.get(m.group(0), m.group(0)), text)


def convert_html_to_markdown(text: str) -> str:
    """Decode entities, turn ``<br>`` variants into newlines, strip other tags, trim."""
    markdown = decode_entities(text)
    markdown = _BR_RE.sub("\n", markdown)
    markdown = _TAG_RE.sub("", markdown)
    return markdown.strip()
