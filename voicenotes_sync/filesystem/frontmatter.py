"""Reading back metadata persisted in a synced note's YAML front matter."""

from __future__ import annotations

import logging
import re
from datetime import date, datetime

import frontmatter
import yaml

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*(?:\n|\Z)", re.DOTALL)


def _raw_field(raw_content: str, key: str) -> str | None:
    """Line-scan the front matter block for ``key: value``.

    Used when the user's frontmatter template produced text that is not valid
    YAML; the synthetic ``recording_id`` line is still recoverable.
    """
    match = _FENCE_RE.match(raw_content)
    if match is None:
        return None
    pattern = re.compile(rf"^{re.escape(key)}:\s*(.*?)\s*$", re.MULTILINE)
    field_match = pattern.search(match.group(1))
    if field_match is None:
        return None
    return field_match.group(1).strip("'\"") or None


def load_metadata(raw_content: str) -> dict[str, object] | None:
    """Parse the front matter mapping, or None when it is not valid YAML."""
    try:
        post = frontmatter.loads(raw_content)
    except (yaml.YAMLError, TypeError, ValueError):
        return None
    return dict(post.metadata)


def read_recording_id(raw_content: str) -> int | None:
    """Return the ``recording_id`` stored in a note, if any."""
    metadata = load_metadata(raw_content)
    value: object | None
    if metadata is not None:
        value = metadata.get("recording_id")
    else:
        value = _raw_field(raw_content, "recording_id")
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        logger.debug("Ignoring non-numeric recording_id %r", value)
        return None


def read_created_at(raw_content: str) -> str | None:
    """Return a note's ``created_at`` as text (YAML dates are re-serialized)."""
    metadata = load_metadata(raw_content)
    value: object | None
    if metadata is not None:
        value = metadata.get("created_at")
    else:
        value = _raw_field(raw_content, "created_at")
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
