"""Jinja-based rendering of note bodies and front matter."""

from __future__ import annotations

import logging
import re
from functools import lru_cache
from typing import TYPE_CHECKING, Any

from jinja2 import Environment, TemplateError

from voicenotes_sync.rendering.html_text import convert_html_to_markdown

if TYPE_CHECKING:
    from collections.abc import Mapping

    from jinja2 import Template

logger = logging.getLogger(__name__)

RECORDING_ID_HEADER = "recording_id: {{recording_id}}\n"
FRONTMATTER_FENCE = "---"

_EXCESS_NEWLINES_RE = re.compile(r"\n{3,}")


class TemplateRenderError(ValueError):
    """Raised when a user template cannot be parsed or rendered."""


def collapse_blank_lines(text: str) -> str:
    """Collapse runs of three or more newlines to a single blank line."""
    return _EXCESS_NEWLINES_RE.sub("\n\n", text)


class TemplateRenderer:
    """Renders user templates against a flat context mapping.

    Supports ``{{ var }}`` interpolation and ``{% if %}`` blocks. Missing or
    ``None`` values render as empty strings so optional sections disappear.
    Lists must be pre-joined into text by the caller.
    """

    def __init__(self) -> None:
        self._env = Environment(autoescape=False, keep_trailing_newline=True)
        self._compile = lru_cache(maxsize=32)(self._compile_uncached)

    def _compile_uncached(self, source: str) -> Template:
        try:
            return self._env.from_string(source)
        except TemplateError as exc:
            msg = f"Invalid template: {exc}"
            raise TemplateRenderError(msg) from exc

    def render(self, template: str, context: Mapping[str, Any]) -> str:
        """Render ``template`` and collapse template whitespace noise."""
        compiled = self._compile(template)
        values = {key: ("" if value is None else value) for key, value in context.items()}
        try:
            rendered = compiled.render(values)
        except TemplateError as exc:
            msg = f"Template rendering failed: {exc}"
            raise TemplateRenderError(msg) from exc
        return collapse_blank_lines(rendered)

    def render_note(self, template: str, context: Mapping[str, Any]) -> str:
        """Render a note body and flatten any HTML in it to plain markdown."""
        return convert_html_to_markdown(self.render(template, context))

    def render_frontmatter(self, template: str, context: Mapping[str, Any]) -> str:
        """Render front matter; ``recording_id`` is always the first field.

        The synced-index is rebuilt from this field, so it is prepended even
        when the user's template omits it.
        """
        return self.render(RECORDING_ID_HEADER + template, context).strip()

    def create_complete_note(
        self,
        note_template: str,
        frontmatter_template: str,
        context: Mapping[str, Any],
    ) -> str:
        """Render a full note: fenced front matter followed by the body."""
        body = self.render_note(note_template, context)
        header = self.render_frontmatter(frontmatter_template, context)
        return f"{FRONTMATTER_FENCE}\n{header}\n{FRONTMATTER_FENCE}\n{body}"
