"""Sync configuration loaded from the environment and the host settings file."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from jinja2 import Environment, TemplateSyntaxError
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

SETTINGS_FILE = ".voicenotes-sync.json"

DEFAULT_FRONTMATTER_TEMPLATE = """duration: {{duration}}
created_at: {{created_at}}
updated_at: {{updated_at}}
{{frontmatter_tags}}"""

DEFAULT_NOTE_TEMPLATE = """# {{ title }}

Date: {{ date }}

{% if summary %}
## Summary

{{ summary }}
{% endif %}

{% if points %}
## Main points

{{ points }}
{% endif %}

{% if attachments %}
## Attachments

{{ attachments }}
{% endif %}

{% if manual_entries %}
## Manual entries

{{ manual_entries }}
{% endif %}

{% if tidy %}
## Tidy Transcript

{{ tidy }}

{% else %}
## Transcript

{{ transcript }}
{% endif %}

{% if embedded_audio_link %}
{{ embedded_audio_link }}
{% endif %}

{% if audio_filename %}
[[{{ audio_filename }}|Audio]]
{% endif %}

{% if todo %}
## Todos

{{ todo }}
{% endif %}

{% if email %}
## Email

{{ email }}
{% endif %}

{% if blog %}
## Blog

{{ blog }}
{% endif %}

{% if tweet %}
## Tweet

{{ tweet }}
{% endif %}

{% if custom %}
## Others

{{ custom }}
{% endif %}

{% if tags %}
## Tags

{{ tags }}
{% endif %}

{% if related_notes %}
# Related Notes

{{ related_notes }}
{% endif %}

{% if parent_note %}
## Parent Note

- {{ parent_note }}
{% endif %}

{% if subnotes %}
## Subnotes

{{ subnotes }}
{% endif %}"""

DEFAULT_FILENAME_TEMPLATE = "{{date}} {{title}}"


class Settings(BaseSettings):
    """Voicenotes sync settings.

    Treated as immutable input to a sync pass. Use ``SettingsStore.update`` (or
    ``model_copy(update=...)``) to derive a changed instance.
    """

    model_config = SettingsConfigDict(
        env_prefix="VOICENOTES_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # Auth
    token: str | None = None
    username: str | None = None
    password: str | None = None

    # Remote
    api_base_url: str = "https://api.voicenotes.com/api"
    request_timeout_seconds: float = Field(default=30.0, gt=0)
    max_rate_limit_retries: int = Field(default=5, ge=0)
    default_retry_after_seconds: float = Field(default=5.0, ge=0)

    # Local store
    vault_dir: Path = Path(".")
    sync_directory: str = Field(default="voicenotes", min_length=1)

    # Scheduling
    automatic_sync: bool = True
    sync_interval_minutes: int = Field(default=60, ge=1)

    # Assets
    download_audio: bool = False
    download_attachments: bool = True
    show_image_descriptions: bool = True

    # Destructive: both flags must be set before anything is deleted remotely
    delete_synced: bool = False
    really_delete_synced: bool = False

    # Rendering
    todo_tag: str = ""
    exclude_tags: list[str] = Field(default_factory=list)
    filename_date_format: str = "YYYY-MM-DD"
    date_format: str = "YYYY-MM-DD"
    timezone: str | None = None
    human_readable_duration: bool = True
    filename_template: str = DEFAULT_FILENAME_TEMPLATE
    frontmatter_template: str = DEFAULT_FRONTMATTER_TEMPLATE
    note_template: str = DEFAULT_NOTE_TEMPLATE

    debug: bool = False

    @property
    def sync_dir(self) -> Path:
        """Absolute-ish path of the sync directory inside the vault."""
        return self.vault_dir / self.sync_directory

    @property
    def deletion_enabled(self) -> bool:
        """True only when both delete-after-sync confirmations are set."""
        return self.delete_synced and self.really_delete_synced

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

    def validate_templates(self) -> None:
        """Compile every user template, raising ValueError on syntax errors."""
        env = Environment()
        violations: list[str] = []
        for name in ("filename_template", "frontmatter_template", "note_template"):
            try:
                env.parse(getattr(self, name))
            except TemplateSyntaxError as exc:
                violations.append(f"{name}: {exc.message} (line {exc.lineno})")
        if violations:
            joined = "; ".join(violations)
            msg = f"Invalid templates: {joined}"
            raise ValueError(msg)


class SettingsStore:
    """JSON-backed persistence of the host's settings record."""

    def __init__(self, path: Path) -> None:
        self.path = path

    @classmethod
    def for_vault(cls, vault_dir: Path) -> SettingsStore:
        return cls(vault_dir / SETTINGS_FILE)

    def _read_raw(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        data: dict[str, Any] = json.loads(self.path.read_text(encoding="utf-8"))
        return data

    def load(self, **overrides: Any) -> Settings:
        """Load persisted settings; explicit overrides win over the file."""
        raw = self._read_raw()
        raw.update({k: v for k, v in overrides.items() if v is not None})
        return Settings(**raw)

    def save(self, settings: Settings) -> None:
        data = settings.model_dump(mode="json")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        logger.debug("Saved settings to %s", self.path)

    def update(self, settings: Settings, **changes: Any) -> Settings:
        """Persist a copy of settings with changes applied and return it."""
        updated = settings.model_copy(update=changes)
        self.save(updated)
        return updated

    def clear_sensitive_data(self, settings: Settings) -> Settings:
        return self.update(settings, token=None, password=None)
