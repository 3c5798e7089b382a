"""Wire schemas for the Voicenotes recordings API."""

from __future__ import annotations

from enum import IntEnum, StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class _WireModel(BaseModel):
    model_config = ConfigDict(extra="ignore")

    @classmethod
    def _default_for(cls, value: Any, info: ValidationInfo) -> Any:
        """Replace an explicit null with the field's default."""
        if value is None and info.field_name is not None:
            return cls.model_fields[info.field_name].get_default(call_default_factory=True)
        return value


class Tag(_WireModel):
    name: str


class AttachmentType(IntEnum):
    """Discriminant of a recording attachment."""

    DESCRIPTION = 1
    FILE = 2
    MANUAL = 3


class Attachment(_WireModel):
    type: int
    url: str | None = None
    description: str | None = None


class ContentShape(StrEnum):
    TEXT = "text"
    LIST = "list"
    EMAIL = "email"


class CreationKind(StrEnum):
    """Creation types the note template knows how to place.

    Anything else the server sends is ignored.
    """

    SUMMARY = "summary"
    POINTS = "points"
    TIDY = "tidy"
    TODO = "todo"
    TWEET = "tweet"
    BLOG = "blog"
    EMAIL = "email"
    CUSTOM = "custom"

    @property
    def shape(self) -> ContentShape:
        return CREATION_SHAPES[self]

    @classmethod
    def from_wire(cls, value: str) -> CreationKind | None:
        value = CREATION_ALIASES.get(value, value)
        try:
            return cls(value)
        except ValueError:
            return None


CREATION_SHAPES: dict[CreationKind, ContentShape] = {
    CreationKind.SUMMARY: ContentShape.TEXT,
    CreationKind.POINTS: ContentShape.LIST,
    CreationKind.TIDY: ContentShape.TEXT,
    CreationKind.TODO: ContentShape.LIST,
    CreationKind.TWEET: ContentShape.TEXT,
    CreationKind.BLOG: ContentShape.TEXT,
    CreationKind.EMAIL: ContentShape.EMAIL,
    CreationKind.CUSTOM: ContentShape.TEXT,
}

CREATION_ALIASES: dict[str, str] = {"tidy_transcript": "tidy"}


class EmailContent(_WireModel):
    subject: str = ""
    body: str = ""


class CreationContent(_WireModel):
    data: list[str] | EmailContent | str | None = None


class Creation(_WireModel):
    type: str
    content: CreationContent = Field(default_factory=CreationContent)
    markdown_content: str | None = None

    @field_validator("content", mode="before")
    @classmethod
    def _null_content(cls, value: Any, info: ValidationInfo) -> Any:
        return cls._default_for(value, info)

    @property
    def kind(self) -> CreationKind | None:
        return CreationKind.from_wire(self.type)


class RelatedNote(_WireModel):
    title: str
    created_at: str


class Recording(_WireModel):
    """A server-side voice note. ``recording_id`` is the sync key."""

    recording_id: int
    id: int | None = None
    title: str | None = None
    transcript: str = ""
    duration: int = 0
    created_at: str
    updated_at: str
    tags: list[Tag] = Field(default_factory=list)
    creations: list[Creation] = Field(default_factory=list)
    attachments: list[Attachment] = Field(default_factory=list)
    subnotes: list[Recording] = Field(default_factory=list)
    related_notes: list[RelatedNote] = Field(default_factory=list)

    @field_validator(
        "transcript",
        "duration",
        "tags",
        "creations",
        "attachments",
        "subnotes",
        "related_notes",
        mode="before",
    )
    @classmethod
    def _null_fields(cls, value: Any, info: ValidationInfo) -> Any:
        return cls._default_for(value, info)

    @property
    def tag_names(self) -> set[str]:
        return {tag.name for tag in self.tags}

    def creation(self, kind: CreationKind) -> Creation | None:
        """Return the first creation of the given kind (duplicates are ignored)."""
        for creation in self.creations:
            if creation.kind is kind:
                return creation
        return None


class PageLinks(_WireModel):
    next: str | None = None


class RecordingPage(_WireModel):
    """One listing page. Items stay raw so each recording is validated on its own."""

    data: list[dict[str, Any]] = Field(default_factory=list)
    links: PageLinks = Field(default_factory=PageLinks)


class SignedUrl(_WireModel):
    url: str


class UserProfile(_WireModel):
    id: int
    name: str
    email: str
    photo_url: str | None = None
    subscription_status: bool | None = None
    subscription_plan: str | None = None
    recordings_count: int | None = None
