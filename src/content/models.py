"""Content value types shared by every storage driver.

``ContentItem`` is the unit that moves between backends: a markdown body
plus ordered frontmatter.  Its hash and size are always derived from the
body, never taken from the caller.  ``ContentAttributes`` is the small set
of item attributes that path patterns are expanded from.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

Scalar = str | int | float | bool | None | list["Scalar"]


def content_hash(content: str) -> str:
    """Return the sha256 hex digest of a content body."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class ContentItem:
    """Immutable markdown body with frontmatter metadata.

    Frontmatter keeps insertion order for deterministic serialization;
    equality compares key/value pairs only.  ``modified_at`` is informational
    and does not take part in equality.
    """

    content: str
    frontmatter: dict[str, Scalar] = field(default_factory=dict)
    modified_at: datetime = field(default_factory=_utc_now, compare=False)
    hash: str = field(init=False)
    size: int = field(init=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "frontmatter", dict(self.frontmatter))
        object.__setattr__(self, "hash", content_hash(self.content))
        object.__setattr__(self, "size", len(self.content.encode("utf-8")))

    @classmethod
    def from_markdown(cls, raw: str, modified_at: datetime | None = None) -> ContentItem:
        from folio.content.codec import parse

        return parse(raw, modified_at=modified_at)

    def to_markdown(self) -> str:
        from folio.content.codec import serialize

        return serialize(self)

    def get(self, key: str, default: Any = None) -> Any:
        """Return a frontmatter value, or ``default`` when the key is absent."""
        return self.frontmatter.get(key, default)

    def has(self, key: str) -> bool:
        return key in self.frontmatter

    def with_content(self, content: str) -> ContentItem:
        return ContentItem(content, self.frontmatter, modified_at=_utc_now())

    def with_frontmatter(self, frontmatter: dict[str, Scalar]) -> ContentItem:
        return ContentItem(self.content, frontmatter, modified_at=_utc_now())

    def merge_frontmatter(self, frontmatter: dict[str, Scalar]) -> ContentItem:
        """Return a copy whose frontmatter is updated with ``frontmatter``.

        Existing keys keep their position, new keys are appended.
        """
        return ContentItem(self.content, {**self.frontmatter, **frontmatter}, modified_at=_utc_now())

    def touched(self, modified_at: datetime) -> ContentItem:
        """Return a copy carrying a backend-reported modification time."""
        return replace(self, modified_at=modified_at)


class ContentAttributes(BaseModel):
    """Attributes a path pattern can reference.

    Built from an item's own frontmatter so the destination path never
    depends on how the source backend happened to name the item.
    """

    id: str | None = None
    slug: str | None = None
    status: str | None = None
    author_id: str | None = None
    published_at: datetime | None = None
    created_at: datetime | None = None

    @field_validator("id", "slug", "status", "author_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> str | None:
        if value is None or isinstance(value, list):
            return None
        if isinstance(value, bool):
            return str(value).lower()
        return str(value)

    @field_validator("published_at", "created_at", mode="before")
    @classmethod
    def _lenient_datetime(cls, value: Any) -> datetime | None:
        if value is None or value == "":
            return None
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).strip())
        except ValueError:
            logger.debug("Ignoring unparseable date attribute: %r", value)
            return None

    @classmethod
    def from_item(cls, item: ContentItem) -> ContentAttributes:
        """Collect attributes from an item's frontmatter."""
        fm = item.frontmatter
        return cls(
            id=fm.get("id"),
            slug=fm.get("slug"),
            status=fm.get("status"),
            author_id=fm.get("author_id", fm.get("authorId")),
            published_at=fm.get("published_at", fm.get("publishedAt")),
            created_at=fm.get("created_at", fm.get("createdAt")),
        )

    @property
    def date(self) -> datetime | None:
        """The date used for ``{year}``/``{month}``/``{day}``."""
        return self.published_at or self.created_at
