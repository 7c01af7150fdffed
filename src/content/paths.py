"""Path templating: expand ``{token}`` patterns into safe relative paths.

Example patterns:

- ``pages/{slug}.md`` → ``pages/about-us.md``
- ``posts/{year}/{month}/{slug}.md`` → ``posts/2025/12/hello-world.md``
- ``{type}/{status}/{slug}.md`` → ``posts/published/hello-world.md``

Every resolved path is validated before it is handed to a backend.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections.abc import Mapping

from folio.content.models import ContentAttributes
from folio.errors import (
    AbsolutePathError,
    EmptyPathError,
    InvalidCharactersError,
    PathTooLongError,
    PathTraversalError,
)

logger = logging.getLogger(__name__)

MAX_PATH_LENGTH = 255
EXTENSION = ".md"
UNTITLED = "untitled"

AVAILABLE_TOKENS: dict[str, str] = {
    "type": "Content type (pages/posts)",
    "id": "Item ID",
    "slug": "URL slug",
    "year": "Publish year (YYYY)",
    "month": "Publish month (MM)",
    "day": "Publish day (DD)",
    "author_id": "Author ID",
    "status": "Content status (draft/published/archived)",
}

DEFAULT_PATTERNS: dict[str, str] = {
    "pages": "pages/{slug}.md",
    "posts": "posts/{year}/{month}/{slug}.md",
}
FALLBACK_PATTERN = "{type}/{slug}.md"

_SAMPLE_TOKENS: dict[str, str] = {
    "id": "123",
    "slug": "example-post",
    "year": "2025",
    "month": "12",
    "day": "02",
    "author_id": "1",
    "status": "published",
}

# Longest names first so no token can shadow a longer one.
_TOKEN_RE = re.compile(
    r"\{(" + "|".join(sorted(AVAILABLE_TOKENS, key=len, reverse=True)) + r")\}"
)
_ANY_TOKEN_RE = re.compile(r"\{[a-z_]+\}")
_INVALID_CHARS_RE = re.compile(r"[^A-Za-z0-9/_.\-]")
_COMPONENT_INVALID_RE = re.compile(r"[^a-z0-9_.\-]")
_DASHES_RE = re.compile(r"-{2,}")


def default_pattern(content_type: str) -> str:
    """Return the built-in pattern for a content type."""
    return DEFAULT_PATTERNS.get(content_type, FALLBACK_PATTERN)


class PathPatternResolver:
    """Resolves path patterns with tokens to validated relative file paths.

    Args:
        patterns: Optional per-content-type overrides of the default patterns.
    """

    def __init__(self, patterns: Mapping[str, str] | None = None) -> None:
        self.patterns = {k: v for k, v in (patterns or {}).items() if v}

    def pattern_for(self, content_type: str) -> str:
        return self.patterns.get(content_type) or default_pattern(content_type)

    def resolve(self, pattern: str, content_type: str, attrs: ContentAttributes) -> str:
        """Expand ``pattern`` for an item and validate the result.

        Tokens without a matching attribute stay in the output literally.

        Raises:
            InvalidPathError: One of its subclasses, when the path is unsafe.
        """
        tokens = self._token_map(content_type, attrs)

        def substitute(match: re.Match[str]) -> str:
            value = tokens.get(match.group(1))
            return match.group(0) if value is None else value

        path = _TOKEN_RE.sub(substitute, pattern)

        if not path.strip():
            raise EmptyPathError(path)
        if not path.endswith(EXTENSION):
            path += EXTENSION

        unresolved = _ANY_TOKEN_RE.findall(path)
        if unresolved:
            logger.warning("Path pattern %r left unresolved tokens: %s", pattern, ", ".join(unresolved))

        self.validate(path)
        return path

    def resolve_for(self, content_type: str, attrs: ContentAttributes) -> str:
        """Resolve using the configured (or default) pattern for ``content_type``."""
        return self.resolve(self.pattern_for(content_type), content_type, attrs)

    def validate(self, path: str) -> None:
        """Raise the matching InvalidPathError subclass if ``path`` is unsafe."""
        if not path.strip():
            raise EmptyPathError(path)
        if ".." in path.split("/"):
            raise PathTraversalError(path)
        if path.startswith("/"):
            raise AbsolutePathError(path)
        invalid = _INVALID_CHARS_RE.findall(_ANY_TOKEN_RE.sub("", path))
        if invalid:
            raise InvalidCharactersError(path, "".join(dict.fromkeys(invalid)))
        if len(path) > MAX_PATH_LENGTH:
            raise PathTooLongError(path, MAX_PATH_LENGTH)

    @staticmethod
    def _token_map(content_type: str, attrs: ContentAttributes) -> dict[str, str | None]:
        tokens: dict[str, str | None] = {
            "type": content_type,
            "slug": attrs.slug or UNTITLED,
            "id": attrs.id,
            "status": attrs.status,
            "author_id": attrs.author_id,
            "year": None,
            "month": None,
            "day": None,
        }
        when = attrs.date
        if when is not None:
            tokens["year"] = f"{when.year:04d}"
            tokens["month"] = f"{when.month:02d}"
            tokens["day"] = f"{when.day:02d}"
        return tokens

    @staticmethod
    def sanitize_component(text: str) -> str:
        """Turn free text into a single safe path component."""
        sanitized = _COMPONENT_INVALID_RE.sub("-", text.lower())
        sanitized = _DASHES_RE.sub("-", sanitized).strip("-")
        if not sanitized or sanitized in (".", ".."):
            return UNTITLED
        return sanitized

    @staticmethod
    def get_directory(path: str) -> str:
        return posixpath.dirname(path) or "."

    @staticmethod
    def has_token(pattern: str, token: str) -> bool:
        return "{" + token + "}" in pattern

    @staticmethod
    def get_tokens(pattern: str) -> list[str]:
        """Return the token names used in ``pattern``, in order of appearance."""
        return [m[1:-1] for m in _ANY_TOKEN_RE.findall(pattern)]

    @staticmethod
    def preview(pattern: str, content_type: str) -> str:
        """Expand ``pattern`` with sample data, without validation."""
        tokens = {"type": content_type, **_SAMPLE_TOKENS}
        path = _TOKEN_RE.sub(lambda m: tokens[m.group(1)], pattern)
        if not path.endswith(EXTENSION):
            path += EXTENSION
        return path
