"""Base class every storage driver implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from folio.content.models import ContentItem

MARKDOWN_SUFFIX = ".md"

# Alias to avoid shadowing by ContentRepository.list
_list = list


class ContentRepository(ABC):
    """Uniform contract over database, local, s3, gcs, azure and github storage.

    Implementations translate backend failures into ``folio.errors`` types:
    ``read`` raises ContentNotFoundError / ReadFailedError, ``write`` and
    ``delete`` raise WriteError subclasses, ``list`` raises StorageError.
    """

    driver_name: str = ""

    @abstractmethod
    def read(self, path: str) -> ContentItem:
        """Read and parse the item stored at ``path``."""

    @abstractmethod
    def write(self, path: str, item: ContentItem) -> bool:
        """Durably store ``item`` at ``path``, replacing any existing content."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Whether ``path`` holds an item. Backend errors count as absent."""

    @abstractmethod
    def delete(self, path: str) -> bool:
        """Remove ``path``; afterwards ``exists(path)`` is False."""

    @abstractmethod
    def list(self, directory: str = "") -> _list[str]:
        """Every ``.md`` path under ``directory``, relative to the configured prefix.

        Backend pagination is drained before returning.
        """

    @abstractmethod
    def test_connection(self) -> bool:
        """Check credentials and reachability without touching content."""

    def get_driver_name(self) -> str:
        return self.driver_name

    def close(self) -> None:
        """Release connections held by the driver. Nothing to do by default."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(driver={self.driver_name!r})"


class ObjectStoreRepository(ContentRepository):
    """Shared key handling for prefix-based object stores."""

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix.strip("/")

    def _build_key(self, path: str) -> str:
        path = path.lstrip("/")
        if not self.prefix:
            return path
        return f"{self.prefix}/{path}" if path else self.prefix

    def _list_prefix(self, directory: str) -> str:
        key = self._build_key(directory)
        if key and not key.endswith("/"):
            key += "/"
        return key

    def _strip_prefix(self, key: str) -> str:
        if not self.prefix:
            return key
        prefix = self.prefix + "/"
        return key[len(prefix) :] if key.startswith(prefix) else key

    def _collect(self, keys: Iterable[str]) -> _list[str]:
        """Filter raw keys to markdown paths relative to the prefix, de-duplicated in order."""
        seen: dict[str, None] = {}
        for key in keys:
            if key.endswith("/") or not key.endswith(MARKDOWN_SUFFIX):
                continue
            seen.setdefault(self._strip_prefix(key), None)
        return _list(seen)
