"""Local filesystem driver.

Items live as ``.md`` files under ``root/base_path``.  Writes go to a
temporary sibling first and are moved into place with ``os.replace`` so a
reader never sees a half-written file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from folio.content.codec import parse, serialize
from folio.content.models import ContentItem
from folio.errors import ContentNotFoundError, ReadFailedError, StorageError, WriteFailedError
from folio.storage.base import MARKDOWN_SUFFIX, ContentRepository

logger = logging.getLogger(__name__)

_list = list


class LocalRepository(ContentRepository):
    """Store content as markdown files on the local filesystem."""

    driver_name = "local"

    def __init__(self, root: str | Path = "./content", base_path: str = "") -> None:
        self.root = Path(root)
        self.base_path = base_path.strip("/")

    @property
    def base_dir(self) -> Path:
        return self.root / self.base_path if self.base_path else self.root

    def _full_path(self, path: str) -> Path:
        return self.base_dir / path.lstrip("/")

    def read(self, path: str) -> ContentItem:
        full = self._full_path(path)
        if not full.is_file():
            raise ContentNotFoundError(path)
        try:
            raw = full.read_text(encoding="utf-8")
            mtime = datetime.fromtimestamp(full.stat().st_mtime, tz=UTC)
        except FileNotFoundError as exc:
            raise ContentNotFoundError(path) from exc
        except (OSError, UnicodeDecodeError) as exc:
            logger.error("Failed to read from local storage: %s (%s)", path, exc)
            raise ReadFailedError(path, str(exc)) from exc
        return parse(raw, modified_at=mtime)

    def write(self, path: str, item: ContentItem) -> bool:
        full = self._full_path(path)
        try:
            full.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=full.parent, prefix=".folio-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8", newline="") as fh:
                    fh.write(serialize(item))
                    fh.flush()
                    os.fsync(fh.fileno())
                os.replace(tmp_name, full)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            logger.error("Failed to write to local storage: %s (%s)", path, exc)
            raise WriteFailedError(path, str(exc)) from exc

        logger.info("Content written to local storage: %s (%d bytes)", path, item.size)
        return True

    def exists(self, path: str) -> bool:
        try:
            return self._full_path(path).is_file()
        except OSError:
            return False

    def delete(self, path: str) -> bool:
        full = self._full_path(path)
        if not full.is_file():
            return False
        try:
            full.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise WriteFailedError(path, f"Failed to delete: {exc}") from exc
        logger.info("Content deleted from local storage: %s", path)
        return True

    def list(self, directory: str = "") -> _list[str]:
        search = self._full_path(directory) if directory else self.base_dir
        if not search.exists():
            return []
        try:
            files = sorted(
                p.relative_to(self.base_dir).as_posix()
                for p in search.rglob(f"*{MARKDOWN_SUFFIX}")
                if p.is_file()
            )
        except OSError as exc:
            raise StorageError(f"Failed to list directory {directory!r}: {exc}") from exc
        return files

    def test_connection(self) -> bool:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            return os.access(self.base_dir, os.W_OK)
        except OSError:
            logger.warning("Local storage root is not usable: %s", self.base_dir, exc_info=True)
            return False
