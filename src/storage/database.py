"""Relational database driver backed by SQLite.

Each content type is a partition of the ``content_items`` table.  Paths
take the form ``{content_type}/{id}.md``.  Deletes are soft: the row gets
a ``deleted_at`` timestamp and stops being visible to every operation.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
from contextlib import closing
from datetime import UTC, datetime
from pathlib import Path

from folio.content.models import ContentItem
from folio.errors import (
    ContentNotFoundError,
    NetworkFailureError,
    ReadFailedError,
    StorageError,
    WriteFailedError,
)
from folio.storage.base import MARKDOWN_SUFFIX, ContentRepository

logger = logging.getLogger(__name__)

_list = list

_ID_RE = re.compile(r"(?:^|/)(\d+)(?:\.md)?$")

_SCHEMA = """
CREATE TABLE IF NOT EXISTS content_items (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content_type TEXT NOT NULL,
    slug TEXT,
    title TEXT,
    status TEXT,
    body TEXT NOT NULL DEFAULT '',
    frontmatter TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    deleted_at TEXT
);
CREATE INDEX IF NOT EXISTS ix_content_items_type_slug ON content_items (content_type, slug);
"""


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class DatabaseRepository(ContentRepository):
    """Content stored as rows, scoped to one content type.

    Frontmatter is kept as ordered JSON; ``id`` always reflects the row id
    and is injected on read, as are the ``slug``, ``status`` and
    ``created_at`` columns when the stored frontmatter lacks them.
    """

    driver_name = "database"

    def __init__(self, database: str | Path = "./folio.db", content_type: str = "pages") -> None:
        self.database = str(database)
        self.content_type = content_type
        self._own_path_re = re.compile(
            rf"^{re.escape(content_type)}/(\d+){re.escape(MARKDOWN_SUFFIX)}$"
        )
        if self.database != ":memory:":
            Path(self.database).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.database)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)

    def close(self) -> None:
        self._conn.close()

    # ── Private helpers ──────────────────────────────────────────

    def _build_path(self, item_id: int) -> str:
        return f"{self.content_type}/{item_id}{MARKDOWN_SUFFIX}"

    @staticmethod
    def _extract_id(path: str) -> int | None:
        match = _ID_RE.search(path.strip("/"))
        return int(match.group(1)) if match else None

    def _target_id(self, path: str, item: ContentItem) -> int | None:
        """Row id a write may update in place.

        Only a path of this driver's own ``{type}/{id}.md`` shape whose item
        carries the same ``id`` counts; anything else, such as a slug that
        happens to be numeric, is matched by slug instead.
        """
        match = self._own_path_re.match(path.strip("/"))
        if match is None:
            return None
        claimed = item.get("id")
        if claimed is None or isinstance(claimed, bool) or str(claimed) != match.group(1):
            return None
        return int(match.group(1))

    def _find_row(self, item_id: int | None) -> sqlite3.Row | None:
        if item_id is None:
            return None
        with closing(self._conn.cursor()) as cur:
            cur.execute(
                "SELECT * FROM content_items WHERE id = ? AND content_type = ? AND deleted_at IS NULL",
                (item_id, self.content_type),
            )
            return cur.fetchone()

    def _find_by_slug(self, slug: str) -> sqlite3.Row | None:
        with closing(self._conn.cursor()) as cur:
            cur.execute(
                "SELECT * FROM content_items WHERE slug = ? AND content_type = ? "
                "AND deleted_at IS NULL ORDER BY id LIMIT 1",
                (slug, self.content_type),
            )
            return cur.fetchone()

    # ── Contract ─────────────────────────────────────────────────

    def read(self, path: str) -> ContentItem:
        try:
            row = self._find_row(self._extract_id(path))
        except sqlite3.Error as exc:
            raise ReadFailedError(path, str(exc)) from exc
        if row is None:
            raise ContentNotFoundError(path)

        try:
            stored = json.loads(row["frontmatter"] or "{}")
        except json.JSONDecodeError as exc:
            raise ReadFailedError(path, f"corrupt frontmatter: {exc}") from exc
        stored.pop("id", None)
        frontmatter = {"id": row["id"], **stored}
        for column in ("slug", "status"):
            if column not in frontmatter and row[column] is not None:
                frontmatter[column] = row[column]
        if "created_at" not in frontmatter and "createdAt" not in frontmatter:
            frontmatter["created_at"] = row["created_at"]
        try:
            modified = datetime.fromisoformat(row["updated_at"])
        except (TypeError, ValueError) as exc:
            raise ReadFailedError(path, f"corrupt updated_at: {exc}") from exc
        return ContentItem(row["body"], frontmatter, modified_at=modified)

    def write(self, path: str, item: ContentItem) -> bool:
        frontmatter = {k: v for k, v in item.frontmatter.items() if k != "id"}
        slug = item.get("slug")
        title = item.get("title")
        status = item.get("status")
        now = _now()

        try:
            row = self._find_row(self._target_id(path, item))
            if row is None and slug:
                row = self._find_by_slug(str(slug))

            with self._conn:
                if row is None:
                    cur = self._conn.execute(
                        "INSERT INTO content_items "
                        "(content_type, slug, title, status, body, frontmatter, created_at, updated_at) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                        (
                            self.content_type,
                            None if slug is None else str(slug),
                            None if title is None else str(title),
                            None if status is None else str(status),
                            item.content,
                            json.dumps(frontmatter),
                            now,
                            now,
                        ),
                    )
                    item_id = cur.lastrowid
                else:
                    item_id = row["id"]
                    self._conn.execute(
                        "UPDATE content_items SET slug = ?, title = ?, status = ?, body = ?, "
                        "frontmatter = ?, updated_at = ? WHERE id = ?",
                        (
                            row["slug"] if slug is None else str(slug),
                            row["title"] if title is None else str(title),
                            row["status"] if status is None else str(status),
                            item.content,
                            json.dumps(frontmatter),
                            now,
                            item_id,
                        ),
                    )
        except sqlite3.OperationalError as exc:
            logger.error("Failed to write content to database: %s (%s)", path, exc)
            raise NetworkFailureError(self.driver_name, str(exc)) from exc
        except sqlite3.Error as exc:
            logger.error("Failed to write content to database: %s (%s)", path, exc)
            raise WriteFailedError(path, str(exc)) from exc

        logger.info(
            "Content written to database: %s id=%s (%d bytes)", self.content_type, item_id, item.size
        )
        return True

    def exists(self, path: str) -> bool:
        try:
            return self._find_row(self._extract_id(path)) is not None
        except sqlite3.Error:
            return False

    def delete(self, path: str) -> bool:
        try:
            row = self._find_row(self._extract_id(path))
            if row is None:
                return False
            with self._conn:
                self._conn.execute(
                    "UPDATE content_items SET deleted_at = ? WHERE id = ?", (_now(), row["id"])
                )
        except sqlite3.Error as exc:
            raise WriteFailedError(path, f"Failed to delete: {exc}") from exc
        logger.info("Content soft-deleted from database: %s", path)
        return True

    def list(self, directory: str = "") -> _list[str]:
        try:
            with closing(self._conn.cursor()) as cur:
                cur.execute(
                    "SELECT id FROM content_items WHERE content_type = ? AND deleted_at IS NULL "
                    "ORDER BY id",
                    (self.content_type,),
                )
                paths = [self._build_path(row["id"]) for row in cur.fetchall()]
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to list {self.content_type}: {exc}") from exc

        directory = directory.strip("/")
        if directory:
            paths = [p for p in paths if p.startswith(directory + "/")]
        return paths

    def test_connection(self) -> bool:
        try:
            with closing(self._conn.cursor()) as cur:
                cur.execute(
                    "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'content_items'"
                )
                return cur.fetchone() is not None
        except sqlite3.Error:
            logger.error("Database connection test failed", exc_info=True)
            return False
