"""JSON-backed migration record store.

Persists all MigrationRecords in a single JSON file.  Every read goes back
to disk so that status checks never act on a stale copy, and every
mutation is saved immediately.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

from folio.errors import MigrationAlreadyRunningError, MigrationNotFoundError, StorageError
from folio.migration.models import ACTIVE_STATUSES, MigrationRecord, MigrationStatus

logger = logging.getLogger(__name__)

STORE_FILENAME = ".folio-migrations.json"

# Alias to avoid shadowing by MigrationStore.list method
_list = list

# One lock per store file, shared by every MigrationStore in the process.
_LOCKS: dict[Path, threading.Lock] = {}
_LOCKS_GUARD = threading.Lock()


def _lock_for(path: Path) -> threading.Lock:
    with _LOCKS_GUARD:
        return _LOCKS.setdefault(path.resolve(), threading.Lock())


class _StoreData(BaseModel):
    """Internal wrapper for JSON serialization."""

    next_id: int = 1
    records: list[MigrationRecord] = Field(default_factory=list)


class MigrationStore:
    """CRUD store for migration records keyed by integer id."""

    def __init__(self, state_dir: Path | str) -> None:
        self._path = Path(state_dir) / STORE_FILENAME
        self._lock = _lock_for(self._path)

    @property
    def path(self) -> Path:
        return self._path

    # ── Private helpers ──────────────────────────────────────────

    def _load(self) -> _StoreData:
        if not self._path.exists():
            return _StoreData()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            return _StoreData.model_validate(raw)
        except (json.JSONDecodeError, ValueError, KeyError):
            logger.warning("Corrupt migration store at %s, starting fresh", self._path)
            return _StoreData()

    def _save(self, data: _StoreData) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self._path.parent, prefix=".folio-migrations-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(data.model_dump_json(indent=2))
            os.replace(tmp, self._path)
        except OSError as exc:
            Path(tmp).unlink(missing_ok=True)
            raise StorageError(f"Failed to save migration store {self._path}: {exc}") from exc

    # ── Write operations ─────────────────────────────────────────

    def create(self, record: MigrationRecord) -> MigrationRecord:
        """Assign the next id to ``record`` and persist it."""
        with self._lock:
            data = self._load()
            return self._insert(data, record)

    def create_exclusive(self, record: MigrationRecord) -> MigrationRecord:
        """Persist ``record`` unless its content type already has an active run.

        The check and the insert happen under one lock against freshly
        loaded state.

        Raises MigrationAlreadyRunningError if a PENDING or RUNNING record
        exists for the same content type.
        """
        with self._lock:
            data = self._load()
            for existing in data.records:
                if existing.content_type == record.content_type and existing.status in ACTIVE_STATUSES:
                    raise MigrationAlreadyRunningError(record.content_type)
            return self._insert(data, record)

    def _insert(self, data: _StoreData, record: MigrationRecord) -> MigrationRecord:
        stored = record.model_copy(update={"id": data.next_id}, deep=True)
        data.next_id += 1
        data.records.append(stored)
        self._save(data)
        logger.debug("Created migration record %d for %s", stored.id, stored.content_type)
        return stored.model_copy(deep=True)

    def update(self, record: MigrationRecord) -> MigrationRecord:
        """Replace the stored record with the same id.

        Raises MigrationNotFoundError if the id does not exist.
        """
        with self._lock:
            data = self._load()
            for index, existing in enumerate(data.records):
                if existing.id == record.id:
                    record.updated_at = datetime.now(tz=UTC)
                    data.records[index] = record.model_copy(deep=True)
                    self._save(data)
                    return record
        raise MigrationNotFoundError(record.id)

    def update_unless_cancelled(self, record: MigrationRecord) -> bool:
        """Save a running record's progress without undoing a cancellation.

        The stored copy is re-read under the lock.  If it is no longer active,
        its status, error and completion time are adopted onto ``record``
        before saving, so only the counters change.  Returns whether the run
        is still active.

        Raises MigrationNotFoundError if the id does not exist.
        """
        with self._lock:
            data = self._load()
            for index, existing in enumerate(data.records):
                if existing.id != record.id:
                    continue
                active = existing.status in ACTIVE_STATUSES
                if not active:
                    record.status = existing.status
                    record.error = existing.error
                    record.completed_at = existing.completed_at
                record.updated_at = datetime.now(tz=UTC)
                data.records[index] = record.model_copy(deep=True)
                self._save(data)
                return active
        raise MigrationNotFoundError(record.id)

    def fail_if_active(self, migration_id: int, reason: str) -> MigrationRecord | None:
        """Mark a PENDING or RUNNING record FAILED; None if it is already terminal.

        Raises MigrationNotFoundError if the id does not exist.
        """
        with self._lock:
            data = self._load()
            for existing in data.records:
                if existing.id != migration_id:
                    continue
                if existing.status not in ACTIVE_STATUSES:
                    return None
                now = datetime.now(tz=UTC)
                existing.status = MigrationStatus.FAILED
                existing.error = reason
                existing.completed_at = now
                existing.updated_at = now
                self._save(data)
                return existing.model_copy(deep=True)
        raise MigrationNotFoundError(migration_id)

        raise MigrationNotFoundError(record.id)

    # ── Read operations ──────────────────────────────────────────

    def get(self, migration_id: int) -> MigrationRecord | None:
        """Return a fresh copy of a record by id, or None if not found."""
        for record in self._load().records:
            if record.id == migration_id:
                return record
        return None

    def require(self, migration_id: int) -> MigrationRecord:
        """Like ``get`` but raises MigrationNotFoundError."""
        record = self.get(migration_id)
        if record is None:
            raise MigrationNotFoundError(migration_id)
        return record

    def list(self, content_type: str | None = None) -> _list[MigrationRecord]:
        """Return all records in creation order, optionally filtered by type."""
        records = self._load().records
        if content_type is not None:
            records = [r for r in records if r.content_type == content_type]
        return _list(records)

    def list_by_status(self, statuses: Iterable[MigrationStatus]) -> _list[MigrationRecord]:
        wanted = set(statuses)
        return [r for r in self._load().records if r.status in wanted]

    def list_recent(self, content_type: str | None = None, limit: int = 10) -> _list[MigrationRecord]:
        """Return the most recent records, newest first."""
        records = sorted(self.list(content_type), key=lambda r: (r.created_at, r.id), reverse=True)
        if limit > 0:
            records = records[:limit]
        return records
