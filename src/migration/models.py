"""Migration domain models (pure Pydantic v2 data types).

A MigrationRecord tracks one run of moving every item of a content type
from one storage driver to another: its lifecycle status, counters, and
the per-item failures collected along the way.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class MigrationStatus(StrEnum):
    """Lifecycle status of a migration record."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


ACTIVE_STATUSES = frozenset({MigrationStatus.PENDING, MigrationStatus.RUNNING})
TERMINAL_STATUSES = frozenset({MigrationStatus.COMPLETED, MigrationStatus.FAILED})


class MigrationFailure(BaseModel):
    """A single item that could not be migrated or verified."""

    item_id: str
    error: str


class MigrationRecord(BaseModel):
    """Persisted state of one migration run.

    Invariant: ``migrated_items + failed_items <= total_items``, with
    equality once the record is COMPLETED.
    """

    id: int = 0
    content_type: str
    from_driver: str
    to_driver: str
    status: MigrationStatus = MigrationStatus.PENDING
    total_items: int = 0
    migrated_items: int = 0
    failed_items: int = 0
    failures: list[MigrationFailure] = Field(default_factory=list)
    error: str | None = None
    created_at: datetime = Field(default_factory=_utc_now)
    updated_at: datetime = Field(default_factory=_utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def processed_items(self) -> int:
        return self.migrated_items + self.failed_items

    @property
    def progress(self) -> int:
        """Migrated share of the total as an integer percentage (100 when empty)."""
        if self.total_items == 0:
            return 100
        return self.migrated_items * 100 // self.total_items

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None:
            return None
        end = self.completed_at or _utc_now()
        return (end - self.started_at).total_seconds()

    @property
    def estimated_seconds_remaining(self) -> int | None:
        """Linear estimate from the average time per migrated item so far."""
        if self.started_at is None or self.migrated_items == 0 or self.total_items == 0:
            return None
        if self.is_terminal:
            return 0
        elapsed = (_utc_now() - self.started_at).total_seconds()
        remaining = self.total_items - self.processed_items
        return round(remaining * elapsed / self.migrated_items)

    def record_failure(self, item_id: str, error: str) -> None:
        self.failed_items += 1
        self.failures.append(MigrationFailure(item_id=item_id, error=error))

    def summary(self) -> dict[str, Any]:
        """Plain-dict view for display and JSON output."""
        return {
            "id": self.id,
            "content_type": self.content_type,
            "from": self.from_driver,
            "to": self.to_driver,
            "status": str(self.status),
            "progress": {
                "total": self.total_items,
                "migrated": self.migrated_items,
                "failed": self.failed_items,
                "percentage": self.progress,
            },
            "error": self.error,
            "duration_seconds": self.duration_seconds,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class VerificationResult(BaseModel):
    """Outcome of re-reading migrated items from the destination."""

    verified: int = 0
    mismatched: int = 0
    missing: int = 0
    errors: list[MigrationFailure] = Field(default_factory=list)

    @property
    def checked(self) -> int:
        return self.verified + self.mismatched + self.missing

    @property
    def ok(self) -> bool:
        return self.mismatched == 0 and self.missing == 0 and not self.errors


class PlannedMove(BaseModel):
    """One source path and the destination path it would be written to."""

    source_path: str
    destination_path: str | None = None
    error: str | None = None


class MigrationPreview(BaseModel):
    """Dry-run view of a migration: item count plus a few planned moves."""

    content_type: str
    from_driver: str
    to_driver: str
    total_items: int = 0
    moves: list[PlannedMove] = Field(default_factory=list)
