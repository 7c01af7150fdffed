"""Migration orchestrator: move every item of a content type between drivers.

Items are processed one at a time in listing order.  A failure on one
item is recorded on the MigrationRecord and the run continues; only
structural problems (bad driver pair, concurrent run, unreadable source
listing) abort a call.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import ExitStack
from datetime import UTC, datetime

from folio.config import FolioConfig
from folio.content.models import ContentAttributes, ContentItem
from folio.content.paths import PathPatternResolver
from folio.errors import (
    ContentNotFoundError,
    MigrationError,
    MigrationNotCompletedError,
    MigrationStateError,
    SameDriverError,
)
from folio.migration.models import (
    ACTIVE_STATUSES,
    MigrationFailure,
    MigrationPreview,
    MigrationRecord,
    MigrationStatus,
    PlannedMove,
    VerificationResult,
)
from folio.migration.store import MigrationStore
from folio.storage import ContentRepository, create_repository

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[str, str], ContentRepository]
ProgressCallback = Callable[[MigrationRecord], None]

CANCELLED_REASON = "Cancelled by user"
MISSING_IN_DESTINATION = "Missing in destination"
HASH_MISMATCH = "Hash mismatch"


def _utc_now() -> datetime:
    return datetime.now(tz=UTC)


class MigrationOrchestrator:
    """Drives migrations and keeps their records in a MigrationStore.

    Args:
        store: Persistence for migration records.
        repository_factory: Builds a repository from ``(driver, content_type)``.
            Defaults to ``create_repository`` with ``config``.
        config: Connection settings and path pattern overrides.
        resolver: Path resolver; built from ``config.paths`` when omitted.
    """

    def __init__(
        self,
        store: MigrationStore,
        repository_factory: RepositoryFactory | None = None,
        *,
        config: FolioConfig | None = None,
        resolver: PathPatternResolver | None = None,
    ) -> None:
        self.store = store
        self.config = config or FolioConfig()
        self.resolver = resolver or PathPatternResolver(self.config.paths)
        self._factory = repository_factory or self._default_factory

    def _default_factory(self, driver: str, content_type: str) -> ContentRepository:
        return create_repository(driver, content_type, self.config)

    def _open(self, stack: ExitStack, driver: str, content_type: str) -> ContentRepository:
        repository = self._factory(driver, content_type)
        stack.callback(repository.close)
        return repository

    # ── Lifecycle ────────────────────────────────────────────────

    def start_migration(self, content_type: str, from_driver: str, to_driver: str) -> MigrationRecord:
        """Create a PENDING record for a new migration.

        Raises:
            SameDriverError: If both drivers are the same.
            MigrationAlreadyRunningError: If the content type has an active run.
        """
        if from_driver == to_driver:
            raise SameDriverError(from_driver)

        record = self.store.create_exclusive(
            MigrationRecord(content_type=content_type, from_driver=from_driver, to_driver=to_driver)
        )
        logger.info(
            "Migration %d started: %s %s -> %s", record.id, content_type, from_driver, to_driver
        )
        return record

    def execute_migration(
        self,
        record: MigrationRecord,
        delete_source: bool = False,
        on_progress: ProgressCallback | None = None,
    ) -> MigrationRecord:
        """Run a PENDING migration to completion.

        ``on_progress`` is called with the updated record after every item.
        Cancellation (see ``cancel_migration``) is honoured between items.

        Raises:
            MigrationStateError: If the record is not PENDING.
            MigrationError: If the run cannot proceed at all; the record is
                marked FAILED with the reason.
        """
        record = self.store.require(record.id)
        if record.status != MigrationStatus.PENDING:
            raise MigrationStateError(
                f"Migration {record.id} is {record.status}; only pending migrations can be executed"
            )

        record.status = MigrationStatus.RUNNING
        record.started_at = _utc_now()
        if not self.store.update_unless_cancelled(record):
            return record

        with ExitStack() as stack:
            try:
                source = self._open(stack, record.from_driver, record.content_type)
                destination = self._open(stack, record.to_driver, record.content_type)
                paths = source.list("")
            except Exception as exc:
                self._fail(record, str(exc))
                logger.error("Migration %d failed: %s", record.id, exc)
                raise MigrationError(f"Migration failed: {exc}") from exc

            record.total_items = len(paths)
            if not self.store.update_unless_cancelled(record):
                return self._stopped(record)
            logger.info("Migration %d executing: %d items", record.id, record.total_items)

            for path in paths:
                if self._was_cancelled(record):
                    return self._stopped(record)
                self._migrate_item(record, source, destination, path, delete_source)
                active = self.store.update_unless_cancelled(record)
                if on_progress is not None:
                    on_progress(record)
                if not active:
                    return self._stopped(record)

        record.status = MigrationStatus.COMPLETED
        record.completed_at = _utc_now()
        if not self.store.update_unless_cancelled(record):
            return self._stopped(record)
        logger.info(
            "Migration %d completed: %d migrated, %d failed",
            record.id,
            record.migrated_items,
            record.failed_items,
        )
        return record

    def _stopped(self, record: MigrationRecord) -> MigrationRecord:
        logger.info(
            "Migration %d cancelled after %d of %d items",
            record.id,
            record.processed_items,
            record.total_items,
        )
        return record

    def _migrate_item(
        self,
        record: MigrationRecord,
        source: ContentRepository,
        destination: ContentRepository,
        path: str,
        delete_source: bool,
    ) -> None:
        try:
            item = source.read(path)
            dest_path = self.destination_path(record.content_type, item)
            destination.write(dest_path, item)
            if delete_source:
                source.delete(path)
        except Exception as exc:
            record.record_failure(path, str(exc))
            logger.warning("Migration %d: item %s failed: %s", record.id, path, exc)
            return
        record.migrated_items += 1
        logger.debug("Migration %d: %s -> %s", record.id, path, dest_path)

    def _was_cancelled(self, record: MigrationRecord) -> bool:
        """Re-read the persisted status; adopt it if someone cancelled the run."""
        current = self.store.get(record.id)
        if current is None or current.status != MigrationStatus.FAILED:
            return False
        record.status = current.status
        record.error = current.error
        record.completed_at = current.completed_at
        return True

    def _fail(self, record: MigrationRecord, reason: str) -> None:
        record.status = MigrationStatus.FAILED
        record.error = reason
        record.completed_at = _utc_now()
        self.store.update(record)

    def destination_path(self, content_type: str, item: ContentItem) -> str:
        """Resolve where ``item`` goes, from its own attributes."""
        return self.resolver.resolve_for(content_type, ContentAttributes.from_item(item))

    def get_progress(self, record: MigrationRecord) -> int:
        """Migrated share as an integer percentage; 100 for an empty run."""
        return record.progress

    def cancel_migration(self, record: MigrationRecord) -> bool:
        """Mark an active migration FAILED.

        Items already written stay where they are.  Returns False when the
        record is already terminal.
        """
        current = self.store.fail_if_active(record.id, CANCELLED_REASON)
        if current is None:
            return False
        logger.info("Migration %d cancelled", current.id)
        return True

    def rollback_migration(self, record: MigrationRecord, delete_source: bool = False) -> MigrationRecord:
        """Run the completed migration in reverse as a new migration.

        Raises:
            MigrationNotCompletedError: If the record is not COMPLETED.
        """
        current = self.store.require(record.id)
        if current.status != MigrationStatus.COMPLETED:
            raise MigrationNotCompletedError(current.id, str(current.status))

        logger.info("Rolling back migration %d", current.id)
        reverse = self.start_migration(current.content_type, current.to_driver, current.from_driver)
        return self.execute_migration(reverse, delete_source=delete_source)

    # ── Verification & preview ───────────────────────────────────

    def verify_migration(self, record: MigrationRecord, sample_size: int = 10) -> VerificationResult:
        """Compare source and destination hashes for migrated items.

        ``sample_size == 0`` checks every item; otherwise the first
        ``sample_size`` source paths in sorted order are checked.
        """
        result = VerificationResult()
        with ExitStack() as stack:
            source = self._open(stack, record.from_driver, record.content_type)
            destination = self._open(stack, record.to_driver, record.content_type)

            paths = sorted(source.list(""))
            if sample_size > 0:
                paths = paths[:sample_size]

            for path in paths:
                try:
                    self._verify_item(record, source, destination, path, result)
                except Exception as exc:
                    result.errors.append(MigrationFailure(item_id=path, error=str(exc)))

        logger.info(
            "Verified migration %d: %d ok, %d mismatched, %d missing",
            record.id,
            result.verified,
            result.mismatched,
            result.missing,
        )
        return result

    def _verify_item(
        self,
        record: MigrationRecord,
        source: ContentRepository,
        destination: ContentRepository,
        path: str,
        result: VerificationResult,
    ) -> None:
        item = source.read(path)
        dest_path = self.destination_path(record.content_type, item)
        try:
            copied = destination.read(dest_path)
        except ContentNotFoundError:
            result.missing += 1
            result.errors.append(
                MigrationFailure(item_id=path, error=f"{MISSING_IN_DESTINATION}: {dest_path}")
            )
            return
        if copied.hash == item.hash:
            result.verified += 1
        else:
            result.mismatched += 1
            result.errors.append(MigrationFailure(item_id=path, error=f"{HASH_MISMATCH}: {dest_path}"))

    def preview_migration(
        self, content_type: str, from_driver: str, to_driver: str, limit: int = 5
    ) -> MigrationPreview:
        """Dry run: count source items and resolve the first few destinations."""
        if from_driver == to_driver:
            raise SameDriverError(from_driver)

        with ExitStack() as stack:
            source = self._open(stack, from_driver, content_type)
            paths = source.list("")
            preview = MigrationPreview(
                content_type=content_type,
                from_driver=from_driver,
                to_driver=to_driver,
                total_items=len(paths),
            )
            for path in paths[: max(limit, 0)]:
                try:
                    dest = self.destination_path(content_type, source.read(path))
                    preview.moves.append(PlannedMove(source_path=path, destination_path=dest))
                except Exception as exc:
                    preview.moves.append(PlannedMove(source_path=path, error=str(exc)))
        return preview

    # ── Queries ──────────────────────────────────────────────────

    def get_migration(self, migration_id: int) -> MigrationRecord:
        """Raises MigrationNotFoundError if the id does not exist."""
        return self.store.require(migration_id)

    def get_active_migrations(self) -> list[MigrationRecord]:
        records = self.store.list_by_status(ACTIVE_STATUSES)
        return sorted(records, key=lambda r: (r.created_at, r.id), reverse=True)

    def get_migration_history(
        self, content_type: str | None = None, limit: int = 10
    ) -> list[MigrationRecord]:
        return self.store.list_recent(content_type, limit=limit)
