"""Tests for MigrationOrchestrator."""

import re
from pathlib import Path

import pytest
from folio.content.models import ContentItem
from folio.errors import (
    ContentNotFoundError,
    MigrationAlreadyRunningError,
    MigrationError,
    MigrationNotCompletedError,
    MigrationNotFoundError,
    MigrationStateError,
    ReadFailedError,
    SameDriverError,
    StorageError,
)
from folio.migration.models import MigrationRecord, MigrationStatus
from folio.migration.orchestrator import MigrationOrchestrator
from folio.migration.store import MigrationStore
from folio.storage.base import ContentRepository
from folio.storage.database import DatabaseRepository
from folio.storage.local import LocalRepository

_list = list


class MemoryRepository(ContentRepository):
    """In-memory repository with optional per-path read failures."""

    def __init__(self, name: str, items: dict[str, ContentItem] | None = None) -> None:
        self.driver_name = name
        self.items: dict[str, ContentItem] = dict(items or {})
        self.fail_reads: set[str] = set()
        self.list_error: Exception | None = None
        self.writes: _list[str] = []
        self.closed = 0

    def read(self, path: str) -> ContentItem:
        if path in self.fail_reads:
            raise ReadFailedError(path, "disk on fire")
        if path not in self.items:
            raise ContentNotFoundError(path)
        return self.items[path]

    def write(self, path: str, item: ContentItem) -> bool:
        self.items[path] = item
        self.writes.append(path)
        return True

    def exists(self, path: str) -> bool:
        return path in self.items

    def delete(self, path: str) -> bool:
        return self.items.pop(path, None) is not None

    def list(self, directory: str = "") -> _list[str]:
        if self.list_error is not None:
            raise self.list_error
        return sorted(self.items)

    def test_connection(self) -> bool:
        return True

    def close(self) -> None:
        self.closed += 1


def _page(slug: str, title: str, body: str = "Body") -> ContentItem:
    return ContentItem(body, {"title": title, "slug": slug})


@pytest.fixture
def store(tmp_path: Path) -> MigrationStore:
    return MigrationStore(tmp_path / "state")


@pytest.fixture
def repos() -> dict[str, MemoryRepository]:
    return {
        "database": MemoryRepository(
            "database",
            {
                "pages/1.md": _page("about-us", "About Us", "About body"),
                "pages/2.md": _page("contact", "Contact Us", "Contact body"),
                "pages/3.md": _page("team", "Team", "Team body"),
            },
        ),
        "local": MemoryRepository("local"),
    }


@pytest.fixture
def orchestrator(store: MigrationStore, repos: dict[str, MemoryRepository]) -> MigrationOrchestrator:
    return MigrationOrchestrator(store, lambda driver, content_type: repos[driver])


class TestStartMigration:
    def test_creates_pending_record(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")

        assert record.id == 1
        assert record.status == MigrationStatus.PENDING
        assert (record.total_items, record.migrated_items, record.failed_items) == (0, 0, 0)

    def test_same_driver(self, orchestrator: MigrationOrchestrator):
        with pytest.raises(SameDriverError):
            orchestrator.start_migration("pages", "local", "local")

    def test_single_run_guard(self, orchestrator: MigrationOrchestrator):
        orchestrator.start_migration("pages", "database", "local")

        with pytest.raises(MigrationAlreadyRunningError):
            orchestrator.start_migration("pages", "database", "local")

    def test_guard_is_per_content_type(self, orchestrator: MigrationOrchestrator):
        orchestrator.start_migration("pages", "database", "local")

        assert orchestrator.start_migration("posts", "database", "local").id == 2


class TestExecuteMigration:
    def test_migrates_every_item(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.start_migration("pages", "database", "local")

        result = orchestrator.execute_migration(record)

        assert result.status == MigrationStatus.COMPLETED
        assert (result.total_items, result.migrated_items, result.failed_items) == (3, 3, 0)
        assert result.started_at is not None
        assert result.completed_at is not None
        assert sorted(repos["local"].items) == [
            "pages/about-us.md",
            "pages/contact.md",
            "pages/team.md",
        ]
        assert len(repos["database"].items) == 3

    def test_persists_final_state(self, orchestrator: MigrationOrchestrator, store: MigrationStore):
        record = orchestrator.start_migration("pages", "database", "local")
        orchestrator.execute_migration(record)

        stored = store.require(record.id)
        assert stored.status == MigrationStatus.COMPLETED
        assert stored.migrated_items == 3

    def test_item_failures_do_not_abort(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        repos["database"].fail_reads.add("pages/2.md")
        record = orchestrator.start_migration("pages", "database", "local")

        result = orchestrator.execute_migration(record)

        assert result.status == MigrationStatus.COMPLETED
        assert (result.migrated_items, result.failed_items) == (2, 1)
        assert result.migrated_items + result.failed_items == result.total_items
        assert result.failures[0].item_id == "pages/2.md"
        assert "disk on fire" in result.failures[0].error

    def test_invalid_destination_path_is_item_failure(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        repos["database"].items["pages/4.md"] = _page("About Us!", "Bad slug")
        record = orchestrator.start_migration("pages", "database", "local")

        result = orchestrator.execute_migration(record)

        assert (result.migrated_items, result.failed_items) == (3, 1)
        assert "invalid characters" in result.failures[0].error

    def test_destination_from_item_attributes(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        repos["database"].items = {
            "pages/9.md": ContentItem(
                "x", {"slug": "launch", "published_at": "2025-12-02T09:00:00"}
            )
        }
        record = orchestrator.start_migration("posts", "database", "local")

        orchestrator.execute_migration(record)

        assert _list(repos["local"].items) == ["posts/2025/12/launch.md"]

    def test_delete_source(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.start_migration("pages", "database", "local")

        orchestrator.execute_migration(record, delete_source=True)

        assert repos["database"].items == {}
        assert len(repos["local"].items) == 3

    def test_empty_source_completes_at_100(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        repos["database"].items = {}
        record = orchestrator.start_migration("pages", "database", "local")

        result = orchestrator.execute_migration(record)

        assert result.status == MigrationStatus.COMPLETED
        assert result.total_items == 0
        assert orchestrator.get_progress(result) == 100

    def test_progress_callback(self, orchestrator: MigrationOrchestrator):
        seen: list[int] = []
        record = orchestrator.start_migration("pages", "database", "local")

        orchestrator.execute_migration(record, on_progress=lambda r: seen.append(r.processed_items))

        assert seen == [1, 2, 3]

    def test_only_pending_can_execute(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")
        orchestrator.execute_migration(record)

        with pytest.raises(MigrationStateError):
            orchestrator.execute_migration(record)

    def test_listing_failure_marks_failed(
        self,
        orchestrator: MigrationOrchestrator,
        repos: dict[str, MemoryRepository],
        store: MigrationStore,
    ):
        repos["database"].list_error = StorageError("bucket vanished")
        record = orchestrator.start_migration("pages", "database", "local")

        with pytest.raises(MigrationError, match="bucket vanished"):
            orchestrator.execute_migration(record)

        stored = store.require(record.id)
        assert stored.status == MigrationStatus.FAILED
        assert stored.error == "bucket vanished"

    def test_repositories_closed(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        orchestrator.execute_migration(orchestrator.start_migration("pages", "database", "local"))

        assert (repos["database"].closed, repos["local"].closed) == (1, 1)

    def test_repositories_closed_after_listing_failure(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        repos["database"].list_error = StorageError("bucket vanished")

        with pytest.raises(MigrationError):
            orchestrator.execute_migration(orchestrator.start_migration("pages", "database", "local"))

        assert (repos["database"].closed, repos["local"].closed) == (1, 1)

    def test_guard_released_after_completion(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")
        orchestrator.execute_migration(record)

        assert orchestrator.start_migration("pages", "local", "database").id == 2


class TestCancel:
    def test_cancel_pending(self, orchestrator: MigrationOrchestrator, store: MigrationStore):
        record = orchestrator.start_migration("pages", "database", "local")

        assert orchestrator.cancel_migration(record) is True

        stored = store.require(record.id)
        assert stored.status == MigrationStatus.FAILED
        assert stored.error == "Cancelled by user"

    def test_cancel_terminal_returns_false(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")
        completed = orchestrator.execute_migration(record)

        assert orchestrator.cancel_migration(completed) is False

    def test_cancel_twice(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")
        orchestrator.cancel_migration(record)

        assert orchestrator.cancel_migration(record) is False

    def test_cancelled_pending_cannot_execute(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")
        orchestrator.cancel_migration(record)

        with pytest.raises(MigrationStateError):
            orchestrator.execute_migration(record)

    def test_cancel_mid_run_stops_before_next_item(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.start_migration("pages", "database", "local")

        def cancel_after_first(current: MigrationRecord) -> None:
            if current.processed_items == 1:
                orchestrator.cancel_migration(current)

        result = orchestrator.execute_migration(record, on_progress=cancel_after_first)

        assert result.status == MigrationStatus.FAILED
        assert result.error == "Cancelled by user"
        assert result.migrated_items == 1
        assert repos["local"].writes == ["pages/about-us.md"]

    def test_cancel_during_item_survives_progress_save(
        self,
        orchestrator: MigrationOrchestrator,
        repos: dict[str, MemoryRepository],
        store: MigrationStore,
    ):
        record = orchestrator.start_migration("pages", "database", "local")
        destination = repos["local"]
        write = destination.write

        def write_then_cancel(path: str, item: ContentItem) -> bool:
            orchestrator.cancel_migration(record)
            return write(path, item)

        destination.write = write_then_cancel  # type: ignore[method-assign]

        result = orchestrator.execute_migration(record)

        assert result.status == MigrationStatus.FAILED
        assert result.migrated_items == 1
        stored = store.require(record.id)
        assert stored.status == MigrationStatus.FAILED
        assert stored.migrated_items == 1

    def test_cancel_after_last_item_wins(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")

        def cancel_at_end(current: MigrationRecord) -> None:
            if current.processed_items == current.total_items:
                orchestrator.cancel_migration(current)

        result = orchestrator.execute_migration(record, on_progress=cancel_at_end)

        assert result.status == MigrationStatus.FAILED


    def test_cancel_from_progress_is_persisted(
        self, orchestrator: MigrationOrchestrator, store: MigrationStore
    ):
        record = orchestrator.start_migration("pages", "database", "local")
        statuses: list[MigrationStatus] = []

        def cancel_after_first(current: MigrationRecord) -> None:
            if current.processed_items == 1:
                orchestrator.cancel_migration(current)
            statuses.append(store.require(record.id).status)

        orchestrator.execute_migration(record, on_progress=cancel_after_first)

        stored = store.require(record.id)
        assert statuses == [MigrationStatus.FAILED]
        assert stored.status == MigrationStatus.FAILED
        assert stored.error == "Cancelled by user"
        assert (stored.total_items, stored.migrated_items) == (3, 1)


class TestVerify:
    def test_all_verified(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )

        result = orchestrator.verify_migration(record, 0)

        assert (result.verified, result.mismatched, result.missing) == (3, 0, 0)
        assert result.errors == []

    def test_missing_and_mismatched(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )
        del repos["local"].items["pages/contact.md"]
        repos["local"].items["pages/team.md"] = _page("team", "Team", "tampered")

        result = orchestrator.verify_migration(record, 0)

        assert (result.verified, result.mismatched, result.missing) == (1, 1, 1)
        errors = {e.item_id: e.error for e in result.errors}
        assert "Missing in destination" in errors["pages/2.md"]
        assert "Hash mismatch" in errors["pages/3.md"]

    def test_sample_is_deterministic_prefix(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )
        del repos["local"].items["pages/team.md"]

        result = orchestrator.verify_migration(record, 2)

        assert (result.verified, result.missing) == (2, 0)

    def test_source_read_error_is_reported(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )
        repos["database"].fail_reads.add("pages/1.md")

        result = orchestrator.verify_migration(record, 0)

        assert result.verified == 2
        assert result.errors[0].item_id == "pages/1.md"

    def test_repositories_closed(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        record = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )

        orchestrator.verify_migration(record, 0)

        assert (repos["database"].closed, repos["local"].closed) == (2, 2)


class TestRollback:
    def test_swaps_drivers(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        original = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )

        reverse = orchestrator.rollback_migration(original)

        assert reverse.id != original.id
        assert reverse.from_driver == original.to_driver
        assert reverse.to_driver == original.from_driver
        assert reverse.content_type == original.content_type
        assert reverse.status == MigrationStatus.COMPLETED
        assert orchestrator.get_migration(original.id).status == MigrationStatus.COMPLETED

    def test_requires_completed(self, orchestrator: MigrationOrchestrator):
        record = orchestrator.start_migration("pages", "database", "local")

        with pytest.raises(MigrationNotCompletedError):
            orchestrator.rollback_migration(record)


class TestQueries:
    def test_get_migration_unknown(self, orchestrator: MigrationOrchestrator):
        with pytest.raises(MigrationNotFoundError):
            orchestrator.get_migration(42)

    def test_active_and_history(self, orchestrator: MigrationOrchestrator):
        done = orchestrator.execute_migration(
            orchestrator.start_migration("pages", "database", "local")
        )
        pending = orchestrator.start_migration("posts", "database", "local")

        assert [r.id for r in orchestrator.get_active_migrations()] == [pending.id]
        assert [r.id for r in orchestrator.get_migration_history()] == [pending.id, done.id]
        assert [r.id for r in orchestrator.get_migration_history("pages")] == [done.id]
        assert len(orchestrator.get_migration_history(limit=1)) == 1

    def test_preview(self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]):
        preview = orchestrator.preview_migration("pages", "database", "local", limit=2)

        assert preview.total_items == 3
        assert [(m.source_path, m.destination_path) for m in preview.moves] == [
            ("pages/1.md", "pages/about-us.md"),
            ("pages/2.md", "pages/contact.md"),
        ]
        assert repos["local"].items == {}

    def test_preview_closes_source(
        self, orchestrator: MigrationOrchestrator, repos: dict[str, MemoryRepository]
    ):
        orchestrator.preview_migration("pages", "database", "local")

        assert (repos["database"].closed, repos["local"].closed) == (1, 0)

    def test_preview_same_driver(self, orchestrator: MigrationOrchestrator):
        with pytest.raises(SameDriverError):
            orchestrator.preview_migration("pages", "local", "local")


class TestEndToEnd:
    """Real database and filesystem drivers."""

    @pytest.fixture
    def database(self, tmp_path: Path) -> DatabaseRepository:
        db = DatabaseRepository(tmp_path / "folio.db", content_type="pages")
        db.write("pages/new.md", _page("about-us", "About Us", "# About\n\nWe make things."))
        db.write("pages/new.md", _page("contact", "Contact Us", "# Contact\n\nmail@example.com"))
        yield db
        db.close()

    @pytest.fixture
    def local(self, tmp_path: Path) -> LocalRepository:
        return LocalRepository(tmp_path / "content")

    @pytest.fixture
    def e2e(
        self, store: MigrationStore, tmp_path: Path, database: DatabaseRepository
    ) -> MigrationOrchestrator:
        """Fresh driver instances over the seeded database and content root."""

        def factory(driver: str, content_type: str) -> ContentRepository:
            if driver == "database":
                return DatabaseRepository(tmp_path / "folio.db", content_type=content_type)
            return LocalRepository(tmp_path / "content")

        return MigrationOrchestrator(store, factory)

    def test_database_to_local(
        self, e2e: MigrationOrchestrator, database: DatabaseRepository, local: LocalRepository
    ):
        record = e2e.execute_migration(e2e.start_migration("pages", "database", "local"))

        assert (record.total_items, record.migrated_items, record.failed_items) == (2, 2, 0)
        assert local.list() == ["pages/about-us.md", "pages/contact.md"]

        about_text = (local.base_dir / "pages" / "about-us.md").read_text(encoding="utf-8")
        assert 'title: "About Us"' in about_text.splitlines()
        contact_text = (local.base_dir / "pages" / "contact.md").read_text(encoding="utf-8")
        assert 'title: "Contact Us"' in contact_text.splitlines()

        assert local.read("pages/about-us.md").content == database.read("pages/1.md").content
        assert local.read("pages/contact.md").content == database.read("pages/2.md").content

    def test_verify_reports_deleted_file(self, e2e: MigrationOrchestrator, local: LocalRepository):
        record = e2e.execute_migration(e2e.start_migration("pages", "database", "local"))
        local.delete("pages/contact.md")

        result = e2e.verify_migration(record, 0)

        assert result.missing == 1
        assert result.verified == record.total_items - 1
        assert len(result.errors) == 1
        assert "Missing in destination" in result.errors[0].error

    def test_rollback_updates_rows_by_slug(
        self, e2e: MigrationOrchestrator, database: DatabaseRepository, local: LocalRepository
    ):
        record = e2e.execute_migration(e2e.start_migration("pages", "database", "local"))
        local.write(
            "pages/about-us.md",
            local.read("pages/about-us.md").with_content("# About\n\nRewritten."),
        )

        reverse = e2e.rollback_migration(record)

        assert reverse.migrated_items == 2
        assert database.list() == ["pages/1.md", "pages/2.md"]
        assert database.read("pages/1.md").content == "# About\n\nRewritten."

    def test_numeric_slug_does_not_overwrite_row(
        self, e2e: MigrationOrchestrator, database: DatabaseRepository, local: LocalRepository
    ):
        local.write("pages/1.md", ContentItem("Year body", {"title": "Year", "slug": "1"}))

        record = e2e.execute_migration(e2e.start_migration("pages", "local", "database"))

        assert record.migrated_items == 1
        assert database.list() == ["pages/1.md", "pages/2.md", "pages/3.md"]
        assert database.read("pages/1.md").get("slug") == "about-us"
        assert database.read("pages/1.md").content == "# About\n\nWe make things."
        assert database.read("pages/3.md").content == "Year body"

    def test_posts_get_dated_directories(
        self, e2e: MigrationOrchestrator, tmp_path: Path, local: LocalRepository
    ):
        posts = DatabaseRepository(tmp_path / "folio.db", content_type="posts")
        posts.write("posts/new.md", ContentItem("Hi", {"title": "Hello", "slug": "hello"}))
        posts.close()

        record = e2e.execute_migration(e2e.start_migration("posts", "database", "local"))

        assert record.migrated_items == 1
        [path] = local.list("posts")
        assert re.fullmatch(r"posts/\d{4}/\d{2}/hello\.md", path)
