"""CLI interface for folio."""

from pathlib import Path
from typing import Annotated, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from folio.config import FolioConfig, load_config, merge_cli_overrides
from folio.errors import StorageError
from folio.logging_setup import configure_logging
from folio.migration import (
    MigrationOrchestrator,
    MigrationRecord,
    MigrationStatus,
    MigrationStore,
    VerificationResult,
)
from folio.storage import Driver, create_repository

app = typer.Typer(
    name="folio",
    help="Store markdown content behind interchangeable backends and migrate between them.",
    no_args_is_help=True,
)

console = Console()

_STATUS_STYLES = {
    MigrationStatus.PENDING: "yellow",
    MigrationStatus.RUNNING: "cyan",
    MigrationStatus.COMPLETED: "green",
    MigrationStatus.FAILED: "red",
}


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from folio import __version__

        console.print(f"folio {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging."),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a folio TOML config file."),
    ] = None,
    state_dir: Annotated[
        Optional[Path],
        typer.Option("--state-dir", help="Directory holding the migration state file."),
    ] = None,
) -> None:
    """Folio - content storage and cross-backend migration."""
    configure_logging(verbose)
    config = load_config(config_path)
    config = merge_cli_overrides(config, state_dir=str(state_dir) if state_dir else None)
    ctx.obj = config


# ── Helpers ──────────────────────────────────────────────────────────


def _config(ctx: typer.Context) -> FolioConfig:
    return ctx.obj if isinstance(ctx.obj, FolioConfig) else load_config()


def _orchestrator(ctx: typer.Context) -> MigrationOrchestrator:
    config = _config(ctx)
    return MigrationOrchestrator(MigrationStore(config.state_path), config=config)


def _fail(message: str) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(message)}")
    raise typer.Exit(1)


def _check_driver(name: str) -> str:
    try:
        return str(Driver(name))
    except ValueError:
        valid = ", ".join(d.value for d in Driver)
        _fail(f"Unknown driver {name!r}. Choose one of: {valid}")


def _status_text(status: MigrationStatus) -> str:
    return f"[{_STATUS_STYLES[status]}]{status}[/{_STATUS_STYLES[status]}]"


def _print_record(record: MigrationRecord) -> None:
    console.print(
        f"Migration [bold]#{record.id}[/bold]: {escape(record.content_type)} "
        f"{escape(record.from_driver)} → {escape(record.to_driver)} ({_status_text(record.status)})"
    )
    console.print(
        f"  Items: {record.total_items} total, {record.migrated_items} migrated, "
        f"{record.failed_items} failed ({record.progress}%)"
    )
    if record.duration_seconds is not None:
        console.print(f"  Duration: {record.duration_seconds:.1f}s")
    eta = record.estimated_seconds_remaining
    if record.is_active and eta is not None:
        console.print(f"  Estimated remaining: {eta}s")
    if record.error:
        console.print(f"  [red]Error:[/red] {escape(record.error)}")
    for failure in record.failures:
        console.print(f"  [red]✗[/red] {escape(failure.item_id)}: {escape(failure.error)}")


def _print_records(records: list[MigrationRecord], title: str) -> None:
    table = Table(title=title)
    table.add_column("ID", justify="right")
    table.add_column("Type")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Status")
    table.add_column("Migrated", justify="right")
    table.add_column("Failed", justify="right")
    table.add_column("Created")
    for r in records:
        table.add_row(
            str(r.id),
            escape(r.content_type),
            escape(r.from_driver),
            escape(r.to_driver),
            _status_text(r.status),
            f"{r.migrated_items}/{r.total_items}",
            str(r.failed_items),
            r.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def _print_verification(result: VerificationResult) -> None:
    style = "green" if result.ok else "yellow"
    console.print(
        f"[{style}]Verification:[/{style}] {result.verified} verified, "
        f"{result.mismatched} mismatched, {result.missing} missing"
    )
    for error in result.errors:
        console.print(f"  [red]✗[/red] {escape(error.item_id)}: {escape(error.error)}")


def _run(
    orchestrator: MigrationOrchestrator, record: MigrationRecord, delete_source: bool
) -> MigrationRecord:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
    ) as progress:
        task = progress.add_task(f"Migrating {record.content_type}...", total=None)

        def on_progress(current: MigrationRecord) -> None:
            progress.update(task, total=current.total_items, completed=current.processed_items)

        return orchestrator.execute_migration(
            record, delete_source=delete_source, on_progress=on_progress
        )


# ── Commands ─────────────────────────────────────────────────────────


@app.command()
def migrate(
    ctx: typer.Context,
    content_type: Annotated[str, typer.Argument(help="Content type to migrate (pages, posts).")],
    from_driver: Annotated[str, typer.Argument(metavar="FROM", help="Source driver.")],
    to_driver: Annotated[str, typer.Argument(metavar="TO", help="Destination driver.")],
    delete_source: Annotated[
        bool,
        typer.Option("--delete-source", help="Delete each item from the source once copied."),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Show what would be migrated without writing."),
    ] = False,
    verify: Annotated[
        bool,
        typer.Option("--verify", help="Verify destination hashes after migrating."),
    ] = False,
    sample: Annotated[
        Optional[int],
        typer.Option("--sample", min=0, help="Items to verify (0 = all)."),
    ] = None,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt."),
    ] = False,
) -> None:
    """Migrate every item of CONTENT_TYPE from one driver to another."""
    from_driver = _check_driver(from_driver)
    to_driver = _check_driver(to_driver)
    orchestrator = _orchestrator(ctx)

    if dry_run:
        try:
            preview = orchestrator.preview_migration(content_type, from_driver, to_driver)
        except StorageError as exc:
            _fail(str(exc))
        console.print(
            f"[bold]Dry run:[/bold] {preview.total_items} {escape(content_type)} item(s) "
            f"would move {from_driver} → {to_driver}"
        )
        for move in preview.moves:
            if move.error:
                console.print(f"  [red]✗[/red] {escape(move.source_path)}: {escape(move.error)}")
            else:
                console.print(
                    f"  {escape(move.source_path)} → {escape(move.destination_path or '')}"
                )
        return

    if not yes:
        action = "move" if delete_source else "copy"
        typer.confirm(
            f"{action.capitalize()} all {content_type} from {from_driver} to {to_driver}?",
            abort=True,
        )

    try:
        record = orchestrator.start_migration(content_type, from_driver, to_driver)
        record = _run(orchestrator, record, delete_source)
    except StorageError as exc:
        _fail(str(exc))

    _print_record(record)

    if verify and record.status == MigrationStatus.COMPLETED:
        sample_size = _config(ctx).migration.sample_size if sample is None else sample
        _print_verification(orchestrator.verify_migration(record, sample_size))


@app.command("verify")
def verify_cmd(
    ctx: typer.Context,
    migration_id: Annotated[int, typer.Argument(help="Migration ID.")],
    sample: Annotated[
        Optional[int],
        typer.Option("--sample", min=0, help="Items to verify (0 = all)."),
    ] = None,
) -> None:
    """Compare destination content hashes against the source."""
    orchestrator = _orchestrator(ctx)
    sample_size = _config(ctx).migration.sample_size if sample is None else sample
    try:
        record = orchestrator.get_migration(migration_id)
        result = orchestrator.verify_migration(record, sample_size)
    except StorageError as exc:
        _fail(str(exc))
    _print_verification(result)


@app.command()
def rollback(
    ctx: typer.Context,
    migration_id: Annotated[int, typer.Argument(help="Completed migration to reverse.")],
    delete_source: Annotated[
        bool,
        typer.Option("--delete-source", help="Delete items from the rolled-back destination."),
    ] = False,
    yes: Annotated[
        bool,
        typer.Option("--yes", "-y", help="Skip the confirmation prompt."),
    ] = False,
) -> None:
    """Run a completed migration in reverse."""
    orchestrator = _orchestrator(ctx)
    try:
        record = orchestrator.get_migration(migration_id)
        if not yes:
            typer.confirm(
                f"Copy {record.content_type} back from {record.to_driver} to {record.from_driver}?",
                abort=True,
            )
        new_record = orchestrator.rollback_migration(record, delete_source=delete_source)
    except StorageError as exc:
        _fail(str(exc))
    _print_record(new_record)


@app.command()
def cancel(
    ctx: typer.Context,
    migration_id: Annotated[int, typer.Argument(help="Migration ID.")],
) -> None:
    """Cancel a pending or running migration."""
    orchestrator = _orchestrator(ctx)
    try:
        record = orchestrator.get_migration(migration_id)
    except StorageError as exc:
        _fail(str(exc))
    if orchestrator.cancel_migration(record):
        console.print(f"[green]Migration #{migration_id} cancelled.[/green]")
    else:
        console.print(
            f"[yellow]Migration #{migration_id} is already {record.status}; nothing to cancel.[/yellow]"
        )


@app.command()
def status(
    ctx: typer.Context,
    migration_id: Annotated[
        Optional[int], typer.Argument(help="Migration ID; omit to list active migrations.")
    ] = None,
) -> None:
    """Show one migration, or all active ones."""
    orchestrator = _orchestrator(ctx)
    if migration_id is not None:
        try:
            _print_record(orchestrator.get_migration(migration_id))
        except StorageError as exc:
            _fail(str(exc))
        return

    active = orchestrator.get_active_migrations()
    if not active:
        console.print("No active migrations.")
        return
    _print_records(active, "Active migrations")


@app.command()
def history(
    ctx: typer.Context,
    content_type: Annotated[
        Optional[str], typer.Option("--type", "-t", help="Filter by content type.")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Maximum records.")] = 10,
) -> None:
    """List recent migrations, newest first."""
    records = _orchestrator(ctx).get_migration_history(content_type, limit=limit)
    if not records:
        console.print("No migrations recorded.")
        return
    _print_records(records, "Migration history")


@app.command("test-connection")
def test_connection(
    ctx: typer.Context,
    driver: Annotated[str, typer.Argument(help="Driver to check.")],
    content_type: Annotated[
        str, typer.Option("--type", "-t", help="Content type the repository serves.")
    ] = "pages",
) -> None:
    """Check that a driver is configured and reachable."""
    driver = _check_driver(driver)
    try:
        repository = create_repository(driver, content_type, _config(ctx))
    except StorageError as exc:
        _fail(str(exc))
    if not repository.test_connection():
        _fail(f"Connection to {driver} failed")
    console.print(f"[green]✓[/green] {driver} connection OK")


if __name__ == "__main__":
    app()
