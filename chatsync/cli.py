"""Command line interface for chatsync.

Example:
    chatsync upload
    chatsync download --mode merge
    chatsync export backup.json
"""

import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Annotated, Optional, TypeVar

import cyclopts
from dotenv import load_dotenv
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from chatsync.config import Settings, create_object_store
from chatsync.exceptions import ChatSyncError
from chatsync.history.persistence import JsonFileDocument
from chatsync.history.record_store import RecordStore
from chatsync.preferences.model_config import ModelConfigStore
from chatsync.preferences.user_profile import UserProfileStore
from chatsync.sync.codec import encode_json, parse_with_compatibility
from chatsync.sync.orchestrator import (
    ImportMode,
    SyncOrchestrator,
    SyncOutcome,
    SyncProgress,
)
from chatsync.sync.snapshot import export_global, import_global

logger = logging.getLogger(__name__)

T = TypeVar("T")

app = cyclopts.App(name="chatsync", help="Sync chat history with a remote object store")


def _get_console() -> Console:
    """Get a Rich console for output."""
    return Console()


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _load_settings(console: Console) -> Settings:
    try:
        settings = Settings()
    except ValueError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        sys.exit(2)
    _configure_logging(settings)
    return settings


def _local_stores(settings: Settings) -> tuple[RecordStore, ModelConfigStore, UserProfileStore]:
    return (
        RecordStore(JsonFileDocument(settings.history_path)),
        ModelConfigStore(JsonFileDocument(settings.model_config_path)),
        UserProfileStore(JsonFileDocument(settings.user_profile_path)),
    )


async def _with_orchestrator(
    settings: Settings, action: Callable[[SyncOrchestrator], Awaitable[T]]
) -> T:
    history, model_config, user_profile = _local_stores(settings)
    async with create_object_store(settings) as store:
        orchestrator = SyncOrchestrator(
            store, history, model_config, user_profile, layout=settings.layout
        )
        return await action(orchestrator)


def _run(console: Console, settings: Settings, action: Callable[[SyncOrchestrator], Awaitable[T]]) -> T:
    try:
        return asyncio.run(_with_orchestrator(settings, action))
    except ChatSyncError as e:
        console.print(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _progress_bar(console: Console) -> Progress:
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
        TimeElapsedColumn(),
        console=console,
    )


def _run_with_progress(
    console: Console,
    settings: Settings,
    action: Callable[[SyncOrchestrator, Callable[[SyncProgress], None]], Awaitable[T]],
) -> T:
    with _progress_bar(console) as progress:
        task_id = progress.add_task("Starting", total=None)

        def on_progress(event: SyncProgress) -> None:
            progress.update(
                task_id,
                description=event.label,
                completed=event.current,
                total=event.total or None,
            )

        return _run(console, settings, lambda orchestrator: action(orchestrator, on_progress))


def _report(console: Console, outcome: SyncOutcome) -> None:
    if not outcome.ok:
        console.print(f"[red]✗ {outcome.message}[/red]")
        if outcome.primary_error:
            console.print(f"[dim]Incremental error: {outcome.primary_error}[/dim]")
        sys.exit(1)

    color = "yellow" if outcome.used_fallback else "green"
    console.print(f"[{color}]✓ {outcome.message}[/{color}] [dim](path: {outcome.path.value})[/dim]")
    if outcome.skipped_ids:
        skipped = ", ".join(f"#{record_id}" for record_id in outcome.skipped_ids)
        console.print(f"[yellow]Skipped records: {skipped}[/yellow]")


@app.command
def upload():
    """Upload local changes incrementally (snapshot fallback on failure)."""
    console = _get_console()
    settings = _load_settings(console)
    outcome = _run_with_progress(
        console, settings, lambda o, on_progress: o.upload_incremental(on_progress)
    )
    _report(console, outcome)


@app.command
def download(
    *,
    mode: Annotated[
        Optional[ImportMode],
        cyclopts.Parameter(help="merge or replace (default: replace when local history is empty)"),
    ] = None,
):
    """Download the remote history and import it."""
    console = _get_console()
    settings = _load_settings(console)
    outcome = _run_with_progress(
        console, settings, lambda o, on_progress: o.download_and_import(on_progress, mode=mode)
    )
    _report(console, outcome)


@app.command
def mirror():
    """Make local history match the remote index (download missing, drop extra)."""
    console = _get_console()
    settings = _load_settings(console)
    result = _run_with_progress(
        console, settings, lambda o, on_progress: o.mirror_local_with_cloud(on_progress)
    )
    if not result.ok:
        console.print(f"[red]✗ {result.message}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ {result.message}[/green]")


@app.command
def check():
    """Compare record ids with the remote index without downloading records."""
    console = _get_console()
    settings = _load_settings(console)
    result = _run(console, settings, lambda o: o.check_index_diff())
    if not result.ok:
        console.print(f"[red]✗ Index check failed: {result.message}[/red]")
        sys.exit(1)
    if result.needs_sync:
        console.print(
            f"[yellow]Remote has {result.added} record(s) not present locally, "
            f"{result.removed} local record(s) not present remotely[/yellow]"
        )
    else:
        console.print("[green]✓ Local history matches the remote index[/green]")


@app.command
def status():
    """Show configuration and local history summary."""
    console = _get_console()
    settings = _load_settings(console)
    history, model_config, _ = _local_stores(settings)

    table = Table(title="chatsync status", show_header=False, box=None)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    table.add_row("Backend", settings.backend)
    table.add_row("Configured", "✓ Yes" if settings.is_configured else "✗ No")
    for name in settings.missing_fields():
        table.add_row("Missing", f"CHATSYNC_{name.upper()}")
    if settings.backend == "s3":
        table.add_row("Bucket", settings.s3_bucket or "-")
        table.add_row("Endpoint", settings.resolved_s3_endpoint or "(AWS default)")
    elif settings.backend == "http":
        table.add_row("Remote URL", settings.remote_url or "-")
        table.add_row("Namespace", settings.namespace)
    else:
        table.add_row("Remote directory", str(settings.local_remote_dir or "-"))
    table.add_row("Prefix", settings.prefix)
    table.add_row("Data directory", str(settings.data_path))

    live = history.list_active()
    table.add_row("Conversations", str(len(live)))
    table.add_row("Deleted (tombstones)", str(len(history.records) - len(live)))
    selected = model_config.selected_model()
    table.add_row("Selected model", (selected["name"] or selected["modelName"]) if selected else "-")

    console.print(table)


@app.command
def export(path: Path):
    """Write the whole local state to a snapshot file."""
    console = _get_console()
    settings = _load_settings(console)
    history, model_config, _ = _local_stores(settings)

    snapshot = export_global(history, model_config)
    path.expanduser().write_bytes(encode_json(snapshot))
    console.print(
        f"[green]✓ Exported {len(snapshot['chatHistories'])} records to {path}[/green]"
    )


@app.command(name="import")
def import_snapshot(path: Path):
    """Import a snapshot file, replacing local history and model configuration."""
    console = _get_console()
    settings = _load_settings(console)
    history, model_config, _ = _local_stores(settings)

    try:
        data = parse_with_compatibility(path.expanduser().read_text(encoding="utf-8"))
        applied = import_global(data, history, model_config)
    except (OSError, ChatSyncError) as e:
        console.print(f"[red]✗ Import failed: {e}[/red]")
        sys.exit(1)
    console.print(f"[green]✓ Imported {', '.join(applied)} from {path}[/green]")


def main():
    load_dotenv()
    app()


if __name__ == "__main__":
    main()
