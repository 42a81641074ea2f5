"""
CLI for packstore.

Commands:
    packstore serve   - Run the HTTP server with periodic cleanup
    packstore init    - Write the default settings.toml
    packstore clean   - Run one cleanup pass and exit
    packstore packs   - List registered packs
    packstore config  - Show effective configuration
    packstore version - Print version
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from packstore import __version__
from packstore.config import DEFAULT_SETTINGS_FILE, Settings, load_settings, write_default_settings
from packstore.exceptions import ConfigurationError, PackStoreError
from packstore.logging import setup_logging
from packstore.packs.manager import PackManager
from packstore.types import ReconcileReport

app = typer.Typer(
    name="packstore",
    help="Content-addressed pack hosting with inactivity-based cleanup",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)

ConfigOption = Annotated[
    Path,
    typer.Option("--config", "-c", help="Path to settings.toml"),
]


def _load(config: Path) -> Settings:
    """Load settings, converting validation failures to ConfigurationError."""
    try:
        return load_settings(config)
    except ValidationError as e:
        raise ConfigurationError(
            "Invalid settings", context={"path": str(config), "errors": e.error_count()}
        ) from e
    except ValueError as e:
        # TOML syntax errors surface as ValueError subclasses
        raise ConfigurationError(
            "Cannot parse settings", context={"path": str(config), "error": str(e)}
        ) from e


def _load_or_exit(config: Path) -> Settings:
    try:
        return _load(config)
    except ConfigurationError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        cause = e.__cause__
        if isinstance(cause, ValidationError):
            for err in cause.errors():
                loc = ".".join(str(p) for p in err["loc"])
                error_console.print(f"  [yellow]{loc}[/yellow]: {err['msg']}")
        raise typer.Exit(1) from e


@app.command()
def serve(config: ConfigOption = DEFAULT_SETTINGS_FILE) -> None:
    """Run the upload/download server and the periodic cleaner."""
    import uvicorn

    from packstore.server.app import create_app

    write_default_settings(config)
    settings = _load_or_exit(config)
    setup_logging(settings.log_level, settings.log_file)

    uvicorn.run(
        create_app(settings),
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.log_level.lower(),
    )


@app.command()
def init(
    config: ConfigOption = DEFAULT_SETTINGS_FILE,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing file"),
    ] = False,
) -> None:
    """Write the default settings file."""
    if write_default_settings(config, force=force):
        console.print(f"[green]Wrote[/green] {config}")
    else:
        console.print(f"[yellow]{config} already exists[/yellow] (use --force to overwrite)")


async def _clean(settings: Settings) -> ReconcileReport:
    manager = PackManager(settings.storage.directory, settings.cleaner.pack_lifespan)
    await manager.start()
    return await manager.reconcile()


@app.command()
def clean(config: ConfigOption = DEFAULT_SETTINGS_FILE) -> None:
    """Run a single cleanup pass against the storage directory.

    Do not run this while a server is using the same directory.
    """
    settings = _load_or_exit(config)
    setup_logging(settings.log_level, settings.log_file, console_output=False)

    try:
        report = asyncio.run(_clean(settings))
    except PackStoreError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    table = Table(title="Cleanup pass", show_header=False)
    table.add_column("Result", style="cyan")
    table.add_column("Count", justify="right")
    for key, value in report.to_dict().items():
        table.add_row(key.replace("_", " "), str(value))
    console.print(table)


def _read_registry(settings: Settings) -> PackManager:
    """Load the registry snapshot without creating the storage layout."""
    manager = PackManager(settings.storage.directory, settings.cleaner.pack_lifespan)
    if manager.index.exists():
        manager.index.load(strict=True)
    return manager


@app.command()
def packs(config: ConfigOption = DEFAULT_SETTINGS_FILE) -> None:
    """List registered packs, most recently used first."""
    settings = _load_or_exit(config)
    setup_logging(settings.log_level, settings.log_file, console_output=False)

    try:
        manager = _read_registry(settings)
    except PackStoreError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1) from e

    entries = asyncio.run(manager.entries())
    if not entries:
        console.print("[dim]No packs registered[/dim]")
        return

    table = Table(title=f"Registered packs ({len(entries)})")
    table.add_column("SHA-1", style="cyan")
    table.add_column("Origin")
    table.add_column("Address")
    table.add_column("Last access (UTC)")
    table.add_column("Size", justify="right")

    ordered = sorted(entries.items(), key=lambda item: item[1].last_access, reverse=True)
    for pack_hash, entry in ordered:
        size = manager.blob_store.size(pack_hash)
        last_access = datetime.fromtimestamp(entry.last_access, tz=timezone.utc)
        table.add_row(
            pack_hash,
            entry.origin_id[:40],
            entry.source_address,
            last_access.strftime("%Y-%m-%d %H:%M:%S"),
            f"{size:,}" if size is not None else "[red]missing[/red]",
        )
    console.print(table)


@app.command("config")
def show_config(config: ConfigOption = DEFAULT_SETTINGS_FILE) -> None:
    """Show the effective configuration."""
    settings = _load_or_exit(config)

    table = Table(title=f"Configuration ({config})")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for key, value in settings.redacted_display().items():
        table.add_row(key, "[dim]not set[/dim]" if value is None else str(value))
    console.print(table)


@app.command()
def version() -> None:
    """Print the packstore version."""
    console.print(f"packstore {__version__}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
