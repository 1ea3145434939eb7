"""
CLI for provisioning and maintaining cache tables.

Commands:
    sqlcache create DATABASE TABLE - Create the cache table and index
    sqlcache script TABLE - Print the table and index DDL
    sqlcache purge - Delete expired rows now
    sqlcache inspect KEY - Show a stored entry without touching it
    sqlcache config - Show current configuration
    sqlcache version - Print version
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from sqlcache import __version__
from sqlcache.cache import AsyncSqlCache
from sqlcache.config import (
    DEFAULT_TABLE_NAME,
    CacheSettings,
    clear_settings_cache,
    get_settings,
)
from sqlcache.exceptions import SqlCacheError
from sqlcache.logging import setup_logging
from sqlcache.storage.connection import SqliteConnectionFactory
from sqlcache.storage.queries import CacheQueries
from sqlcache.storage.schema import create_table

app = typer.Typer(
    name="sqlcache",
    help="Create and maintain SQL-backed cache tables",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> CacheSettings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _require_settings() -> CacheSettings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'sqlcache config' to see what's missing."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL)
    return settings


@app.command()
def create(
    database: Annotated[Path, typer.Argument(help="SQLite database file")],
    table: Annotated[str, typer.Argument(help="Name of the table to be created")],
    schema: Annotated[
        Optional[str],
        typer.Option("--schema", "-s", help="Schema (attached database) for the table"),
    ] = None,
) -> None:
    """Create the cache table and its expiration index."""
    try:
        queries = CacheQueries(table, schema)
        created = asyncio.run(create_table(SqliteConnectionFactory(database), queries))
    except SqlCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not created:
        error_console.print(
            f"[red]Error:[/red] Table '{table}' already exists in '{database}'. "
            "Provide a different table name and try again."
        )
        raise typer.Exit(1)

    console.print("[green]Table and index were created successfully.[/green]")


@app.command()
def script(
    table: Annotated[str, typer.Argument(help="Name of the table")],
    schema: Annotated[
        Optional[str],
        typer.Option("--schema", "-s", help="Schema (attached database) for the table"),
    ] = None,
) -> None:
    """Print the DDL that creates the cache table and index."""
    try:
        queries = CacheQueries(table, schema)
    except SqlCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(queries.script(), end="", markup=False, highlight=False, soft_wrap=True)


def _open_cache(database: Path | None, table: str | None) -> AsyncSqlCache:
    if database is not None:
        return AsyncSqlCache.connect(database, table or DEFAULT_TABLE_NAME)
    settings = _require_settings()
    if table is not None:
        settings = settings.model_copy(update={"TABLE_NAME": table})
    return AsyncSqlCache.from_settings(settings)


@app.command()
def purge(
    database: Annotated[
        Optional[Path],
        typer.Option("--database", "-d", help="SQLite database file (default: from settings)"),
    ] = None,
    table: Annotated[
        Optional[str],
        typer.Option("--table", "-t", help="Cache table (default: from settings)"),
    ] = None,
) -> None:
    """Delete every expired row now."""
    cache = _open_cache(database, table)
    try:
        count = asyncio.run(cache.delete_expired_now())
    except SqlCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    console.print(f"Deleted [bold]{count}[/bold] expired cache item(s).")


@app.command()
def inspect(
    key: Annotated[str, typer.Argument(help="Cache key")],
    database: Annotated[
        Optional[Path],
        typer.Option("--database", "-d", help="SQLite database file (default: from settings)"),
    ] = None,
    table: Annotated[
        Optional[str],
        typer.Option("--table", "-t", help="Cache table (default: from settings)"),
    ] = None,
) -> None:
    """Show a stored entry without extending its expiration."""
    cache = _open_cache(database, table)
    try:
        info = asyncio.run(cache.get_entry_info(key))
    except SqlCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if info is None:
        error_console.print(f"[yellow]No entry for key {key!r}.[/yellow]")
        raise typer.Exit(1)

    sliding = str(info.sliding_expiration) if info.sliding_expiration else "-"
    absolute = info.absolute_expiration.isoformat() if info.absolute_expiration else "-"
    console.print(
        Panel(
            f"[bold]Key:[/bold] {info.key}\n"
            f"[bold]Size:[/bold] {len(info.value)} bytes\n"
            f"[bold]Expires At:[/bold] {info.expires_at.isoformat()}\n"
            f"[bold]Sliding:[/bold] {sliding}\n"
            f"[bold]Absolute:[/bold] {absolute}",
            title="[bold cyan]Cache Entry[/bold cyan]",
            border_style="cyan",
        )
    )


@app.command()
def config() -> None:
    """Show current configuration."""
    console.print()
    console.print("[bold]Cache Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Required environment variables:")
        error_console.print(
            "  - SQLCACHE_CONNECTION, or SQLCACHE_READ_CONNECTION and SQLCACHE_WRITE_CONNECTION"
        )
        error_console.print(
            "  - SQLCACHE_EXPIRED_ITEMS_DELETION_INTERVAL, if set, must be at least 5 minutes"
        )
        raise typer.Exit(1)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"sqlcache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
