"""CLI commands for inspecting the backend server pool.

Usage:
    mirrorcache servers list
    mirrorcache servers stats
    mirrorcache servers version
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.table import Table

from mirrorcache.cache.facade import CacheFacade

app = typer.Typer(help="Inspect the backend server pool")

# Keys from INFO worth showing by default
STAT_FIELDS = (
    "redis_version",
    "uptime_in_seconds",
    "connected_clients",
    "used_memory_human",
    "keyspace_hits",
    "keyspace_misses",
)


@app.command("list")
def list_servers() -> None:
    """List configured servers and their weights."""
    console = Console()
    cache = CacheFacade.from_settings()

    table = Table(title="Cache servers")
    table.add_column("Host")
    table.add_column("Port", justify="right")
    table.add_column("Weight", justify="right")
    for server in cache.get_server_list():
        table.add_row(server["host"], str(server["port"]), str(server["weight"]))
    console.print(table)


@app.command("stats")
def stats(
    all_fields: bool = typer.Option(
        False,
        "--all",
        "-a",
        help="Show every INFO field instead of a summary",
    ),
) -> None:
    """Show per-server statistics."""
    console = Console()
    cache = CacheFacade.from_settings()

    server_stats = cache.get_stats()
    if not server_stats:
        console.print(f"[red]Could not read stats:[/red] {cache.get_result_message()}")
        raise typer.Exit(code=1)

    for label, info in server_stats.items():
        table = Table(title=label)
        table.add_column("Field")
        table.add_column("Value")
        for field_name, value in info.items():
            if all_fields or field_name in STAT_FIELDS:
                table.add_row(field_name, str(value))
        console.print(table)


@app.command("version")
def version() -> None:
    """Show the server version of each backend."""
    console = Console()
    cache = CacheFacade.from_settings()

    versions = cache.get_version()
    if not versions:
        console.print(f"[red]Could not read versions:[/red] {cache.get_result_message()}")
        raise typer.Exit(code=1)

    for label, server_version in versions.items():
        console.print(f"{label}: [bold]{server_version}[/bold]")
