"""CLI command for flushing the cache backend.

Usage:
    mirrorcache flush
    mirrorcache flush --delay 30 --yes
"""

from __future__ import annotations

import typer
from rich.console import Console

from mirrorcache.cache.facade import CacheFacade

app = typer.Typer(help="Flush every entry from the backend")


@app.callback(invoke_without_command=True)
def flush(
    delay: int = typer.Option(
        0,
        "--delay",
        "-d",
        help="Expire entries after this many seconds instead of now",
    ),
    yes: bool = typer.Option(
        False,
        "--yes",
        "-y",
        help="Do not ask for confirmation",
    ),
) -> None:
    """Flush the backend, now or after a delay."""
    console = Console()
    if not yes:
        typer.confirm("Flush every cache entry on every server?", abort=True)

    cache = CacheFacade.from_settings()
    with cache.log_context():
        flushed = cache.flush(delay)
    if not flushed:
        console.print(f"[red]Flush failed:[/red] {cache.get_result_message()}")
        raise typer.Exit(code=1)

    if delay > 0:
        console.print(f"[green]Entries expire in {delay}s[/green]")
    else:
        console.print("[green]Cache flushed[/green]")
