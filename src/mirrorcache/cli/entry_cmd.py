"""CLI commands for single cache entries.

Usage:
    mirrorcache entry get greeting --group posts
    mirrorcache entry set greeting hello --group posts --ttl 300
    mirrorcache entry set hits 10 --type int
    mirrorcache entry delete greeting --group posts
"""

from __future__ import annotations

from typing import Any, Optional

import orjson
import typer
from rich.console import Console

from mirrorcache.cache.facade import CacheFacade
from mirrorcache.cache.keys import DEFAULT_GROUP

app = typer.Typer(help="Read, write and delete cache entries")

VALUE_TYPES = ("str", "int", "float", "bool", "json")


def parse_value(raw: str, value_type: str) -> Any:
    """Convert a command-line string into a typed cache value."""
    if value_type not in VALUE_TYPES:
        raise typer.BadParameter(f"type must be one of: {', '.join(VALUE_TYPES)}")
    try:
        if value_type == "int":
            return int(raw)
        if value_type == "float":
            return float(raw)
        if value_type == "json":
            return orjson.loads(raw)
    except ValueError as e:
        raise typer.BadParameter(f"not a valid {value_type}: {raw!r}") from e
    if value_type == "bool":
        return raw.strip().lower() in ("1", "true", "yes", "on")
    return raw


def _facade(namespace: str | None) -> CacheFacade:
    cache = CacheFacade.from_settings()
    if namespace:
        cache.switch_namespace(namespace)
    return cache


@app.command("get")
def get(
    key: str = typer.Argument(..., help="Logical key"),
    group: str = typer.Option(DEFAULT_GROUP, "--group", "-g", help="Cache group"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace override"),
) -> None:
    """Print a cached value."""
    console = Console()
    cache = _facade(namespace)

    with cache.log_context():
        result = cache.get(key, group)
    if not result.found:
        console.print(f"[yellow]Not found:[/yellow] {cache.build_key(key, group)}")
        raise typer.Exit(code=1)

    if isinstance(result.value, (dict, list)):
        console.print_json(orjson.dumps(result.value).decode())
    else:
        console.print(repr(result.value))


@app.command("set")
def set_(
    key: str = typer.Argument(..., help="Logical key"),
    value: str = typer.Argument(..., help="Value to store"),
    group: str = typer.Option(DEFAULT_GROUP, "--group", "-g", help="Cache group"),
    ttl: int = typer.Option(0, "--ttl", "-t", help="Expiration (0 = never)"),
    value_type: str = typer.Option("str", "--type", help="str, int, float, bool or json"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace override"),
) -> None:
    """Store a value unconditionally."""
    console = Console()
    cache = _facade(namespace)

    with cache.log_context():
        stored = cache.set(key, parse_value(value, value_type), group, ttl)
    if not stored:
        console.print(f"[red]Not stored:[/red] {cache.status.value}")
        raise typer.Exit(code=1)
    console.print(f"[green]Stored[/green] {cache.build_key(key, group)}")


@app.command("delete")
def delete(
    key: str = typer.Argument(..., help="Logical key"),
    group: str = typer.Option(DEFAULT_GROUP, "--group", "-g", help="Cache group"),
    delay: int = typer.Option(0, "--delay", "-d", help="Delete after this many seconds"),
    namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Namespace override"),
) -> None:
    """Delete a value."""
    console = Console()
    cache = _facade(namespace)

    with cache.log_context():
        deleted = cache.delete(key, group, delay)
    if not deleted:
        console.print(f"[yellow]Not deleted:[/yellow] {cache.status.value}")
        raise typer.Exit(code=1)
    console.print(f"[green]Deleted[/green] {cache.build_key(key, group)}")
