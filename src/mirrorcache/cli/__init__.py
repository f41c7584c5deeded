"""CLI commands for mirrorcache.

Provides command-line interface using Typer:
- mirrorcache servers: Inspect the backend server pool
- mirrorcache entry: Read, write and delete single entries
- mirrorcache flush: Flush the backend

Usage:
    mirrorcache --help
    mirrorcache servers list
    mirrorcache entry get greeting --group posts
    mirrorcache entry set counter 5 --type int --group stats
    mirrorcache flush --delay 30
"""

from uuid import uuid4

import typer

from mirrorcache.cli.entry_cmd import app as entry_app
from mirrorcache.cli.flush_cmd import app as flush_app
from mirrorcache.cli.server_cmd import app as server_app
from mirrorcache.config import settings
from mirrorcache.observability.logging import configure_logging, request_id_var

# Main CLI application
app = typer.Typer(
    name="mirrorcache",
    help="mirrorcache: request-scoped mirror over a distributed cache",
    no_args_is_help=True,
)

app.add_typer(server_app, name="servers")
app.add_typer(entry_app, name="entry")
app.add_typer(flush_app, name="flush")


@app.callback()
def callback() -> None:
    """mirrorcache: request-scoped mirror over a distributed cache."""
    configure_logging(json_format=settings.log_json, level=settings.log_level)
    # One request id per invocation, so all log lines of a command correlate
    request_id_var.set(uuid4().hex)


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
