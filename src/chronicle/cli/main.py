"""Chronicle CLI entry point."""

from __future__ import annotations

import importlib.metadata
import logging
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler

from chronicle.cli.ingest import import_cmd, listen_cmd
from chronicle.cli.query import (
    ask_cmd,
    context_cmd,
    recent_cmd,
    replies_cmd,
    search_cmd,
    thread_cmd,
    user_cmd,
)
from chronicle.cli.status import channels_cmd, guilds_cmd, stats_cmd, users_cmd


def _installed_version() -> str:
    try:
        return importlib.metadata.version("chronicle")
    except importlib.metadata.PackageNotFoundError:
        return "dev"


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"chronicle {_installed_version()}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    """Route chronicle.* log records to stderr through rich."""
    logger = logging.getLogger("chronicle")
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=Console(stderr=True), show_path=False, rich_tracebacks=True)
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)


app = typer.Typer(
    name="chronicle",
    help=(
        "Chronicle: a searchable local archive of Discord conversations.\n\n"
        "  chronicle import  Backfill history into the corpus (resumable).\n"
        "  chronicle ask     Search and pull the surrounding conversation."
    ),
    add_completion=False,
)


@app.callback()
def main_callback(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit.",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Debug logging."),
    ] = False,
) -> None:
    """Chronicle: a searchable local archive of Discord conversations."""
    _setup_logging(verbose)


app.command("import")(import_cmd)
app.command("listen")(listen_cmd)
app.command("ask")(ask_cmd)
app.command("search")(search_cmd)
app.command("context")(context_cmd)
app.command("thread")(thread_cmd)
app.command("replies")(replies_cmd)
app.command("recent")(recent_cmd)
app.command("user")(user_cmd)
app.command("stats")(stats_cmd)
app.command("channels")(channels_cmd)
app.command("guilds")(guilds_cmd)
app.command("users")(users_cmd)


@app.command("version")
def version_cmd() -> None:
    """Show the installed Chronicle version."""
    typer.echo(f"chronicle {_installed_version()}")


if __name__ == "__main__":
    app()
