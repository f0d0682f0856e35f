"""chronicle import / listen: fill the corpus from Discord.

``import`` backfills history over REST and exits; it is safe to re-run and
resumes each channel from its cursor. ``listen`` keeps a gateway connection
open and records new messages, edits, reactions, channels and members as
they happen.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chronicle.cli.common import console, db_path, load_cfg, open_repo
from chronicle.cli.errors import (
    err_bad_option,
    err_discord,
    err_no_token,
    err_user_token_unsupported,
)
from chronicle.config import AuthConfig, ConfigError, ImporterCfg, resolve_auth
from chronicle.ingest.pipeline import ImportOptions, ImportReport, import_history
from chronicle.ingest.recorder import Recorder
from chronicle.sources.base import MAX_PAGE_SIZE, SourceError
from chronicle.sources.discord_source import DiscordListener, DiscordSource


def import_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Corpus file (created if missing)."),
    ] = None,
    guild: Annotated[
        list[str] | None,
        typer.Option("--guild", "-g", help="Guild id or name to import (repeatable)."),
    ] = None,
    channel: Annotated[
        list[str] | None,
        typer.Option("--channel", "-c", help="Channel id or name to import (repeatable)."),
    ] = None,
    concurrency: Annotated[
        int | None,
        typer.Option("--concurrency", help="Channels backfilled at once."),
    ] = None,
    page_size: Annotated[
        int | None,
        typer.Option("--page-size", help=f"Messages per request (1-{MAX_PAGE_SIZE})."),
    ] = None,
    rate_limit_ms: Annotated[
        int | None,
        typer.Option("--rate-limit-ms", help="Minimum delay between Discord API calls."),
    ] = None,
    no_threads: Annotated[
        bool,
        typer.Option("--no-threads", help="Skip thread discovery and backfill."),
    ] = False,
) -> None:
    """Backfill message history from every reachable guild into the corpus."""
    cfg = load_cfg()
    auth = _require_bot_token()
    options = _import_options(cfg.importer, guild, channel, concurrency, page_size, rate_limit_ms)
    if no_threads:
        options.include_threads = False

    path = db_path(db, cfg)
    repo = open_repo(path, create=True)
    console.print(f"[bold]→ Importing into {path}[/]")
    try:
        report = asyncio.run(import_history(DiscordSource(), repo, auth.token, options))
    except SourceError as exc:
        console.print(err_discord(str(exc)))
        raise typer.Exit(1) from exc
    finally:
        repo.close()

    _show_report(report)


def listen_cmd(
    db: Annotated[
        Path | None,
        typer.Option("--db", help="Corpus file (created if missing)."),
    ] = None,
    quiet: Annotated[
        bool,
        typer.Option("--quiet", "-q", help="Do not echo incoming messages."),
    ] = False,
) -> None:
    """Record live Discord events into the corpus until interrupted."""
    cfg = load_cfg()
    auth = _require_bot_token()
    path = db_path(db, cfg)
    repo = open_repo(path, create=True)

    listener = DiscordListener(Recorder(repo), on_message=None if quiet else _print_event)
    console.print(f"[bold]→ Listening; writing to {path}[/]  [dim](Ctrl+C to stop)[/]")
    try:
        listener.run(auth.token, log_handler=None)
    finally:
        repo.close()


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _require_bot_token() -> AuthConfig:
    """Resolve credentials before anything touches the corpus."""
    try:
        auth = resolve_auth()
    except ConfigError as exc:
        console.print(err_no_token())
        raise typer.Exit(1) from exc
    if auth.mode != "bot":
        console.print(err_user_token_unsupported())
        raise typer.Exit(1)
    return auth


def _import_options(
    cfg: ImporterCfg,
    guilds: list[str] | None,
    channels: list[str] | None,
    concurrency: int | None,
    page_size: int | None,
    rate_limit_ms: int | None,
) -> ImportOptions:
    options = ImportOptions(
        guilds=list(guilds or cfg.guilds),
        channels=list(channels or cfg.channels),
        include_threads=cfg.include_threads,
        concurrency=concurrency if concurrency is not None else cfg.concurrency,
        page_size=page_size if page_size is not None else cfg.page_size,
        rate_limit_ms=rate_limit_ms if rate_limit_ms is not None else cfg.rate_limit_ms,
    )
    if options.concurrency < 1:
        console.print(err_bad_option("--concurrency", options.concurrency, "an integer >= 1"))
        raise typer.Exit(1)
    if not 1 <= options.page_size <= MAX_PAGE_SIZE:
        console.print(
            err_bad_option("--page-size", options.page_size, f"1 to {MAX_PAGE_SIZE}")
        )
        raise typer.Exit(1)
    if options.rate_limit_ms < 0:
        console.print(err_bad_option("--rate-limit-ms", options.rate_limit_ms, "0 or more"))
        raise typer.Exit(1)
    return options


def _show_report(report: ImportReport) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column("What", style="bold")
    table.add_column("Count", justify="right")
    for label, value in (
        ("Guilds", report.guilds),
        ("Members", report.members),
        ("Channels", report.channels),
        ("Roles", report.roles),
        ("Emoji", report.emoji),
        ("Threads", report.threads),
        ("Messages", report.messages),
        ("Pins", report.pins),
    ):
        table.add_row(label, f"{value:,}")
    console.print(Panel(table, title="[bold]Import complete[/]", expand=False))

    if report.skipped:
        console.print(f"[yellow]{len(report.skipped)} channel(s) skipped:[/]")
        for skip in report.skipped:
            console.print(f"  [yellow]✗[/] #{skip.name} ({skip.channel_id}): {skip.reason}")


def _print_event(event: dict[str, Any]) -> None:
    content = (event.get("content") or "").replace("\n", " ")
    if len(content) > 120:
        content = content[:117] + "..."
    console.print(
        f"[dim]{event['type']:>6}[/] [cyan]{event['channel_id']}[/] "
        f"[bold]{escape(event.get('author') or '?')}[/]: {escape(content)}",
        highlight=False,
    )
