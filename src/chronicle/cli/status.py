"""Corpus overview commands: stats, guilds, channels, users."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chronicle.cli.common import console, db_path, echo_json, load_cfg, open_repo
from chronicle.db.models import ChannelType
from chronicle.query.retriever import QueryEngine

_DbOption = Annotated[Path | None, typer.Option("--db", help="Corpus file.")]
_JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")]


def stats_cmd(db: _DbOption = None, as_json: _JsonOption = False) -> None:
    """Show corpus totals: messages, channels, users, guilds, threads."""
    path = db_path(db, load_cfg())
    repo = open_repo(path)
    try:
        stats = QueryEngine(repo).stats()
    finally:
        repo.close()

    if as_json:
        echo_json(stats)
        return

    size_mb = path.stat().st_size / (1024 * 1024)
    lines = [f"Database:  {path} ({size_mb:.1f} MB)"]
    lines += [f"{name.capitalize():<10} [bold]{count:,}[/]" for name, count in stats.items()]
    console.print(Panel("\n".join(lines), title="[bold]Corpus[/]", expand=False))


def guilds_cmd(db: _DbOption = None, as_json: _JsonOption = False) -> None:
    """List stored guilds."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).guilds()
    finally:
        repo.close()

    if as_json:
        echo_json(rows)
        return
    if not rows:
        console.print("[dim]No guilds stored yet.[/]")
        return

    table = Table(title="Guilds")
    table.add_column("Id", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Members", justify="right")
    for row in rows:
        table.add_row(row["id"], escape(row["name"] or ""), f"{row['member_count'] or 0:,}")
    console.print(table)


def channels_cmd(
    guild: Annotated[str | None, typer.Option("--guild", "-g", help="Guild id or name.")] = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """List stored channels and threads, optionally for one guild."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).channels(guild)
    finally:
        repo.close()

    if as_json:
        echo_json(rows)
        return
    if not rows:
        console.print("[dim]No channels stored yet.[/]")
        return

    table = Table(title="Channels")
    table.add_column("Id", style="dim")
    table.add_column("Name", style="bold")
    table.add_column("Type")
    table.add_column("Topic")
    for row in rows:
        table.add_row(
            row["id"],
            f"#{escape(row['name'] or '')}",
            _type_name(row["type"]),
            escape(row["topic"] or ""),
        )
    console.print(table)


def users_cmd(db: _DbOption = None, as_json: _JsonOption = False) -> None:
    """List stored users."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).users()
    finally:
        repo.close()

    if as_json:
        echo_json(rows)
        return
    if not rows:
        console.print("[dim]No users stored yet.[/]")
        return

    table = Table(title="Users")
    table.add_column("Id", style="dim")
    table.add_column("Username", style="bold")
    table.add_column("Display name")
    table.add_column("Bot", justify="center")
    for row in rows:
        table.add_row(
            row["id"],
            escape(row["username"] or ""),
            escape(row["display_name"] or ""),
            "✓" if row["is_bot"] else "",
        )
    console.print(table)


def _type_name(value: int | None) -> str:
    try:
        return ChannelType(value).name.lower().replace("_", " ")
    except ValueError:
        return str(value)
