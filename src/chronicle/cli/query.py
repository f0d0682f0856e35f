"""Query commands: ask, search, context, thread, replies, recent, user.

Every command prints a rich rendering by default and plain JSON with
``--json`` (for scripts and agents). Unknown ids and empty queries print
"no results" rather than failing.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

import typer
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from chronicle.cli.common import author, console, db_path, echo_json, load_cfg, open_repo, short_time
from chronicle.query.assembler import AskConfig, ask
from chronicle.query.retriever import QueryEngine, SearchFilters

_DbOption = Annotated[Path | None, typer.Option("--db", help="Corpus file.")]
_JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table.")]
_ChannelFilter = Annotated[
    str | None, typer.Option("--channel", "-c", help="Channel id or name.")
]
_GuildFilter = Annotated[str | None, typer.Option("--guild", "-g", help="Guild id or name.")]
_UserFilter = Annotated[
    str | None, typer.Option("--user", "-u", help="User id, username or display name.")
]
_BeforeFilter = Annotated[
    str | None, typer.Option("--before", help="Only messages before this ISO timestamp.")
]
_AfterFilter = Annotated[
    str | None, typer.Option("--after", help="Only messages after this ISO timestamp.")
]


def ask_cmd(
    question: Annotated[str, typer.Argument(help="Natural-language question.")],
    top_k: Annotated[int | None, typer.Option("--top-k", "-k", help="Number of hits.")] = None,
    window: Annotated[
        int | None, typer.Option("--window", "-w", help="Context messages per hit.")
    ] = None,
    channel: _ChannelFilter = None,
    guild: _GuildFilter = None,
    user: _UserFilter = None,
    before: _BeforeFilter = None,
    after: _AfterFilter = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Ask the corpus a question: top hits plus their threads or surrounding messages."""
    cfg = load_cfg()
    repo = open_repo(db_path(db, cfg))
    try:
        result = ask(
            QueryEngine(repo),
            question,
            SearchFilters(channel=channel, guild=guild, user=user, before=before, after=after),
            AskConfig(
                top_k=top_k if top_k is not None else cfg.query.top_k,
                context_window=window if window is not None else cfg.query.context_window,
            ),
        )
    finally:
        repo.close()

    if as_json:
        echo_json(result.to_dict())
        return

    if not result.hits:
        console.print(f"[yellow]No messages match[/] {escape(question)!r}")
        return

    hits = Table(title=f"Top {len(result.hits)} hit(s)", show_lines=False)
    hits.add_column("When", style="dim", no_wrap=True)
    hits.add_column("Where", style="cyan")
    hits.add_column("Who", style="bold")
    hits.add_column("Message")
    for hit in result.hits:
        hits.add_row(
            short_time(hit.created_at),
            f"#{escape(hit.channel or '?')}",
            escape(hit.user or "?"),
            escape(hit.content),
        )
    console.print(hits)

    for key, block in result.context.items():
        title = f"[bold]{block.type}[/] #{escape(block.channel or '?')} [dim]({escape(key)})[/]"
        console.print(Panel(_transcript(block.messages), title=title, expand=False))


def search_cmd(
    query: Annotated[str, typer.Argument(help="Words to search for (any may match).")],
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Max results.")] = None,
    channel: _ChannelFilter = None,
    guild: _GuildFilter = None,
    user: _UserFilter = None,
    before: _BeforeFilter = None,
    after: _AfterFilter = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Full-text search, best match first."""
    cfg = load_cfg()
    repo = open_repo(db_path(db, cfg))
    try:
        rows = QueryEngine(repo).search(
            query,
            SearchFilters(channel=channel, guild=guild, user=user, before=before, after=after),
            limit=limit if limit is not None else cfg.query.search_limit,
        )
    finally:
        repo.close()
    _output(rows, as_json, title=f"Search: {query}", where=True)


def context_cmd(
    channel: Annotated[str, typer.Argument(help="Channel id or name.")],
    message_id: Annotated[str, typer.Argument(help="Message id to center on.")],
    window: Annotated[int, typer.Option("--window", "-w", help="Messages to show.")] = 10,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show the messages around one message."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).context(channel, message_id, window)
    finally:
        repo.close()
    _output(rows, as_json, title=f"Context of {message_id}", highlight_id=message_id)


def thread_cmd(
    thread_id: Annotated[str, typer.Argument(help="Thread (channel) id.")],
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show a thread's starter message and every message inside it."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).thread(thread_id)
    finally:
        repo.close()
    _output(rows, as_json, title=f"Thread {thread_id}")


def replies_cmd(
    message_id: Annotated[str, typer.Argument(help="Message id.")],
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show direct replies to a message."""
    repo = open_repo(db_path(db, load_cfg()))
    try:
        rows = QueryEngine(repo).replies(message_id)
    finally:
        repo.close()
    _output(rows, as_json, title=f"Replies to {message_id}")


def recent_cmd(
    channel: Annotated[str, typer.Argument(help="Channel id or name.")],
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Max results.")] = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show a channel's latest messages, newest first."""
    cfg = load_cfg()
    repo = open_repo(db_path(db, cfg))
    try:
        rows = QueryEngine(repo).recent(
            channel, limit if limit is not None else cfg.query.recent_limit
        )
    finally:
        repo.close()
    _output(rows, as_json, title=f"Recent in {channel}")


def user_cmd(
    user: Annotated[str, typer.Argument(help="User id, username or display name.")],
    channel: _ChannelFilter = None,
    guild: _GuildFilter = None,
    limit: Annotated[int | None, typer.Option("--limit", "-n", help="Max results.")] = None,
    db: _DbOption = None,
    as_json: _JsonOption = False,
) -> None:
    """Show messages posted by one user, newest first."""
    cfg = load_cfg()
    repo = open_repo(db_path(db, cfg))
    try:
        rows = QueryEngine(repo).user_messages(
            user,
            channel=channel,
            guild=guild,
            limit=limit if limit is not None else cfg.query.user_limit,
        )
    finally:
        repo.close()
    _output(rows, as_json, title=f"Messages by {user}", where=True)


# ------------------------------------------------------------------
# Rendering
# ------------------------------------------------------------------


def _output(
    rows: list[dict[str, Any]],
    as_json: bool,
    *,
    title: str,
    where: bool = False,
    highlight_id: str | None = None,
) -> None:
    if as_json:
        echo_json(rows)
        return
    if not rows:
        console.print("[yellow]No results.[/]")
        return

    table = Table(title=escape(title))
    table.add_column("When", style="dim", no_wrap=True)
    if where:
        table.add_column("Where", style="cyan")
    table.add_column("Who", style="bold")
    table.add_column("Message")
    table.add_column("Id", style="dim", no_wrap=True)
    for row in rows:
        cells = [short_time(row.get("created_at"))]
        if where:
            cells.append(f"#{escape(row.get('channel_name') or row.get('channel_id') or '?')}")
        cells += [escape(author(row)), escape(row.get("content") or ""), row["id"]]
        table.add_row(*cells, style="reverse" if row["id"] == highlight_id else None)
    console.print(table)


def _transcript(messages: list[dict[str, Any]]) -> str:
    if not messages:
        return "[dim](no messages)[/]"
    return "\n".join(
        f"[dim]{short_time(m.get('created_at'))}[/] [bold]{escape(author(m))}[/]: "
        f"{escape(m.get('content') or '')}"
        for m in messages
    )
