"""Compound "ask" query: search hits plus the conversation around them.

Pipeline:
  1. Run a ranked search for the question, capped at ``top_k`` hits.
  2. For every hit, pull its surroundings once:
       - a hit inside a thread pulls the whole thread (key ``thread:<id>``)
       - any other hit pulls a context window (key ``context:<channel>:<id>``)
  3. Return the flattened hits, the context mapping and corpus stats.

Hit order is the search rank order; no further re-ranking happens here.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any

from chronicle.query.retriever import QueryEngine, SearchFilters, display_name


@dataclass
class AskConfig:
    top_k: int = 5
    context_window: int = 6


@dataclass
class Hit:
    id: str
    channel: str | None
    guild: str | None
    user: str | None
    content: str
    thread_id: str | None
    created_at: str | None


@dataclass
class ContextBlock:
    """Messages shown around one or more hits.

    Attributes:
        type: ``thread`` or ``context``.
        channel: Name of the channel the hit was posted in.
        guild: Name of the guild.
        messages: Ordered oldest first.
    """

    type: str
    channel: str | None
    guild: str | None
    messages: list[dict[str, Any]] = field(default_factory=list)


@dataclass
class AskResult:
    query: str
    hits: list[Hit] = field(default_factory=list)
    context: dict[str, ContextBlock] = field(default_factory=dict)
    stats: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def ask(
    engine: QueryEngine,
    question: str,
    filters: SearchFilters | None = None,
    config: AskConfig | None = None,
) -> AskResult:
    """Answer *question* with the best-matching messages and their context.

    Args:
        engine: Query engine over the corpus.
        question: Natural-language question; every word is searched for.
        filters: Optional channel/guild/user/time narrowing.
        config: Hit count and context window size.

    Returns:
        AskResult; ``hits`` is empty when nothing matches.

    Raises:
        ValueError: If *question* is None.
    """
    if question is None:
        raise ValueError("question is required")
    cfg = config or AskConfig()

    rows = engine.search(question, filters, limit=cfg.top_k)
    context: dict[str, ContextBlock] = {}

    for row in rows:
        if row.get("thread_id"):
            key = f"thread:{row['thread_id']}"
            if key in context:
                continue
            messages = engine.thread(row["thread_id"])
            kind = "thread"
        else:
            key = f"context:{row['channel_id']}:{row['id']}"
            if key in context:
                continue
            messages = engine.repo.context(row["channel_id"], row["id"], cfg.context_window)
            kind = "context"
        context[key] = ContextBlock(
            type=kind,
            channel=row.get("channel_name"),
            guild=row.get("guild_name"),
            messages=messages,
        )

    return AskResult(
        query=question,
        hits=[_hit(row) for row in rows],
        context=context,
        stats=engine.stats(),
    )


def _hit(row: dict[str, Any]) -> Hit:
    return Hit(
        id=row["id"],
        channel=row.get("channel_name"),
        guild=row.get("guild_name"),
        user=display_name(row),
        content=row.get("content") or "",
        thread_id=row.get("thread_id"),
        created_at=row.get("created_at"),
    )
