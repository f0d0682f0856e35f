"""Tests for the compound ask query."""

from __future__ import annotations

import json

import pytest

from chronicle.db.models import Channel, Guild, Message, User
from chronicle.query.assembler import AskConfig, ask
from chronicle.query.retriever import QueryEngine, SearchFilters


def _msg(n: int, content: str, channel_id: str = "c1", **kw) -> Message:
    kw.setdefault("author_id", "u1")
    return Message(
        id=str(1000 + n),
        channel_id=channel_id,
        guild_id="g1",
        content=content,
        created_at=f"2024-01-01T00:{n:02d}:00+00:00",
        **kw,
    )


@pytest.fixture
def engine(repo):
    repo.upsert_guild(Guild(id="g1", name="Acme"))
    repo.upsert_channel(Channel(id="c1", guild_id="g1", name="general"))
    repo.upsert_channel(Channel(id="t1", guild_id="g1", name="db-migration", type=11, parent_id="c1"))
    repo.upsert_user(User(id="u1", username="alice", display_name="Alice"))
    for n in range(1, 10):
        repo.upsert_message(_msg(n, f"chatter {n}"))
    repo.upsert_message(_msg(5, "the postgres upgrade is done"))
    repo.upsert_message(_msg(20, "postgres thread starter", thread_id="t1"))
    repo.upsert_message(_msg(21, "postgres replica lag", channel_id="t1"))
    repo.upsert_message(_msg(22, "postgres vacuum settings", channel_id="t1"))
    return QueryEngine(repo)


def test_ask_requires_question(engine):
    with pytest.raises(ValueError):
        ask(engine, None)


def test_ask_no_hits(engine):
    result = ask(engine, "kubernetes")
    assert result.hits == []
    assert result.context == {}
    assert result.stats["messages"] == 12


def test_ask_builds_context_windows_and_threads(engine):
    result = ask(engine, "postgres upgrade", config=AskConfig(top_k=10, context_window=4))

    assert {h.id for h in result.hits} == {"1005", "1020", "1021", "1022"}
    assert set(result.context) == {"context:c1:1005", "context:t1:1021", "context:t1:1022", "thread:t1"}

    around = result.context["context:c1:1005"]
    assert around.type == "context"
    assert around.channel == "general"
    assert around.guild == "Acme"
    assert [m["id"] for m in around.messages] == ["1003", "1004", "1005", "1006"]

    thread = result.context["thread:t1"]
    assert thread.type == "thread"
    assert [m["id"] for m in thread.messages] == ["1020", "1021", "1022"]


def test_ask_hit_fields(engine):
    result = ask(engine, "upgrade")
    assert len(result.hits) == 1
    hit = result.hits[0]
    assert hit.id == "1005"
    assert hit.channel == "general"
    assert hit.guild == "Acme"
    assert hit.user == "Alice"
    assert hit.content == "the postgres upgrade is done"
    assert hit.thread_id is None
    assert hit.created_at == "2024-01-01T00:05:00+00:00"


def test_ask_respects_top_k_and_filters(engine):
    assert len(ask(engine, "postgres", config=AskConfig(top_k=2)).hits) == 2
    only_thread = ask(engine, "postgres", SearchFilters(channel="db-migration"))
    assert {h.id for h in only_thread.hits} == {"1021", "1022"}


def test_ask_thread_hits_share_one_block(repo):
    repo.upsert_channel(Channel(id="c1", guild_id="g1", name="general"))
    repo.upsert_message(_msg(1, "cache miss storm", thread_id="t9"))
    repo.upsert_message(_msg(2, "cache warmup", thread_id="t9"))

    result = ask(QueryEngine(repo), "cache")

    assert len(result.hits) == 2
    assert list(result.context) == ["thread:t9"]
    assert len(result.context["thread:t9"].messages) == 2


def test_ask_result_serializes(engine):
    payload = ask(engine, "upgrade").to_dict()
    text = json.dumps(payload)
    decoded = json.loads(text)
    assert decoded["query"] == "upgrade"
    assert decoded["hits"][0]["id"] == "1005"
    assert decoded["context"]["context:c1:1005"]["type"] == "context"
    assert decoded["stats"]["guilds"] == 1
