"""Fixtures for CLI tests: isolated config, credentials and a seeded corpus."""

from __future__ import annotations

from pathlib import Path

import pytest

from chronicle.config import BOT_TOKEN_ENV, USER_TOKEN_ENV
from chronicle.db import open_repository
from chronicle.db.models import Channel, Guild, Message, User


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """No global config, no project config, no tokens, unless a test adds them."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr("chronicle.config._GLOBAL_CONFIG_PATH", tmp_path / "no-global.yaml")
    for name in (BOT_TOKEN_ENV, USER_TOKEN_ENV, "CHRONICLE_DB_PATH", "CHRONICLE_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def corpus(tmp_path: Path) -> Path:
    """A small corpus file: one guild, a channel, a thread, two users."""
    path = tmp_path / "corpus.db"
    repo = open_repository(path)
    repo.upsert_guild(Guild(id="g1", name="Acme", member_count=2))
    repo.upsert_channel(Channel(id="c1", guild_id="g1", name="general", topic="chit chat"))
    repo.upsert_channel(
        Channel(id="t1", guild_id="g1", name="release-thread", type=11, parent_id="c1", position=1)
    )
    repo.upsert_user(User(id="u1", username="alice", display_name="Alice"))
    repo.upsert_user(User(id="u2", username="bob"))
    for n in range(1, 6):
        repo.upsert_message(
            Message(
                id=f"100{n}",
                channel_id="c1",
                guild_id="g1",
                author_id="u1" if n % 2 else "u2",
                content=f"note {n}",
                created_at=f"2024-01-01T00:0{n}:00+00:00",
            )
        )
    repo.upsert_message(
        Message(
            id="1006",
            channel_id="c1",
            guild_id="g1",
            author_id="u2",
            content="release candidate is tagged",
            thread_id="t1",
            created_at="2024-01-01T00:06:00+00:00",
        )
    )
    repo.upsert_message(
        Message(
            id="1007",
            channel_id="t1",
            guild_id="g1",
            author_id="u1",
            content="release notes drafted",
            reference_id="1006",
            created_at="2024-01-01T00:07:00+00:00",
        )
    )
    repo.close()
    return path
