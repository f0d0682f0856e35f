"""Tests for chronicle stats / guilds / channels / users and the version flag."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from chronicle.cli.main import app
from chronicle.db import open_repository

runner = CliRunner()


# ---------------------------------------------------------------------------
# chronicle --version
# ---------------------------------------------------------------------------


def test_version_flag_exits_zero() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "chronicle" in result.output.lower()


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert result.output.startswith("chronicle ")


def test_help_lists_commands() -> None:
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for name in ("import", "listen", "ask", "search", "stats"):
        assert name in result.output


# ---------------------------------------------------------------------------
# Missing / empty corpus
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("command", ["stats", "guilds", "channels", "users"])
def test_missing_db_exits_1(tmp_path: Path, command: str) -> None:
    result = runner.invoke(app, [command, "--db", str(tmp_path / "missing.db")])
    assert result.exit_code == 1
    assert "No database found" in result.output


@pytest.mark.parametrize(
    "command, message",
    [("guilds", "No guilds"), ("channels", "No channels"), ("users", "No users")],
)
def test_empty_corpus(tmp_path: Path, command: str, message: str) -> None:
    path = tmp_path / "empty.db"
    open_repository(path).close()
    result = runner.invoke(app, [command, "--db", str(path)])
    assert result.exit_code == 0
    assert message in result.output


# ---------------------------------------------------------------------------
# Populated corpus
# ---------------------------------------------------------------------------


def test_stats_json(corpus: Path) -> None:
    result = runner.invoke(app, ["stats", "--db", str(corpus), "--json"])
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {
        "messages": 7,
        "channels": 2,
        "users": 2,
        "guilds": 1,
        "threads": 1,
    }


def test_stats_panel(corpus: Path) -> None:
    result = runner.invoke(app, ["stats", "--db", str(corpus)])
    assert result.exit_code == 0, result.output
    assert "Messages" in result.output
    assert "MB" in result.output


def test_guilds(corpus: Path) -> None:
    result = runner.invoke(app, ["guilds", "--db", str(corpus)])
    assert result.exit_code == 0
    assert "Acme" in result.output
    rows = json.loads(runner.invoke(app, ["guilds", "--db", str(corpus), "--json"]).output)
    assert rows == [{"id": "g1", "name": "Acme", "icon": "", "member_count": 2}]


def test_channels_table_shows_type(corpus: Path) -> None:
    result = runner.invoke(app, ["channels", "--db", str(corpus)])
    assert result.exit_code == 0
    assert "#general" in result.output
    assert "public thread" in result.output


def test_channels_guild_filter(corpus: Path) -> None:
    found = runner.invoke(app, ["channels", "-g", "acme", "--db", str(corpus), "--json"])
    assert [c["id"] for c in json.loads(found.output)] == ["c1", "t1"]

    other = runner.invoke(app, ["channels", "-g", "elsewhere", "--db", str(corpus), "--json"])
    assert json.loads(other.output) == []


def test_users_json(corpus: Path) -> None:
    result = runner.invoke(app, ["users", "--db", str(corpus), "--json"])
    assert result.exit_code == 0
    assert [u["username"] for u in json.loads(result.output)] == ["alice", "bob"]
