"""Tests for chronicle ask / search / context / thread / replies / recent / user."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml
from typer.testing import CliRunner

from chronicle.cli.main import app
from chronicle.db import open_repository
from chronicle.db.models import Channel, Message

runner = CliRunner()


def _json(args: list[str]):
    result = runner.invoke(app, args + ["--json"])
    assert result.exit_code == 0, result.output
    return json.loads(result.output)


# ---------------------------------------------------------------------------
# Missing corpus
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "args",
    [
        ["ask", "hello"],
        ["search", "hello"],
        ["context", "general", "1"],
        ["thread", "t1"],
        ["replies", "1"],
        ["recent", "general"],
        ["user", "alice"],
    ],
)
def test_missing_db_exits_1(tmp_path: Path, args: list[str]) -> None:
    missing = tmp_path / "nope.db"
    result = runner.invoke(app, args + ["--db", str(missing)])
    assert result.exit_code == 1
    assert "No database found" in result.output
    assert not missing.exists()


def test_db_path_from_project_config(corpus: Path, tmp_path: Path) -> None:
    (tmp_path / "chronicle.yaml").write_text(
        yaml.dump({"storage": {"path": str(corpus)}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["search", "release", "--json"])
    assert result.exit_code == 0, result.output
    assert {row["id"] for row in json.loads(result.output)} == {"1006", "1007"}


def test_invalid_config_exits_1(corpus: Path, tmp_path: Path) -> None:
    (tmp_path / "chronicle.yaml").write_text(
        yaml.dump({"importer": {"page_size": 500}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["search", "release", "--db", str(corpus)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output


def test_wrongly_typed_config_exits_1(corpus: Path, tmp_path: Path) -> None:
    (tmp_path / "chronicle.yaml").write_text(
        yaml.dump({"query": {"top_k": "several"}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["ask", "release", "--db", str(corpus)])
    assert result.exit_code == 1
    assert "Invalid configuration" in result.output
    assert "query.top_k" in result.output


def test_config_error_shows_bad_value_literally(corpus: Path, tmp_path: Path) -> None:
    (tmp_path / "chronicle.yaml").write_text(
        yaml.dump({"importer": {"include_threads": "[red]"}}), encoding="utf-8"
    )
    result = runner.invoke(app, ["search", "release", "--db", str(corpus)])
    assert result.exit_code == 1
    assert "got '[red]'" in result.output


# ---------------------------------------------------------------------------
# ask
# ---------------------------------------------------------------------------


def test_ask_json_shape(corpus: Path) -> None:
    data = _json(["ask", "release", "--db", str(corpus)])
    assert data["query"] == "release"
    assert {h["id"] for h in data["hits"]} == {"1006", "1007"}
    assert "thread:t1" in data["context"]
    assert "context:t1:1007" in data["context"]
    assert data["stats"]["messages"] == 7


def test_ask_top_k_and_filters(corpus: Path) -> None:
    data = _json(["ask", "release", "-k", "1", "--user", "alice", "--db", str(corpus)])
    assert [h["id"] for h in data["hits"]] == ["1007"]
    assert data["hits"][0]["user"] == "Alice"


def test_ask_renders_hits(corpus: Path) -> None:
    result = runner.invoke(app, ["ask", "candidate", "--db", str(corpus)])
    assert result.exit_code == 0, result.output
    assert "hit(s)" in result.output
    assert "thread" in result.output


def test_ask_no_hits(corpus: Path) -> None:
    result = runner.invoke(app, ["ask", "kubernetes", "--db", str(corpus)])
    assert result.exit_code == 0
    assert "No messages match" in result.output


@pytest.fixture
def bracketed(corpus: Path) -> Path:
    repo = open_repository(corpus)
    repo.upsert_channel(Channel(id="c9", guild_id="g1", name="ops[red]", position=2))
    repo.upsert_message(
        Message(
            id="2001",
            channel_id="c9",
            guild_id="g1",
            author_id="u1",
            content="incident report filed",
            created_at="2024-01-02T00:00:00+00:00",
        )
    )
    repo.close()
    return corpus


@pytest.mark.parametrize("command", ["ask", "search"])
def test_channel_names_render_literally(bracketed: Path, command: str) -> None:
    result = runner.invoke(app, [command, "incident", "--db", str(bracketed)])
    assert result.exit_code == 0, result.output
    assert "#ops[red]" in result.output


def test_channel_names_with_brackets_in_json(bracketed: Path) -> None:
    rows = _json(["search", "incident", "--db", str(bracketed)])
    assert [r["channel_name"] for r in rows] == ["ops[red]"]


# ---------------------------------------------------------------------------
# search
# ---------------------------------------------------------------------------


def test_search_json(corpus: Path) -> None:
    rows = _json(["search", "note", "--db", str(corpus), "--limit", "2"])
    assert len(rows) == 2
    assert all(r["channel_name"] == "general" for r in rows)


def test_search_channel_filter(corpus: Path) -> None:
    rows = _json(["search", "release", "-c", "#release-thread", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1007"]


def test_search_table_and_empty(corpus: Path) -> None:
    found = runner.invoke(app, ["search", "candidate", "--db", str(corpus)])
    assert found.exit_code == 0
    assert "1006" in found.output

    empty = runner.invoke(app, ["search", "?!", "--db", str(corpus)])
    assert empty.exit_code == 0
    assert "No results." in empty.output


# ---------------------------------------------------------------------------
# context / thread / replies / recent / user
# ---------------------------------------------------------------------------


def test_context_window(corpus: Path) -> None:
    rows = _json(["context", "general", "1003", "--window", "4", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1001", "1002", "1003", "1004"]


def test_context_unknown_message(corpus: Path) -> None:
    result = runner.invoke(app, ["context", "general", "9999", "--db", str(corpus)])
    assert result.exit_code == 0
    assert "No results." in result.output


def test_thread(corpus: Path) -> None:
    rows = _json(["thread", "t1", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1006", "1007"]


def test_replies(corpus: Path) -> None:
    rows = _json(["replies", "1006", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1007"]


def test_recent(corpus: Path) -> None:
    rows = _json(["recent", "general", "-n", "2", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1006", "1005"]


def test_user_by_display_name(corpus: Path) -> None:
    rows = _json(["user", "Alice", "--db", str(corpus)])
    assert [r["id"] for r in rows] == ["1007", "1005", "1003", "1001"]


def test_user_table(corpus: Path) -> None:
    result = runner.invoke(app, ["user", "bob", "--db", str(corpus)])
    assert result.exit_code == 0
    assert "bob" in result.output
