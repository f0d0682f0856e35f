"""Tests for the forward-only migration runner."""

from __future__ import annotations

import pytest

from chronicle.db.connection import Database
from chronicle.db.migrations import MIGRATIONS, current_version, run_migrations


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    return Database(tmp_path / "test.db").connect()


def _exists(conn, name: str, kind: str = "table") -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type = ? AND name = ?", (kind, name)
    ).fetchone() is not None


# --- Bootstrap ---

def test_fresh_database_is_version_zero(tmp_path):
    conn = _fresh_conn(tmp_path)
    conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
    assert current_version(conn) == 0
    conn.close()


def test_run_migrations_records_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert current_version(conn) == MIGRATIONS[-1][0]
    conn.close()


def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


def test_migration_versions_strictly_increase():
    versions = [v for v, _ in MIGRATIONS]
    assert versions == sorted(set(versions))


# --- Objects created ---

@pytest.mark.parametrize(
    "table",
    [
        "guilds",
        "channels",
        "users",
        "members",
        "messages",
        "messages_fts",
        "import_cursors",
        "roles",
        "pins",
        "emoji",
    ],
)
def test_creates_table(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _exists(conn, table)
    conn.close()


@pytest.mark.parametrize("trigger", ["messages_ai", "messages_ad", "messages_au"])
def test_creates_index_triggers(tmp_path, trigger):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _exists(conn, trigger, kind="trigger")
    conn.close()


def test_creates_message_indexes(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    names = {
        r["name"]
        for r in conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'index' AND tbl_name = 'messages'"
        )
    }
    assert {
        "idx_messages_channel",
        "idx_messages_thread",
        "idx_messages_reference",
        "idx_messages_author",
        "idx_messages_created",
        "idx_messages_guild",
    } <= names
    conn.close()


def test_fts_uses_porter_tokenizer(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    sql = conn.execute(
        "SELECT sql FROM sqlite_master WHERE name = 'messages_fts'"
    ).fetchone()["sql"]
    assert "porter" in sql
    conn.close()
