"""Forward-only migration runner for the corpus schema.

The full-text index ``messages_fts`` has no lifecycle of its own: it is keyed
1:1 to ``messages.rowid`` and maintained exclusively by the triggers below.
"""

from __future__ import annotations

import sqlite3

# schema_version is the bootstrap table, created before migrations run.
_CREATE_SCHEMA_VERSION = """
CREATE TABLE IF NOT EXISTS schema_version (
    version     INTEGER NOT NULL,
    applied_at  DATETIME NOT NULL DEFAULT (datetime('now'))
)
"""

_V1_SQL = """
CREATE TABLE IF NOT EXISTS guilds (
    id              TEXT PRIMARY KEY,
    name            TEXT NOT NULL DEFAULT '',
    icon            TEXT NOT NULL DEFAULT '',
    owner_id        TEXT NOT NULL DEFAULT '',
    member_count    INTEGER NOT NULL DEFAULT 0,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS channels (
    id              TEXT PRIMARY KEY,
    guild_id        TEXT,
    name            TEXT NOT NULL DEFAULT '',
    type            INTEGER NOT NULL DEFAULT 0,
    topic           TEXT NOT NULL DEFAULT '',
    parent_id       TEXT NOT NULL DEFAULT '',
    position        INTEGER NOT NULL DEFAULT 0,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS users (
    id              TEXT PRIMARY KEY,
    username        TEXT NOT NULL DEFAULT '',
    display_name    TEXT NOT NULL DEFAULT '',
    discriminator   TEXT NOT NULL DEFAULT '0',
    is_bot          INTEGER NOT NULL DEFAULT 0,
    avatar          TEXT NOT NULL DEFAULT '',
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS members (
    guild_id        TEXT NOT NULL,
    user_id         TEXT NOT NULL,
    nickname        TEXT NOT NULL DEFAULT '',
    roles           TEXT NOT NULL DEFAULT '[]',
    joined_at       TEXT,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now')),
    PRIMARY KEY (guild_id, user_id)
);

CREATE TABLE IF NOT EXISTS messages (
    id              TEXT PRIMARY KEY,
    channel_id      TEXT NOT NULL,
    guild_id        TEXT,
    author_id       TEXT,
    content         TEXT NOT NULL DEFAULT '',
    thread_id       TEXT,
    reference_id    TEXT,
    reply_count     INTEGER NOT NULL DEFAULT 0,
    reactions       TEXT,
    attachments     TEXT,
    embeds          TEXT,
    raw             TEXT,
    created_at      TEXT,
    edited_at       TEXT,
    imported_at     DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE INDEX IF NOT EXISTS idx_messages_channel ON messages(channel_id, created_at);
CREATE INDEX IF NOT EXISTS idx_messages_thread ON messages(thread_id) WHERE thread_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_messages_reference ON messages(reference_id) WHERE reference_id IS NOT NULL;
CREATE INDEX IF NOT EXISTS idx_messages_author ON messages(author_id);
CREATE INDEX IF NOT EXISTS idx_messages_created ON messages(created_at);
CREATE INDEX IF NOT EXISTS idx_messages_guild ON messages(guild_id);

CREATE VIRTUAL TABLE IF NOT EXISTS messages_fts USING fts5(
    content_text,
    user_name,
    channel_name,
    tokenize = 'porter unicode61'
);

CREATE TRIGGER IF NOT EXISTS messages_ai AFTER INSERT ON messages BEGIN
    INSERT INTO messages_fts(rowid, content_text, user_name, channel_name)
    VALUES (
        new.rowid,
        new.content,
        COALESCE(
            (SELECT NULLIF(display_name, '') FROM users WHERE id = new.author_id),
            (SELECT username FROM users WHERE id = new.author_id),
            ''
        ),
        COALESCE((SELECT name FROM channels WHERE id = new.channel_id), '')
    );
END;

CREATE TRIGGER IF NOT EXISTS messages_ad AFTER DELETE ON messages BEGIN
    DELETE FROM messages_fts WHERE rowid = old.rowid;
END;

-- ON CONFLICT DO UPDATE fires UPDATE triggers only, so edits are patched here.
CREATE TRIGGER IF NOT EXISTS messages_au AFTER UPDATE OF content, author_id, channel_id ON messages BEGIN
    DELETE FROM messages_fts WHERE rowid = old.rowid;
    INSERT INTO messages_fts(rowid, content_text, user_name, channel_name)
    VALUES (
        new.rowid,
        new.content,
        COALESCE(
            (SELECT NULLIF(display_name, '') FROM users WHERE id = new.author_id),
            (SELECT username FROM users WHERE id = new.author_id),
            ''
        ),
        COALESCE((SELECT name FROM channels WHERE id = new.channel_id), '')
    );
END;

CREATE TABLE IF NOT EXISTS import_cursors (
    channel_id      TEXT PRIMARY KEY,
    oldest_id       TEXT,
    latest_id       TEXT,
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS roles (
    id              TEXT PRIMARY KEY,
    guild_id        TEXT NOT NULL,
    name            TEXT NOT NULL DEFAULT '',
    color           INTEGER NOT NULL DEFAULT 0,
    position        INTEGER NOT NULL DEFAULT 0,
    permissions     TEXT NOT NULL DEFAULT '0',
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS pins (
    message_id      TEXT PRIMARY KEY,
    channel_id      TEXT NOT NULL,
    guild_id        TEXT,
    pinned_at       TEXT
);

CREATE TABLE IF NOT EXISTS emoji (
    id              TEXT PRIMARY KEY,
    guild_id        TEXT NOT NULL,
    name            TEXT NOT NULL DEFAULT '',
    animated        INTEGER NOT NULL DEFAULT 0,
    url             TEXT NOT NULL DEFAULT '',
    updated_at      DATETIME NOT NULL DEFAULT (datetime('now'))
);
"""

# Append-only. Each entry: (version: int, sql: str).
# executescript() issues an implicit COMMIT before running.
MIGRATIONS: list[tuple[int, str]] = [
    (1, _V1_SQL),
]


def current_version(conn: sqlite3.Connection) -> int:
    """Return the highest applied schema version (0 for a fresh database)."""
    row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
    return row[0] if row[0] is not None else 0


def run_migrations(conn: sqlite3.Connection) -> None:
    """Apply all pending migrations in ascending version order.

    Idempotent: safe to call on a database at any version.
    """
    conn.execute(_CREATE_SCHEMA_VERSION)
    conn.commit()

    current = current_version(conn)

    for version, sql in MIGRATIONS:
        if version > current:
            conn.executescript(sql)
            conn.execute(
                "INSERT INTO schema_version (version) VALUES (?)", (version,)
            )
            conn.commit()
