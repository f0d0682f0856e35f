"""Repository pattern for all corpus database operations.

Single interface for: guild/channel/user/member/message/role/pin/emoji upserts,
full-text search, context and thread lookups, import cursors, and name
resolution. This is the only code that mutates the corpus.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from chronicle.db.models import (
    Channel,
    Emoji,
    Guild,
    ImportCursor,
    Member,
    Message,
    Pin,
    Role,
    User,
    oldest_snowflake,
)

# Anything FTS5 could read as query syntax is dropped before tokenizing.
_NON_WORD_RE = re.compile(r"[^\w\s]|_")

_USER_NAME_COLUMNS = """
           u.display_name AS user_display_name,
           u.username     AS user_name"""


class Repository:
    """Data access layer for the chat corpus.

    Wraps an open sqlite3.Connection. Writes commit immediately unless they
    run inside ``transaction()``, in which case the whole block commits (or
    rolls back) as one unit. The connection is owned by the caller and must
    be closed after use (see ``close()``).
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        """Initialise with an open database connection.

        Args:
            conn: An open sqlite3.Connection with the schema initialised
                (see chronicle.db.schema.initialize).
        """
        self._conn = conn
        self._depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def close(self) -> None:
        self._conn.close()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Repository]:
        """Group writes so they become visible together or not at all.

        Nested blocks join the outermost one.
        """
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self._conn.rollback()
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self._conn.commit()

    def _commit(self) -> None:
        if self._depth == 0:
            self._conn.commit()

    # ------------------------------------------------------------------
    # Upserts
    # ------------------------------------------------------------------

    def upsert_guild(self, guild: Guild) -> None:
        self._conn.execute(
            """
            INSERT INTO guilds (id, name, icon, owner_id, member_count, updated_at)
            VALUES (?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                icon = excluded.icon,
                owner_id = excluded.owner_id,
                member_count = excluded.member_count,
                updated_at = datetime('now')
            """,
            (guild.id, guild.name, guild.icon, guild.owner_id, guild.member_count),
        )
        self._commit()

    def upsert_channel(self, channel: Channel) -> None:
        self._conn.execute(
            """
            INSERT INTO channels (id, guild_id, name, type, topic, parent_id, position, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                guild_id = excluded.guild_id,
                name = excluded.name,
                type = excluded.type,
                topic = excluded.topic,
                parent_id = excluded.parent_id,
                position = excluded.position,
                updated_at = datetime('now')
            """,
            (
                channel.id,
                channel.guild_id,
                channel.name,
                int(channel.type),
                channel.topic,
                channel.parent_id,
                channel.position,
            ),
        )
        self._commit()

    def upsert_user(self, user: User) -> None:
        self._conn.execute(
            """
            INSERT INTO users (id, username, display_name, discriminator, is_bot, avatar, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                username = excluded.username,
                display_name = excluded.display_name,
                discriminator = excluded.discriminator,
                is_bot = excluded.is_bot,
                avatar = excluded.avatar,
                updated_at = datetime('now')
            """,
            (
                user.id,
                user.username,
                user.display_name,
                user.discriminator,
                1 if user.is_bot else 0,
                user.avatar,
            ),
        )
        self._commit()

    def upsert_member(self, member: Member) -> None:
        self._conn.execute(
            """
            INSERT INTO members (guild_id, user_id, nickname, roles, joined_at, updated_at)
            VALUES (?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(guild_id, user_id) DO UPDATE SET
                nickname = excluded.nickname,
                roles = excluded.roles,
                joined_at = excluded.joined_at,
                updated_at = datetime('now')
            """,
            (member.guild_id, member.user_id, member.nickname, member.roles_json, member.joined_at),
        )
        self._commit()

    def upsert_message(self, message: Message) -> None:
        """Insert or refresh a message; the FTS index follows via triggers.

        On conflict the mutable fields are refreshed and ``created_at`` is
        left untouched. Thread and reply links are only ever filled in, never
        cleared, because partial payloads routinely omit them.
        """
        self._conn.execute(
            """
            INSERT INTO messages (id, channel_id, guild_id, author_id, content, thread_id,
                                  reference_id, reply_count, reactions, attachments, embeds,
                                  raw, created_at, edited_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                content      = excluded.content,
                thread_id    = COALESCE(excluded.thread_id, messages.thread_id),
                reference_id = COALESCE(excluded.reference_id, messages.reference_id),
                reply_count  = excluded.reply_count,
                reactions    = excluded.reactions,
                attachments  = excluded.attachments,
                embeds       = excluded.embeds,
                raw          = excluded.raw,
                edited_at    = excluded.edited_at,
                imported_at  = datetime('now')
            """,
            (
                message.id,
                message.channel_id,
                message.guild_id,
                message.author_id,
                message.content,
                message.thread_id,
                message.reference_id,
                message.reply_count,
                _dump(message.reactions),
                _dump(message.attachments),
                _dump(message.embeds),
                json.dumps(message.raw, default=str),
                message.created_at,
                message.edited_at,
            ),
        )
        self._commit()

    def upsert_role(self, role: Role) -> None:
        self._conn.execute(
            """
            INSERT INTO roles (id, guild_id, name, color, position, permissions, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                color = excluded.color,
                position = excluded.position,
                permissions = excluded.permissions,
                updated_at = datetime('now')
            """,
            (role.id, role.guild_id, role.name, role.color, role.position, role.permissions),
        )
        self._commit()

    def upsert_pin(self, pin: Pin) -> None:
        self._conn.execute(
            """
            INSERT INTO pins (message_id, channel_id, guild_id, pinned_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(message_id) DO UPDATE SET
                pinned_at = excluded.pinned_at
            """,
            (pin.message_id, pin.channel_id, pin.guild_id, pin.pinned_at),
        )
        self._commit()

    def upsert_emoji(self, emoji: Emoji) -> None:
        self._conn.execute(
            """
            INSERT INTO emoji (id, guild_id, name, animated, url, updated_at)
            VALUES (?, ?, ?, ?, ?, datetime('now'))
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                animated = excluded.animated,
                url = excluded.url,
                updated_at = datetime('now')
            """,
            (emoji.id, emoji.guild_id, emoji.name, 1 if emoji.animated else 0, emoji.url),
        )
        self._commit()

    # ------------------------------------------------------------------
    # Import cursors
    # ------------------------------------------------------------------

    def import_cursor(self, channel_id: str) -> str | None:
        """Return the latest imported message id for *channel_id*, or None."""
        cursor = self.get_cursor(channel_id)
        return cursor.latest_id if cursor else None

    def get_cursor(self, channel_id: str) -> ImportCursor | None:
        row = self._conn.execute(
            "SELECT channel_id, latest_id, oldest_id, updated_at FROM import_cursors WHERE channel_id = ?",
            (channel_id,),
        ).fetchone()
        if row is None:
            return None
        return ImportCursor(
            channel_id=row["channel_id"],
            latest_id=row["latest_id"],
            oldest_id=row["oldest_id"],
            updated_at=row["updated_at"],
        )

    def set_import_cursor(
        self, channel_id: str, latest_id: str, oldest_id: str | None = None
    ) -> None:
        """Upsert the cursor row for *channel_id*.

        ``oldest_id`` only ever moves backwards in time across runs.
        """
        previous = self.get_cursor(channel_id)
        oldest = oldest_snowflake(oldest_id, previous.oldest_id if previous else None)
        self._conn.execute(
            """
            INSERT INTO import_cursors (channel_id, latest_id, oldest_id, updated_at)
            VALUES (?, ?, ?, datetime('now'))
            ON CONFLICT(channel_id) DO UPDATE SET
                latest_id = excluded.latest_id,
                oldest_id = excluded.oldest_id,
                updated_at = datetime('now')
            """,
            (channel_id, latest_id, oldest),
        )
        self._commit()

    # ------------------------------------------------------------------
    # FTS5 search
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        *,
        limit: int = 25,
        channel_id: str | None = None,
        guild_id: str | None = None,
        user_id: str | None = None,
        before: str | None = None,
        after: str | None = None,
    ) -> list[dict[str, Any]]:
        """Full-text search ranked by FTS5 relevance.

        Every alphanumeric token is OR-ed, so a natural-language question
        matches any message containing one of its words.

        Raises:
            ValueError: If *query* is None.
        """
        match = fts_query(query)
        if not match:
            return []

        where = ["messages_fts MATCH ?"]
        params: list[Any] = [match]
        if channel_id:
            where.append("m.channel_id = ?")
            params.append(channel_id)
        if guild_id:
            where.append("m.guild_id = ?")
            params.append(guild_id)
        if user_id:
            where.append("m.author_id = ?")
            params.append(user_id)
        if before:
            where.append("m.created_at < ?")
            params.append(before)
        if after:
            where.append("m.created_at > ?")
            params.append(after)
        params.append(limit)

        return self._rows(
            f"""
            SELECT m.id, m.channel_id, m.guild_id, m.author_id, m.content, m.thread_id,
                   m.reference_id, m.reply_count, m.reactions, m.created_at,
                   {_USER_NAME_COLUMNS},
                   c.name         AS channel_name,
                   g.name         AS guild_name,
                   messages_fts.rank AS rank
            FROM messages_fts
            JOIN messages m      ON m.rowid = messages_fts.rowid
            LEFT JOIN users u    ON u.id = m.author_id
            LEFT JOIN channels c ON c.id = m.channel_id
            LEFT JOIN guilds g   ON g.id = m.guild_id
            WHERE {" AND ".join(where)}
            ORDER BY rank
            LIMIT ?
            """,
            params,
        )

    # ------------------------------------------------------------------
    # Message lookups
    # ------------------------------------------------------------------

    def get_message(self, message_id: str) -> dict[str, Any] | None:
        row = self._conn.execute("SELECT * FROM messages WHERE id = ?", (message_id,)).fetchone()
        return dict(row) if row else None

    def context(
        self, channel_id: str, message_id: str, window_size: int = 10
    ) -> list[dict[str, Any]]:
        """Return up to *window_size* messages around *message_id*, oldest first.

        ``window_size // 2`` messages strictly precede the target and the rest
        (target included) follow it. A short side is not backfilled from the
        other, so fewer rows come back near either end of the channel.
        """
        if window_size < 1:
            return []
        target = self._conn.execute(
            "SELECT created_at FROM messages WHERE id = ?", (message_id,)
        ).fetchone()
        if target is None:
            return []

        half = window_size // 2
        ts = target["created_at"]
        select = f"""
            SELECT m.id, m.channel_id, m.author_id, m.content, m.thread_id, m.reference_id,
                   m.created_at,
                   {_USER_NAME_COLUMNS},
                   c.name AS channel_name
            FROM messages m
            LEFT JOIN users u    ON u.id = m.author_id
            LEFT JOIN channels c ON c.id = m.channel_id
            WHERE m.channel_id = ?
        """
        preceding = self._rows(
            select
            + """
              AND (m.created_at < ?
                   OR (m.created_at = ? AND CAST(m.id AS INTEGER) < CAST(? AS INTEGER)))
            ORDER BY m.created_at DESC, CAST(m.id AS INTEGER) DESC
            LIMIT ?
            """,
            (channel_id, ts, ts, message_id, half),
        )
        following = self._rows(
            select
            + """
              AND (m.created_at > ?
                   OR (m.created_at = ? AND CAST(m.id AS INTEGER) >= CAST(? AS INTEGER)))
            ORDER BY m.created_at ASC, CAST(m.id AS INTEGER) ASC
            LIMIT ?
            """,
            (channel_id, ts, ts, message_id, window_size - half),
        )
        return list(reversed(preceding)) + following

    def thread(self, thread_id: str) -> list[dict[str, Any]]:
        """Messages inside the thread channel plus the message that spawned it."""
        return self._rows(
            f"""
            SELECT m.id, m.channel_id, m.author_id, m.content, m.thread_id, m.created_at,
                   {_USER_NAME_COLUMNS}
            FROM messages m
            LEFT JOIN users u ON u.id = m.author_id
            WHERE m.channel_id = ? OR m.thread_id = ?
            ORDER BY m.created_at ASC
            """,
            (thread_id, thread_id),
        )

    def replies(self, message_id: str) -> list[dict[str, Any]]:
        return self._rows(
            f"""
            SELECT m.id, m.channel_id, m.author_id, m.content, m.reference_id, m.created_at,
                   {_USER_NAME_COLUMNS}
            FROM messages m
            LEFT JOIN users u ON u.id = m.author_id
            WHERE m.reference_id = ?
            ORDER BY m.created_at ASC
            """,
            (message_id,),
        )

    def recent(self, channel_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Latest *limit* messages in a channel, newest first."""
        return self._rows(
            f"""
            SELECT m.id, m.author_id, m.content, m.thread_id, m.reply_count, m.created_at,
                   {_USER_NAME_COLUMNS}
            FROM messages m
            LEFT JOIN users u ON u.id = m.author_id
            WHERE m.channel_id = ?
            ORDER BY m.created_at DESC
            LIMIT ?
            """,
            (channel_id, limit),
        )

    def messages_by_user(
        self,
        user_id: str,
        *,
        channel_id: str | None = None,
        guild_id: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        sql = f"""
            SELECT m.id, m.channel_id, m.guild_id, m.content, m.thread_id, m.author_id, m.created_at,
                   c.name AS channel_name,
                   g.name AS guild_name,
                   {_USER_NAME_COLUMNS}
            FROM messages m
            LEFT JOIN channels c ON c.id = m.channel_id
            LEFT JOIN guilds g   ON g.id = m.guild_id
            LEFT JOIN users u    ON u.id = m.author_id
            WHERE m.author_id = ?
        """
        params: list[Any] = [user_id]
        if channel_id:
            sql += " AND m.channel_id = ?"
            params.append(channel_id)
        if guild_id:
            sql += " AND m.guild_id = ?"
            params.append(guild_id)
        sql += " ORDER BY m.created_at DESC LIMIT ?"
        params.append(limit)
        return self._rows(sql, params)

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        """Counts of messages, channels, users, guilds and distinct threads."""
        one = lambda sql: self._conn.execute(sql).fetchone()[0]  # noqa: E731
        return {
            "messages": one("SELECT COUNT(*) FROM messages"),
            "channels": one("SELECT COUNT(*) FROM channels"),
            "users": one("SELECT COUNT(*) FROM users"),
            "guilds": one("SELECT COUNT(*) FROM guilds"),
            "threads": one(
                "SELECT COUNT(DISTINCT thread_id) FROM messages WHERE thread_id IS NOT NULL"
            ),
        }

    def list_channels(self, guild_id: str | None = None) -> list[dict[str, Any]]:
        if guild_id:
            return self._rows(
                "SELECT id, guild_id, name, type, topic, parent_id FROM channels "
                "WHERE guild_id = ? ORDER BY position",
                (guild_id,),
            )
        return self._rows(
            "SELECT id, guild_id, name, type, topic, parent_id FROM channels "
            "ORDER BY guild_id, position"
        )

    def list_guilds(self) -> list[dict[str, Any]]:
        return self._rows("SELECT id, name, icon, member_count FROM guilds ORDER BY name")

    def list_users(self) -> list[dict[str, Any]]:
        return self._rows(
            "SELECT id, username, display_name, is_bot FROM users ORDER BY username"
        )

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------

    def resolve_channel(self, query: str | None) -> str | None:
        """Map a channel id or name (``#`` optional) to its id.

        Unknown names pass through unchanged so raw ids keep working.
        """
        if not query:
            return None
        clean = query[1:] if query.startswith("#") else query
        return self._resolve(
            "SELECT id FROM channels WHERE id = ?",
            "SELECT id FROM channels WHERE LOWER(name) = LOWER(?)",
            clean,
        )

    def resolve_guild(self, query: str | None) -> str | None:
        if not query:
            return None
        return self._resolve(
            "SELECT id FROM guilds WHERE id = ?",
            "SELECT id FROM guilds WHERE LOWER(name) = LOWER(?)",
            query,
        )

    def resolve_user(self, query: str | None) -> str | None:
        if not query:
            return None
        return self._resolve(
            "SELECT id FROM users WHERE id = ?",
            "SELECT id FROM users WHERE LOWER(username) = LOWER(?1) OR LOWER(display_name) = LOWER(?1)",
            query,
        )

    def _resolve(self, by_id: str, by_name: str, value: str) -> str:
        row = self._conn.execute(by_id, (value,)).fetchone()
        if row is None:
            row = self._conn.execute(by_name, (value,)).fetchone()
        return row["id"] if row else value

    def _rows(self, sql: str, params: Any = ()) -> list[dict[str, Any]]:
        return [dict(r) for r in self._conn.execute(sql, params).fetchall()]


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def fts_query(query: str) -> str:
    """Turn free text into an FTS5 OR-query of quoted tokens ("" if none).

    Raises:
        ValueError: If *query* is None.
    """
    if query is None:
        raise ValueError("query is required")
    tokens = _NON_WORD_RE.sub(" ", query).split()
    return " OR ".join(f'"{t}"' for t in tokens)


def _dump(value: list[dict] | None) -> str | None:
    return None if value is None else json.dumps(value, default=str)
