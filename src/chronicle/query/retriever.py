"""Read-side query engine over the local corpus.

Callers pass channel, guild and user references either as ids or as names;
names are resolved case-insensitively and anything unresolvable is used as a
raw id, so a miss simply yields an empty result.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from chronicle.db.repository import Repository


@dataclass
class SearchFilters:
    """Optional narrowing for search and ask.

    Attributes:
        channel: Channel id or name (``#`` prefix allowed).
        guild: Guild id or name.
        user: User id, username or display name.
        before: Only messages created before this ISO timestamp.
        after: Only messages created after this ISO timestamp.
    """

    channel: str | None = None
    guild: str | None = None
    user: str | None = None
    before: str | None = None
    after: str | None = None


class QueryEngine:
    """Search, context and metadata lookups for presentation layers.

    Args:
        repo: Open corpus repository; the engine never writes to it.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    @property
    def repo(self) -> Repository:
        return self._repo

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        *,
        limit: int = 25,
    ) -> list[dict[str, Any]]:
        """Ranked full-text search, best match first.

        Raises:
            ValueError: If *query* is None.
        """
        if query is None:
            raise ValueError("query is required")
        f = filters or SearchFilters()
        return self._repo.search(
            query,
            limit=limit,
            channel_id=self._repo.resolve_channel(f.channel),
            guild_id=self._repo.resolve_guild(f.guild),
            user_id=self._repo.resolve_user(f.user),
            before=f.before,
            after=f.after,
        )

    # ------------------------------------------------------------------
    # Conversation structure
    # ------------------------------------------------------------------

    def context(self, channel: str, message_id: str, window: int = 10) -> list[dict[str, Any]]:
        """Messages surrounding *message_id* in *channel*, oldest first."""
        channel_id = self._repo.resolve_channel(channel)
        if not channel_id:
            return []
        return self._repo.context(channel_id, message_id, window)

    def thread(self, thread_id: str) -> list[dict[str, Any]]:
        return self._repo.thread(thread_id)

    def replies(self, message_id: str) -> list[dict[str, Any]]:
        return self._repo.replies(message_id)

    def recent(self, channel: str, limit: int = 50) -> list[dict[str, Any]]:
        channel_id = self._repo.resolve_channel(channel)
        if not channel_id:
            return []
        return self._repo.recent(channel_id, limit)

    def user_messages(
        self,
        user: str,
        *,
        channel: str | None = None,
        guild: str | None = None,
        limit: int = 50,
    ) -> list[dict[str, Any]]:
        """Messages posted by *user* (id, username or display name), newest first."""
        user_id = self._repo.resolve_user(user)
        if not user_id:
            return []
        return self._repo.messages_by_user(
            user_id,
            channel_id=self._repo.resolve_channel(channel),
            guild_id=self._repo.resolve_guild(guild),
            limit=limit,
        )

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        return self._repo.stats()

    def channels(self, guild: str | None = None) -> list[dict[str, Any]]:
        return self._repo.list_channels(self._repo.resolve_guild(guild))

    def guilds(self) -> list[dict[str, Any]]:
        return self._repo.list_guilds()

    def users(self) -> list[dict[str, Any]]:
        return self._repo.list_users()


def display_name(row: dict[str, Any]) -> str | None:
    """Best human-readable author name on a result row."""
    return row.get("user_display_name") or row.get("user_name") or row.get("author_id")
