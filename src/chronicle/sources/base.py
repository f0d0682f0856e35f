"""Abstract interface to the external chat source.

The importer only talks to the source through ``ChatSource``. Handles
returned by one call (guilds, channels, threads) are opaque and are passed
back into later calls unchanged; chronicle.sources.normalize turns them into
corpus records.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

# Upstream hard limit on messages and archived threads per request.
MAX_PAGE_SIZE = 100


class SourceError(Exception):
    """Raised when the external source fails a request."""


class AccessDenied(SourceError):
    """The account may not read the requested resource."""


class TransientSourceError(SourceError):
    """Timeout or dropped connection; the same request may succeed later."""


@dataclass
class ArchivedThreadPage:
    """One page of archived threads under a parent channel.

    ``next_before`` is the cursor to pass back as ``before`` for the next
    page. Archived threads are listed newest archive first, so for Discord
    it is the last thread's archive timestamp rather than its id.
    """

    threads: list[Any] = field(default_factory=list)
    has_more: bool = False
    next_before: Any = None


class ChatSource(ABC):
    """Paged, read-only access to guilds, channels and message history.

    Implementations raise ``AccessDenied`` or ``TransientSourceError`` for the
    two failure classes the importer recovers from, and ``SourceError`` for
    everything else.
    """

    @abstractmethod
    async def login(self, token: str) -> Any:
        """Authenticate and return the session handle."""

    @abstractmethod
    async def close(self) -> None:
        """Release the session."""

    @abstractmethod
    async def list_guilds(self) -> list[Any]:
        """Return every guild visible to the session."""

    @abstractmethod
    async def fetch_members(self, guild: Any) -> list[Any]:
        """Bulk-fetch guild members from the network."""

    def cached_members(self, guild: Any) -> list[Any]:
        """Members already known locally; used when ``fetch_members`` fails."""
        return []

    @abstractmethod
    async def fetch_channels(self, guild: Any) -> list[Any]:
        """Fetch the guild's channels from the network."""

    def cached_channels(self, guild: Any) -> list[Any]:
        """Channels already known locally; used when ``fetch_channels`` fails."""
        return []

    @abstractmethod
    async def list_roles(self, guild: Any) -> list[Any]:
        """Return the guild's roles."""

    @abstractmethod
    async def list_emoji(self, guild: Any) -> list[Any]:
        """Return the guild's custom emoji."""

    @abstractmethod
    async def fetch_message_page(
        self,
        channel: Any,
        *,
        after: str | None = None,
        before: str | None = None,
        limit: int = MAX_PAGE_SIZE,
    ) -> list[Any]:
        """Return up to *limit* messages, newest first."""

    @abstractmethod
    async def fetch_active_threads(self, guild: Any) -> list[Any]:
        """Return the guild's currently active threads."""

    @abstractmethod
    async def fetch_archived_threads(
        self, channel: Any, *, before: Any = None, limit: int = MAX_PAGE_SIZE
    ) -> ArchivedThreadPage:
        """Return one page of archived threads under *channel*.

        *before* is ``None`` for the first page, then the previous page's
        ``next_before``.
        """

    @abstractmethod
    async def fetch_pinned(self, channel: Any) -> list[Any]:
        """Return the channel's pinned messages."""
