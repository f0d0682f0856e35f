"""discord.py implementation of ChatSource, plus the live event listener.

``DiscordSource`` uses REST-only login (no gateway connection) for history
imports. ``DiscordListener`` holds a gateway connection and applies each event
through the same Recorder the importer uses.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

import aiohttp
import discord

from chronicle.ingest.recorder import Recorder
from chronicle.sources.base import (
    MAX_PAGE_SIZE,
    AccessDenied,
    ArchivedThreadPage,
    ChatSource,
    SourceError,
    TransientSourceError,
)

logger = logging.getLogger(__name__)

# Discord JSON error codes: Missing Access, Missing Permissions.
_ACCESS_CODES = frozenset({50001, 50013})


def default_intents() -> discord.Intents:
    """Intents needed for message content, members and reactions."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.members = True
    intents.guilds = True
    intents.reactions = True
    return intents


@contextmanager
def translate_errors(what: str) -> Iterator[None]:
    """Re-raise discord.py / transport failures as SourceError subclasses."""
    try:
        yield
    except discord.Forbidden as exc:
        raise AccessDenied(f"{what}: {exc}") from exc
    except discord.DiscordServerError as exc:
        raise TransientSourceError(f"{what}: {exc}") from exc
    except discord.HTTPException as exc:
        if exc.code in _ACCESS_CODES:
            raise AccessDenied(f"{what}: {exc}") from exc
        raise SourceError(f"{what}: {exc}") from exc
    except (asyncio.TimeoutError, aiohttp.ClientError, ConnectionError) as exc:
        raise TransientSourceError(f"{what}: {exc!r}") from exc
    except (AttributeError, discord.ClientException) as exc:
        # Channel types without history, threads or pins.
        raise SourceError(f"{what}: {exc}") from exc


def _snowflake(value: str | None) -> discord.Object | None:
    return discord.Object(id=int(value)) if value else None


class DiscordSource(ChatSource):
    """Read guild metadata and history over Discord's REST API.

    Args:
        client: Optional pre-built client (e.g. one shared with a listener).
    """

    def __init__(self, client: discord.Client | None = None) -> None:
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> discord.Client:
        if self._client is None:
            raise SourceError("Not logged in; call login() first")
        return self._client

    async def login(self, token: str) -> Any:
        if self._client is None:
            self._client = discord.Client(intents=default_intents())
        if self._client.is_ready():
            return self._client.user
        with translate_errors("login"):
            await self._client.login(token)
        logger.info("Logged in as %s", self._client.user)
        return self._client.user

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.close()

    async def list_guilds(self) -> list[Any]:
        with translate_errors("list guilds"):
            return [g async for g in self.client.fetch_guilds(limit=None)]

    async def fetch_members(self, guild: Any) -> list[Any]:
        with translate_errors(f"members of {guild.id}"):
            return [m async for m in guild.fetch_members(limit=None)]

    def cached_members(self, guild: Any) -> list[Any]:
        return list(getattr(guild, "members", []))

    async def fetch_channels(self, guild: Any) -> list[Any]:
        with translate_errors(f"channels of {guild.id}"):
            return list(await guild.fetch_channels())

    def cached_channels(self, guild: Any) -> list[Any]:
        return list(getattr(guild, "channels", []))

    async def list_roles(self, guild: Any) -> list[Any]:
        if getattr(guild, "roles", None):
            return list(guild.roles)
        with translate_errors(f"roles of {guild.id}"):
            return list(await guild.fetch_roles())

    async def list_emoji(self, guild: Any) -> list[Any]:
        if getattr(guild, "emojis", None):
            return list(guild.emojis)
        with translate_errors(f"emoji of {guild.id}"):
            return list(await guild.fetch_emojis())

    async def fetch_message_page(
        self,
        channel: Any,
        *,
        after: str | None = None,
        before: str | None = None,
        limit: int = MAX_PAGE_SIZE,
    ) -> list[Any]:
        with translate_errors(f"history of {channel.id}"):
            page = [
                m
                async for m in channel.history(
                    limit=limit,
                    after=_snowflake(after),
                    before=_snowflake(before),
                    oldest_first=False,
                )
            ]
        page.sort(key=lambda m: m.id, reverse=True)
        return page

    async def fetch_active_threads(self, guild: Any) -> list[Any]:
        with translate_errors(f"active threads of {guild.id}"):
            return list(await guild.active_threads())

    async def fetch_archived_threads(
        self, channel: Any, *, before: Any = None, limit: int = MAX_PAGE_SIZE
    ) -> ArchivedThreadPage:
        # The API pages archived threads by archive time, not by id.
        if not isinstance(before, datetime):
            before = _snowflake(before)
        with translate_errors(f"archived threads of {channel.id}"):
            threads = [t async for t in channel.archived_threads(limit=limit, before=before)]
        return ArchivedThreadPage(
            threads=threads,
            has_more=len(threads) >= limit,
            next_before=threads[-1].archive_timestamp if threads else None,
        )

    async def fetch_pinned(self, channel: Any) -> list[Any]:
        with translate_errors(f"pins of {channel.id}"):
            return list(await channel.pins())


class DiscordListener(discord.Client):
    """Gateway client that records live events into the corpus.

    Args:
        recorder: Shared Recorder (same one an importer would use).
        on_message: Optional callback receiving a summary dict for every new
            or edited message.
    """

    def __init__(
        self,
        recorder: Recorder,
        on_message: Callable[[dict[str, Any]], None] | None = None,
        **options: Any,
    ) -> None:
        options.setdefault("intents", default_intents())
        super().__init__(**options)
        self._recorder = recorder
        self._callback = on_message

    def _notify(self, kind: str, message: discord.Message) -> None:
        if self._callback is None:
            return
        self._callback(
            {
                "type": kind,
                "guild_id": str(message.guild.id) if message.guild else None,
                "channel_id": str(message.channel.id),
                "message_id": str(message.id),
                "author": message.author.name if message.author else None,
                "content": message.content,
            }
        )

    def _record_guild(self, guild: discord.Guild) -> None:
        self._recorder.guild(guild)
        self._recorder.channels(guild.channels, str(guild.id))

    async def on_ready(self) -> None:
        logger.info("Listener ready as %s, watching %d guild(s)", self.user, len(self.guilds))
        for guild in self.guilds:
            self._record_guild(guild)

    async def on_message(self, message: discord.Message) -> None:
        self._recorder.message(message)
        if message.guild is not None and isinstance(message.author, discord.Member):
            self._recorder.member(str(message.guild.id), message.author)
        self._notify("new", message)

    async def on_message_edit(self, before: discord.Message, after: discord.Message) -> None:
        self._recorder.message(after)
        self._notify("edited", after)

    async def on_reaction_add(self, reaction: discord.Reaction, user: Any) -> None:
        self._recorder.message(reaction.message)

    async def on_reaction_remove(self, reaction: discord.Reaction, user: Any) -> None:
        self._recorder.message(reaction.message)

    async def on_guild_channel_create(self, channel: Any) -> None:
        self._recorder.channel(channel)

    async def on_guild_channel_update(self, before: Any, after: Any) -> None:
        self._recorder.channel(after)

    async def on_thread_create(self, thread: discord.Thread) -> None:
        self._recorder.channel(thread)
        # Join so the thread's messages arrive as events.
        if thread.me is None:
            try:
                await thread.join()
            except discord.HTTPException as exc:
                logger.debug("Could not join thread %s: %s", thread.id, exc)

    async def on_guild_join(self, guild: discord.Guild) -> None:
        self._record_guild(guild)

    async def on_member_join(self, member: discord.Member) -> None:
        self._recorder.member(str(member.guild.id), member)
