"""History importer: pages a chat source into the local corpus.

Per guild, in order:
  1. guild metadata
  2. members (falls back to locally cached members on failure)
  3. channels (falls back to cached channels), roles, emoji
  4. message history of every eligible text-like channel
  5. threads: active + archived, each backfilled like a channel (optional)
  6. pinned messages

Steps 4-6 fan out over channels with bounded concurrency; each step finishes
before the next starts. Every source call waits on one shared RateLimiter.

Runs are resumable. Each channel keeps a cursor holding the newest message
id imported so far; the next run's first request asks for messages after it.
Every write is an upsert, so re-running over unchanged history only refreshes
timestamps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from chronicle.db.models import Channel, latest_snowflake, oldest_snowflake
from chronicle.db.repository import Repository
from chronicle.ingest.ratelimit import RateLimiter
from chronicle.ingest.recorder import Recorder
from chronicle.ingest.runner import bounded_map
from chronicle.sources.base import (
    MAX_PAGE_SIZE,
    AccessDenied,
    ChatSource,
    SourceError,
    TransientSourceError,
)
from chronicle.sources.normalize import to_channel, to_guild

logger = logging.getLogger(__name__)


@dataclass
class ImportOptions:
    """Knobs for one import run.

    Attributes:
        guilds: Guild ids or names to import (case-insensitive); empty = all.
        channels: Channel ids or names to import (case-insensitive); empty = all.
        include_threads: Discover and backfill active and archived threads.
        concurrency: Channels (or threads, or pin fetches) processed at once.
        page_size: Messages requested per call; a shorter page ends a channel.
        rate_limit_ms: Minimum spacing between two source calls.
    """

    guilds: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)
    include_threads: bool = True
    concurrency: int = 2
    page_size: int = MAX_PAGE_SIZE
    rate_limit_ms: float = 1000


@dataclass
class SkippedChannel:
    channel_id: str
    name: str
    reason: str  # no-access | transient | error


@dataclass
class ImportReport:
    """Totals for one run, across all guilds."""

    guilds: int = 0
    members: int = 0
    channels: int = 0
    roles: int = 0
    emoji: int = 0
    threads: int = 0
    messages: int = 0
    pins: int = 0
    skipped: list[SkippedChannel] = field(default_factory=list)


class Importer:
    """Drive one import run of *source* into *repo*.

    The source must already be logged in (see ``import_history``).

    Args:
        repo: Open corpus repository.
        source: Logged-in chat source.
        options: Run options; defaults apply when omitted.
        limiter: Shared rate limiter; one is built from ``options`` if omitted.
    """

    def __init__(
        self,
        repo: Repository,
        source: ChatSource,
        options: ImportOptions | None = None,
        limiter: RateLimiter | None = None,
    ) -> None:
        self._repo = repo
        self._source = source
        self._options = options or ImportOptions()
        self._limiter = limiter or RateLimiter(self._options.rate_limit_ms)
        self._recorder = Recorder(repo)
        self._guild_filter = _lower_set(self._options.guilds)
        self._channel_filter = _lower_set(self._options.channels)
        self.report = ImportReport()

    async def run(self) -> ImportReport:
        """Import every selected guild and return the run totals."""
        await self._limiter.acquire()
        guilds = []
        for guild in await self._source.list_guilds():
            record = to_guild(guild)
            if _selected(record.id, record.name, self._guild_filter):
                guilds.append(guild)
                self._recorder.guild(guild)
        self.report.guilds = len(guilds)
        logger.info("%d guild(s) synced", len(guilds))

        for guild in guilds:
            await self._import_guild(guild)

        logger.info(
            "Import complete: %d messages, %d threads, %d pins, %d channel(s) skipped",
            self.report.messages,
            self.report.threads,
            self.report.pins,
            len(self.report.skipped),
        )
        return self.report

    # ------------------------------------------------------------------
    # Guild phases
    # ------------------------------------------------------------------

    async def _import_guild(self, guild: Any) -> None:
        record = to_guild(guild)
        gid = record.id
        logger.info("Processing guild: %s (%s)", record.name, gid)

        members = await self._fetch_members(guild)
        self.report.members += self._recorder.members(gid, members)
        logger.info("  %d members synced", len(members))

        channel_objs = await self._fetch_channels(guild)
        channels = list(zip(channel_objs, self._recorder.channels(channel_objs, gid)))
        self.report.channels += len(channels)
        logger.info("  %d channels synced", len(channels))

        await self._limiter.acquire()
        roles = self._recorder.roles(gid, await self._source.list_roles(guild))
        await self._limiter.acquire()
        emoji = self._recorder.emoji(gid, await self._source.list_emoji(guild))
        self.report.roles += roles
        self.report.emoji += emoji
        logger.info("  %d roles, %d emoji synced", roles, emoji)

        targets = [
            (obj, ch)
            for obj, ch in channels
            if ch.is_text_like and _selected(ch.id, ch.name, self._channel_filter)
        ]
        if self._channel_filter:
            logger.info("  Filtering to %d requested channels", len(targets))
        logger.info(
            "  Importing %d text channels (concurrency: %d)",
            len(targets),
            self._options.concurrency,
        )

        await bounded_map(
            targets,
            self._options.concurrency,
            lambda target, _i: self.import_channel(target[0], target[1], gid),
        )

        if self._options.include_threads:
            await self._import_threads(guild, gid, targets)

        await bounded_map(
            targets,
            self._options.concurrency,
            lambda target, _i: self._import_pins(target[0], target[1], gid),
        )

    async def _fetch_members(self, guild: Any) -> list[Any]:
        try:
            await self._limiter.acquire()
            return list(await self._source.fetch_members(guild))
        except SourceError as exc:
            logger.warning("  Member sync failed (%s); using cached members", exc)
            return list(self._source.cached_members(guild))

    async def _fetch_channels(self, guild: Any) -> list[Any]:
        try:
            await self._limiter.acquire()
            return [c for c in await self._source.fetch_channels(guild) if c is not None]
        except SourceError as exc:
            logger.warning("  Channel fetch failed (%s); using cached channels", exc)
            return [c for c in self._source.cached_channels(guild) if c is not None]

    # ------------------------------------------------------------------
    # Message history
    # ------------------------------------------------------------------

    async def import_channel(self, handle: Any, channel: Channel, guild_id: str) -> int:
        """Page one channel's history into the corpus; return messages stored.

        Failures never escape: missing access and transient network errors
        skip the channel with its cursor unchanged, so the next run retries.
        """
        label = f"#{channel.name}"
        after_id = self._repo.import_cursor(channel.id)
        latest_id = after_id
        run_oldest: str | None = None
        count = 0

        logger.debug("    Importing %s (%s) after=%s", label, channel.id, after_id)
        try:
            while True:
                await self._limiter.acquire()
                if run_oldest:
                    page = await self._source.fetch_message_page(
                        handle, before=run_oldest, limit=self._options.page_size
                    )
                elif after_id:
                    page = await self._source.fetch_message_page(
                        handle, after=after_id, limit=self._options.page_size
                    )
                else:
                    page = await self._source.fetch_message_page(
                        handle, limit=self._options.page_size
                    )
                if not page:
                    break

                records = self._recorder.messages(page, channel.id, guild_id)
                count += len(records)
                self.report.messages += len(records)
                ids = [r.id for r in records]
                latest_id = latest_snowflake(latest_id, *ids)
                run_oldest = oldest_snowflake(*ids)

                if len(page) < self._options.page_size:
                    break
        except AccessDenied:
            logger.warning("    Skipping %s: missing access", label)
            self._skip(channel, "no-access")
            return count
        except TransientSourceError as exc:
            logger.warning("    Timeout on %s (%s); will retry next run", label, exc)
            self._skip(channel, "transient")
            return count
        except Exception as exc:
            logger.error("    Error on %s: %s; skipping", label, exc)
            self._skip(channel, "error")
            return count

        if latest_id:
            self._repo.set_import_cursor(channel.id, latest_id, oldest_id=run_oldest)
        if count:
            logger.info("    %d messages imported from %s", count, label)
        return count

    def _skip(self, channel: Channel, reason: str) -> None:
        self.report.skipped.append(SkippedChannel(channel.id, channel.name, reason))

    # ------------------------------------------------------------------
    # Threads
    # ------------------------------------------------------------------

    async def _import_threads(
        self, guild: Any, guild_id: str, parents: list[tuple[Any, Channel]]
    ) -> None:
        logger.info("  Importing threads...")
        parent_ids = {ch.id for _, ch in parents}
        found: dict[str, tuple[Any, Channel]] = {}

        try:
            await self._limiter.acquire()
            for obj in await self._source.fetch_active_threads(guild):
                # Active threads are guild-wide; honour the channel filter.
                if self._channel_filter and to_channel(obj, guild_id).parent_id not in parent_ids:
                    continue
                thread = self._recorder.channel(obj, guild_id)
                found[thread.id] = (obj, thread)
        except SourceError as exc:
            logger.warning("    Active threads fetch failed: %s", exc)

        for handle, parent in parents:
            before: Any = None
            try:
                while True:
                    await self._limiter.acquire()
                    page = await self._source.fetch_archived_threads(
                        handle, before=before, limit=MAX_PAGE_SIZE
                    )
                    for obj in page.threads:
                        thread = self._recorder.channel(obj, guild_id)
                        found[thread.id] = (obj, thread)
                    if not page.has_more or page.next_before is None:
                        break
                    before = page.next_before
            except SourceError as exc:
                # Not every channel type has archived threads.
                logger.debug("    Archived threads unavailable for #%s: %s", parent.name, exc)

        threads = list(found.values())
        self.report.threads += len(threads)
        logger.info("    Found %d threads", len(threads))

        await bounded_map(
            threads,
            self._options.concurrency,
            lambda target, _i: self._import_thread(target[0], target[1], guild_id),
        )

    async def _import_thread(self, handle: Any, thread: Channel, guild_id: str) -> int:
        try:
            return await self.import_channel(handle, thread, guild_id)
        except Exception as exc:
            logger.debug("    Thread %s import failed: %s", thread.id, exc)
            return 0

    # ------------------------------------------------------------------
    # Pins
    # ------------------------------------------------------------------

    async def _import_pins(self, handle: Any, channel: Channel, guild_id: str) -> int:
        try:
            await self._limiter.acquire()
            pinned = await self._source.fetch_pinned(handle)
            if not pinned:
                return 0
            stored = self._recorder.pins(pinned, channel.id, guild_id)
        except Exception as exc:
            # Some channel types do not support pins.
            logger.debug("    Pins unavailable for #%s: %s", channel.name, exc)
            return 0
        self.report.pins += len(stored)
        return len(stored)


async def import_history(
    source: ChatSource,
    repo: Repository,
    token: str,
    options: ImportOptions | None = None,
) -> ImportReport:
    """Log *source* in with *token*, run a full import, and close the session."""
    try:
        await source.login(token)
        return await Importer(repo, source, options).run()
    finally:
        await source.close()


def _lower_set(values: list[str] | None) -> set[str]:
    return {v.lower() for v in values or [] if v}


def _selected(item_id: str, name: str, wanted: set[str]) -> bool:
    if not wanted:
        return True
    return item_id.lower() in wanted or (name or "").lower() in wanted
