"""Apply source objects to the corpus.

Both drivers go through ``Recorder``: the history importer calls it page by
page, the live listener calls it per event. Neither touches the repository's
upserts directly, so the two can never disagree on how an object is stored.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from chronicle.db.models import Channel, Guild, Member, Message
from chronicle.db.repository import Repository
from chronicle.sources.normalize import (
    member_user,
    to_channel,
    to_emoji,
    to_guild,
    to_member,
    to_message,
    to_pin,
    to_role,
    to_user,
)


class Recorder:
    """Normalize source objects and upsert them through a Repository.

    Args:
        repo: Open repository; the recorder never closes it.
    """

    def __init__(self, repo: Repository) -> None:
        self._repo = repo

    @property
    def repo(self) -> Repository:
        return self._repo

    def guild(self, obj: Any) -> Guild:
        record = to_guild(obj)
        self._repo.upsert_guild(record)
        return record

    def channel(self, obj: Any, guild_id: str | None = None) -> Channel:
        record = to_channel(obj, guild_id)
        self._repo.upsert_channel(record)
        return record

    def channels(self, objs: Iterable[Any], guild_id: str | None = None) -> list[Channel]:
        with self._repo.transaction():
            return [self.channel(obj, guild_id) for obj in objs if obj is not None]

    def user(self, obj: Any) -> None:
        self._repo.upsert_user(to_user(obj))

    def member(self, guild_id: str, obj: Any) -> Member:
        record = to_member(guild_id, obj)
        with self._repo.transaction():
            self._repo.upsert_user(to_user(member_user(obj)))
            self._repo.upsert_member(record)
        return record

    def members(self, guild_id: str, objs: Iterable[Any]) -> int:
        count = 0
        with self._repo.transaction():
            for obj in objs:
                self.member(guild_id, obj)
                count += 1
        return count

    def roles(self, guild_id: str, objs: Iterable[Any]) -> int:
        count = 0
        with self._repo.transaction():
            for obj in objs:
                self._repo.upsert_role(to_role(guild_id, obj))
                count += 1
        return count

    def emoji(self, guild_id: str, objs: Iterable[Any]) -> int:
        count = 0
        with self._repo.transaction():
            for obj in objs:
                self._repo.upsert_emoji(to_emoji(guild_id, obj))
                count += 1
        return count

    def message(
        self, obj: Any, channel_id: str | None = None, guild_id: str | None = None
    ) -> Message:
        """Upsert one message together with its author."""
        record = to_message(obj, channel_id, guild_id)
        with self._repo.transaction():
            # Author first: the index resolves the author's name at insert time.
            if record.author is not None:
                self._repo.upsert_user(record.author)
            self._repo.upsert_message(record)
        return record

    def messages(
        self, objs: Iterable[Any], channel_id: str, guild_id: str | None = None
    ) -> list[Message]:
        """Upsert a page of messages and their authors as one transaction."""
        with self._repo.transaction():
            return [self.message(obj, channel_id, guild_id) for obj in objs]

    def pins(
        self, objs: Iterable[Any], channel_id: str, guild_id: str | None = None
    ) -> list[Message]:
        """Upsert pinned messages as both Message and Pin rows, atomically."""
        records = []
        with self._repo.transaction():
            for obj in objs:
                records.append(self.message(obj, channel_id, guild_id))
                self._repo.upsert_pin(to_pin(obj, channel_id, guild_id))
        return records
