"""Normalized records for the corpus store.

Every upsert takes one of these records. Mapping from whatever shape the
external source hands over happens once, in chronicle.sources.normalize.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import IntEnum


class ChannelType(IntEnum):
    TEXT = 0
    DM = 1
    VOICE = 2
    GROUP_DM = 3
    CATEGORY = 4
    ANNOUNCEMENT = 5
    ANNOUNCEMENT_THREAD = 10
    PUBLIC_THREAD = 11
    PRIVATE_THREAD = 12
    STAGE = 13
    DIRECTORY = 14
    FORUM = 15
    MEDIA = 16


# Channel types whose history the importer pages through.
TEXT_LIKE_TYPES: frozenset[int] = frozenset(
    {ChannelType.TEXT, ChannelType.ANNOUNCEMENT, ChannelType.FORUM}
)

THREAD_TYPES: frozenset[int] = frozenset(
    {
        ChannelType.ANNOUNCEMENT_THREAD,
        ChannelType.PUBLIC_THREAD,
        ChannelType.PRIVATE_THREAD,
    }
)


def snowflake_key(snowflake: str | int | None) -> int:
    """Return a sortable integer for a snowflake id (``-1`` for missing ids).

    Snowflakes are time-ordered as integers; comparing them as strings breaks
    as soon as two ids differ in length.
    """
    if snowflake is None or snowflake == "":
        return -1
    try:
        return int(snowflake)
    except (TypeError, ValueError):
        return -1


def latest_snowflake(*ids: str | None) -> str | None:
    """Return the newest of *ids*, ignoring ``None``."""
    present = [i for i in ids if i]
    return max(present, key=snowflake_key) if present else None


def oldest_snowflake(*ids: str | None) -> str | None:
    """Return the oldest of *ids*, ignoring ``None``."""
    present = [i for i in ids if i]
    return min(present, key=snowflake_key) if present else None


@dataclass
class Guild:
    id: str
    name: str = ""
    icon: str = ""
    owner_id: str = ""
    member_count: int = 0


@dataclass
class Channel:
    id: str
    guild_id: str | None = None
    name: str = ""
    type: int = ChannelType.TEXT
    topic: str = ""
    parent_id: str = ""
    position: int = 0

    @property
    def is_thread(self) -> bool:
        return self.type in THREAD_TYPES

    @property
    def is_text_like(self) -> bool:
        return self.type in TEXT_LIKE_TYPES


@dataclass
class User:
    id: str
    username: str = ""
    display_name: str = ""
    discriminator: str = "0"
    is_bot: bool = False
    avatar: str = ""


@dataclass
class Member:
    guild_id: str
    user_id: str
    nickname: str = ""
    roles: list[str] = field(default_factory=list)
    joined_at: str | None = None

    @property
    def roles_json(self) -> str:
        return json.dumps(self.roles)


@dataclass
class Message:
    """A single chat message.

    ``reactions``, ``attachments`` and ``embeds`` are stored as JSON lists;
    ``None`` means the source reported nothing, not an empty list.
    """

    id: str
    channel_id: str
    guild_id: str | None = None
    author_id: str | None = None
    content: str = ""
    thread_id: str | None = None
    reference_id: str | None = None
    reply_count: int = 0
    reactions: list[dict] | None = None
    attachments: list[dict] | None = None
    embeds: list[dict] | None = None
    raw: dict = field(default_factory=dict)
    created_at: str | None = None
    edited_at: str | None = None
    author: User | None = None  # carried alongside for author upserts; not persisted here


@dataclass
class Role:
    id: str
    guild_id: str
    name: str = ""
    color: int = 0
    position: int = 0
    permissions: str = "0"


@dataclass
class Pin:
    message_id: str
    channel_id: str
    guild_id: str | None = None
    pinned_at: str | None = None


@dataclass
class Emoji:
    id: str
    guild_id: str
    name: str = ""
    animated: bool = False
    url: str = ""


@dataclass
class ImportCursor:
    channel_id: str
    latest_id: str | None = None
    oldest_id: str | None = None
    updated_at: str | None = None
