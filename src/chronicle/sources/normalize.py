"""Map source objects of any shape onto corpus records.

Sources hand over either library objects (attribute access, e.g. discord.py
models) or plain mappings decoded from JSON, and both come in several naming
conventions (``owner_id`` / ``ownerId``). This module is the one place that
knows about those aliases; every optional field has a default, so a missing
key never raises.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from chronicle.db.models import Channel, Emoji, Guild, Member, Message, Pin, Role, User


def _get(obj: Any, *names: str, default: Any = None) -> Any:
    """Return the first non-None value among *names* on *obj*."""
    if obj is None:
        return default
    for name in names:
        if isinstance(obj, Mapping):
            value = obj.get(name)
        else:
            value = getattr(obj, name, None)
        if value is not None:
            return value
    return default


def _id(value: Any) -> str | None:
    """Snowflake as a string; accepts ints, strings and objects with ``id``."""
    if value is None or value == "":
        return None
    if isinstance(value, (str, int)):
        return str(value)
    nested = _get(value, "id")
    return str(nested) if nested is not None else None


def _int(value: Any, default: int = 0) -> int:
    # Enum-like values (channel types, colours, permission sets) expose .value
    value = getattr(value, "value", value)
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _iso(value: Any) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _asset(value: Any) -> str:
    """Icons and avatars arrive as hashes, URLs or asset objects."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return str(_get(value, "key", "url", default=""))


def _items(value: Any) -> list[Any]:
    """Collections arrive as lists, dict-like caches or ``None``."""
    if value is None or isinstance(value, (str, bytes)):
        return []
    if isinstance(value, Mapping):
        return list(value.values())
    cache = getattr(value, "cache", None)
    if cache is not None:
        return _items(cache)
    if isinstance(value, Iterable):
        return list(value)
    return []


# ------------------------------------------------------------------
# Records
# ------------------------------------------------------------------


def to_guild(obj: Any) -> Guild:
    return Guild(
        id=_id(_get(obj, "id")) or "",
        name=str(_get(obj, "name", default="")),
        icon=_asset(_get(obj, "icon")),
        owner_id=_id(_get(obj, "owner_id", "ownerId")) or "",
        member_count=_int(
            _get(obj, "member_count", "memberCount", "approximate_member_count")
        ),
    )


def to_channel(obj: Any, guild_id: str | None = None) -> Channel:
    return Channel(
        id=_id(_get(obj, "id")) or "",
        guild_id=guild_id or _id(_get(obj, "guild_id", "guildId", "guild")),
        name=str(_get(obj, "name", default="")),
        type=_int(_get(obj, "type")),
        topic=str(_get(obj, "topic", default="")),
        parent_id=_id(_get(obj, "parent_id", "parentId")) or "",
        position=_int(_get(obj, "position", "rawPosition")),
    )


def to_user(obj: Any) -> User:
    username = str(_get(obj, "username", "name", default=""))
    return User(
        id=_id(_get(obj, "id")) or "",
        username=username,
        display_name=str(
            _get(obj, "global_name", "globalName", "display_name", "displayName", default="")
        ),
        discriminator=str(_get(obj, "discriminator", default="0")),
        is_bot=bool(_get(obj, "bot", "is_bot", default=False)),
        avatar=_asset(_get(obj, "avatar")),
    )


def member_user(obj: Any) -> Any:
    """The global user behind a member.

    Payload dicts nest it under ``user``; discord.py members keep it in
    ``_user`` and otherwise answer with guild-specific values (nickname as
    ``display_name``).
    """
    return _get(obj, "user", "_user", default=obj)


def to_member(guild_id: str, obj: Any) -> Member:
    user = member_user(obj)
    roles = [_id(r) for r in _items(_get(obj, "roles"))]
    return Member(
        guild_id=guild_id,
        user_id=_id(_get(user, "id")) or _id(_get(obj, "id")) or "",
        nickname=str(_get(obj, "nickname", "nick", default="")),
        roles=[r for r in roles if r],
        joined_at=_iso(_get(obj, "joined_at", "joinedAt")),
    )


def _reactions(value: Any) -> list[dict] | None:
    if value is None:
        return None
    out = []
    for reaction in _items(value):
        emoji = _get(reaction, "emoji")
        name = emoji if isinstance(emoji, str) else _get(emoji, "name", default="")
        out.append({"emoji": name, "count": _int(_get(reaction, "count"))})
    return out


def _attachments(value: Any) -> list[dict] | None:
    if value is None:
        return None
    return [
        {
            "id": _id(_get(a, "id")),
            "name": _get(a, "name", "filename"),
            "url": _get(a, "url"),
            "size": _int(_get(a, "size")),
            "contentType": _get(a, "contentType", "content_type"),
        }
        for a in _items(value)
    ]


def _embeds(value: Any) -> list[dict] | None:
    if value is None:
        return None
    return [
        {
            "title": _get(e, "title"),
            "description": _get(e, "description"),
            "url": _get(e, "url"),
        }
        for e in _items(value)
    ]


def to_message(
    obj: Any, channel_id: str | None = None, guild_id: str | None = None
) -> Message:
    author_obj = _get(obj, "author")
    author = to_user(member_user(author_obj)) if author_obj is not None else None
    thread = _get(obj, "thread")
    reference = _get(obj, "reference")

    message = Message(
        id=_id(_get(obj, "id")) or "",
        channel_id=channel_id
        or _id(_get(obj, "channel_id", "channelId", "channel"))
        or "",
        guild_id=guild_id or _id(_get(obj, "guild_id", "guildId", "guild")),
        author_id=author.id if author else _id(_get(obj, "author_id", "authorId")),
        content=str(_get(obj, "content", default="")),
        thread_id=_id(thread) or _id(_get(obj, "thread_id", "threadId")),
        reference_id=_id(_get(reference, "message_id", "messageId"))
        or _id(_get(obj, "reference_id", "referenceId")),
        reply_count=_int(
            _get(thread, "message_count", "messageCount")
            if thread is not None
            else _get(obj, "reply_count", "replyCount")
        ),
        reactions=_reactions(_get(obj, "reactions")),
        attachments=_attachments(_get(obj, "attachments")),
        embeds=_embeds(_get(obj, "embeds")),
        created_at=_iso(_get(obj, "created_at", "createdAt", "timestamp")),
        edited_at=_iso(_get(obj, "edited_at", "editedAt", "edited_timestamp")),
        author=author,
    )
    message.raw = _raw(obj, message)
    return message


def _raw(obj: Any, message: Message) -> dict:
    """Snapshot of the source payload, or of the normalized fields."""
    if isinstance(obj, Mapping):
        return dict(obj)
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    return {
        "id": message.id,
        "channel_id": message.channel_id,
        "guild_id": message.guild_id,
        "author_id": message.author_id,
        "content": message.content,
        "thread_id": message.thread_id,
        "reference_id": message.reference_id,
        "created_at": message.created_at,
        "edited_at": message.edited_at,
    }


def to_role(guild_id: str, obj: Any) -> Role:
    return Role(
        id=_id(_get(obj, "id")) or "",
        guild_id=guild_id,
        name=str(_get(obj, "name", default="")),
        color=_int(_get(obj, "color", "colour")),
        position=_int(_get(obj, "position", "rawPosition")),
        permissions=str(_int(_get(obj, "permissions"))),
    )


def to_emoji(guild_id: str, obj: Any) -> Emoji:
    return Emoji(
        id=_id(_get(obj, "id")) or "",
        guild_id=guild_id,
        name=str(_get(obj, "name", default="")),
        animated=bool(_get(obj, "animated", default=False)),
        url=str(_get(obj, "url", "image_url", default="")),
    )


def to_pin(obj: Any, channel_id: str, guild_id: str | None = None) -> Pin:
    return Pin(
        message_id=_id(_get(obj, "id")) or "",
        channel_id=channel_id,
        guild_id=guild_id,
        pinned_at=_iso(_get(obj, "pinned_at", "pinnedAt")),
    )
