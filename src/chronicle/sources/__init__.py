"""Chat sources: the adapter interface, its errors, and input normalization."""

from chronicle.sources.base import (
    AccessDenied,
    ArchivedThreadPage,
    ChatSource,
    SourceError,
    TransientSourceError,
)

__all__ = [
    "AccessDenied",
    "ArchivedThreadPage",
    "ChatSource",
    "SourceError",
    "TransientSourceError",
]
