"""Offset resolution."""

from topicscope.offset.resolver import OffsetResolver, resolve_offset

__all__ = [
    "OffsetResolver",
    "resolve_offset",
]
