"""
topicscope - inspect and tail partitioned log topics.

Client-side engine for:
- Resolving where a bounded historical pull starts
- Filtering and JSON-decoding messages
- Live tailing a partition into a bounded sliding buffer
- Computing consumer group lag and resetting committed offsets
"""

__version__ = "0.1.0"

from topicscope.data import FilterEngine, HistoricalFetcher, decode_view, matches
from topicscope.errors import (
    FetchError,
    InvalidBoundsError,
    OutOfRangeError,
    SubscriptionError,
    TopicScopeError,
)
from topicscope.group import ConsumerGroupOffsetTracker
from topicscope.live import LiveTailSession
from topicscope.models import (
    ConnectionStatus,
    FetchQuery,
    GroupOffsetRow,
    Message,
    MessageFilter,
    OffsetPolicy,
    OffsetResetMode,
    PartitionBounds,
    SeekCommand,
    SeekMode,
)
from topicscope.offset import OffsetResolver, resolve_offset

__all__ = [
    "FilterEngine",
    "HistoricalFetcher",
    "decode_view",
    "matches",
    "FetchError",
    "InvalidBoundsError",
    "OutOfRangeError",
    "SubscriptionError",
    "TopicScopeError",
    "ConsumerGroupOffsetTracker",
    "LiveTailSession",
    "ConnectionStatus",
    "FetchQuery",
    "GroupOffsetRow",
    "Message",
    "MessageFilter",
    "OffsetPolicy",
    "OffsetResetMode",
    "PartitionBounds",
    "SeekCommand",
    "SeekMode",
    "OffsetResolver",
    "resolve_offset",
]
