"""
Data model shared by the fetch, live-tail and consumer-group components.

All records are plain dataclasses so the presentation layer can serialize
them without reaching into component internals.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

from topicscope.errors import InvalidBoundsError


@dataclass(frozen=True)
class PartitionBounds:
    """
    Retained offset range of one partition.
    
    Attributes:
        partition: Partition number
        beginning_offset: Oldest retained offset
        end_offset: Next offset to be written
    """
    partition: int
    beginning_offset: int
    end_offset: int
    
    @property
    def size(self) -> int:
        """Number of retained messages."""
        return self.end_offset - self.beginning_offset
    
    def validate(self) -> "PartitionBounds":
        """
        Check the bounds invariant.
        
        Raises:
            InvalidBoundsError: If beginning_offset > end_offset
        """
        if self.beginning_offset > self.end_offset:
            raise InvalidBoundsError(self.partition, self.beginning_offset, self.end_offset)
        return self
    
    def contains(self, offset: int) -> bool:
        """Check whether offset is a valid seek target (end offset inclusive)."""
        return self.beginning_offset <= offset <= self.end_offset


@dataclass(frozen=True)
class Message:
    """
    A record read from a topic partition.
    
    decoded_view holds a pretty-printed JSON rendering of value, or None when
    value is not JSON (or the view is collapsed). It does not take part in
    equality.
    """
    partition: int
    offset: int
    key: Optional[str]
    value: str
    timestamp: int
    decoded_view: Optional[str] = field(default=None, compare=False)
    headers: Mapping[str, str] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class MessageFilter:
    """
    Display and fetch filters.
    
    Empty strings are treated the same as None (filter absent).
    """
    key_filter: Optional[str] = None
    value_filter: Optional[str] = None
    json_key_filter: Optional[str] = None
    json_value_filter: Optional[str] = None


@dataclass(frozen=True)
class FetchQuery:
    """One bounded historical pull."""
    topic: str
    partition: int
    offset: int
    count: int
    key_filter: Optional[str] = None
    value_filter: Optional[str] = None
    json_key_filter: Optional[str] = None
    json_value_filter: Optional[str] = None
    
    def __post_init__(self) -> None:
        if self.count <= 0:
            raise ValueError(f"count must be positive, got {self.count}")
    
    @property
    def filters(self) -> MessageFilter:
        return MessageFilter(
            key_filter=self.key_filter,
            value_filter=self.value_filter,
            json_key_filter=self.json_key_filter,
            json_value_filter=self.json_value_filter,
        )


class OffsetResetMode(str, Enum):
    """Where a historical pull starts."""
    EARLIEST = "earliest"
    NEWEST = "newest"


@dataclass(frozen=True)
class OffsetPolicy:
    """Starting-offset policy for a historical pull."""
    mode: OffsetResetMode = OffsetResetMode.NEWEST
    count: int = 10
    
    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", OffsetResetMode(self.mode))
        if self.count <= 0:
            raise ValueError(f"count must be positive, got {self.count}")


class ConnectionStatus(str, Enum):
    """Lifecycle state of a live-tail session."""
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    ERROR = "error"
    CLOSED = "closed"


@dataclass(frozen=True)
class LiveBatch:
    """A push batch delivered by a live subscription."""
    partition: int
    beginning_offset: int
    end_offset: int
    messages: Tuple[Message, ...] = ()
    
    @property
    def bounds(self) -> PartitionBounds:
        return PartitionBounds(self.partition, self.beginning_offset, self.end_offset)


@dataclass(frozen=True)
class LiveTailSnapshot:
    """Consistent read-only view of a live-tail session."""
    topic: Optional[str]
    partition: Optional[int]
    filters: MessageFilter
    messages: Tuple[Message, ...]
    bounds: Optional[PartitionBounds]
    status: ConnectionStatus


@dataclass(frozen=True)
class GroupOffsetRow:
    """
    Committed offset of a consumer group for one partition.
    
    Any offset may be None when the store could not resolve it.
    """
    partition: int
    beginning_offset: Optional[int] = None
    end_offset: Optional[int] = None
    consumer_offset: Optional[int] = None
    
    @property
    def lag(self) -> Optional[int]:
        """End offset minus consumer offset, or None when either is unknown."""
        if self.end_offset is None or self.consumer_offset is None:
            return None
        return self.end_offset - self.consumer_offset


class SeekMode(str, Enum):
    """Target of a consumer group offset reset."""
    EARLIEST = "earliest"
    LATEST = "latest"
    CUSTOM = "custom"


@dataclass(frozen=True)
class SeekCommand:
    """Reset one partition's committed offset."""
    partition: int
    mode: SeekMode
    custom_offset: Optional[int] = None
    
    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", SeekMode(self.mode))


@dataclass(frozen=True)
class ResetResult:
    """Outcome of dispatching a seek to the group offset store."""
    partition: int
    success: bool
    target_offset: Optional[int] = None
    reason: Optional[str] = None


class PartitionBoundsTable:
    """
    Per-topic partition bounds, keyed by partition.
    
    Seeded from the metadata source and patched by live batches. Not shared
    across sessions.
    """
    
    def __init__(self, topic: str, bounds: Optional[Mapping[int, PartitionBounds]] = None):
        self.topic = topic
        self._bounds: Dict[int, PartitionBounds] = dict(bounds or {})
    
    @classmethod
    def from_bounds(cls, topic: str, bounds) -> "PartitionBoundsTable":
        return cls(topic, {b.partition: b for b in bounds})
    
    def get(self, partition: int) -> Optional[PartitionBounds]:
        return self._bounds.get(partition)
    
    def update(self, bounds: PartitionBounds) -> bool:
        """
        Replace the entry for a known partition.
        
        Returns:
            False if the partition is not in the table (nothing changed)
        """
        if bounds.partition not in self._bounds:
            return False
        self._bounds[bounds.partition] = bounds
        return True
    
    def partitions(self) -> list[int]:
        return sorted(self._bounds)
    
    def __iter__(self):
        return iter(self._bounds[p] for p in self.partitions())
    
    def __len__(self) -> int:
        return len(self._bounds)
    
    def __contains__(self, partition: int) -> bool:
        return partition in self._bounds
