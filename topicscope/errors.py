"""
Error taxonomy for topicscope.

Decoding failures are never raised: helpers return None instead so the raw
value is rendered. Every other failure propagates with a structured reason.
"""

from enum import Enum
from typing import Optional


class TopicScopeError(Exception):
    """Base class for all topicscope errors."""
    pass


class InvalidBoundsError(TopicScopeError):
    """Partition metadata is inconsistent (beginning offset past end offset)."""
    
    def __init__(self, partition: int, beginning_offset: int, end_offset: int):
        self.partition = partition
        self.beginning_offset = beginning_offset
        self.end_offset = end_offset
        super().__init__(
            f"Invalid bounds for partition {partition}: "
            f"beginning offset {beginning_offset} > end offset {end_offset}"
        )


class FetchErrorReason(str, Enum):
    """Reasons a one-shot historical pull can fail."""
    TOPIC_NOT_FOUND = "topic_not_found"
    PARTITION_NOT_FOUND = "partition_not_found"
    OFFSET_OUT_OF_RANGE = "offset_out_of_range"
    TRANSPORT = "transport"


class FetchError(TopicScopeError):
    """A data source failed to serve a historical pull."""
    
    def __init__(self, reason: FetchErrorReason, message: str = ""):
        self.reason = FetchErrorReason(reason)
        self.message = message
        super().__init__(f"{self.reason.value}: {message}" if message else self.reason.value)


class SubscriptionErrorReason(str, Enum):
    """Reasons a live subscription can fail."""
    OPEN_FAILED = "open_failed"
    STREAM_FAILED = "stream_failed"


class SubscriptionError(TopicScopeError):
    """A live subscription could not be opened or failed while streaming."""
    
    def __init__(
        self,
        reason: SubscriptionErrorReason,
        message: str = "",
        cause: Optional[BaseException] = None,
    ):
        self.reason = SubscriptionErrorReason(reason)
        self.message = message
        self.cause = cause
        super().__init__(f"{self.reason.value}: {message}" if message else self.reason.value)


class OutOfRangeError(TopicScopeError):
    """A seek target lies outside the partition's current bounds."""
    
    def __init__(self, partition: int, offset: int, beginning_offset: int, end_offset: int):
        self.partition = partition
        self.offset = offset
        self.beginning_offset = beginning_offset
        self.end_offset = end_offset
        super().__init__(
            f"Offset {offset} out of range for partition {partition} "
            f"[{beginning_offset}, {end_offset}]"
        )


class InvalidSeekError(TopicScopeError):
    """A seek command is malformed or names an unknown partition."""
    pass


__all__ = [
    "TopicScopeError",
    "InvalidBoundsError",
    "FetchErrorReason",
    "FetchError",
    "SubscriptionErrorReason",
    "SubscriptionError",
    "OutOfRangeError",
    "InvalidSeekError",
]
