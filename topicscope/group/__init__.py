"""Consumer group offset tracking."""

from topicscope.group.tracker import ConsumerGroupOffsetTracker, sort_rows, total_lag

__all__ = [
    "ConsumerGroupOffsetTracker",
    "sort_rows",
    "total_lag",
]
