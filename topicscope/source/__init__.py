"""Log store collaborators."""

from topicscope.source.base import (
    GroupOffsetStore,
    LiveListener,
    SubscriptionHandle,
    TopicDataSource,
    TopicMetadataSource,
)
from topicscope.source.memory import InMemoryLogStore

__all__ = [
    "GroupOffsetStore",
    "LiveListener",
    "SubscriptionHandle",
    "TopicDataSource",
    "TopicMetadataSource",
    "InMemoryLogStore",
]
