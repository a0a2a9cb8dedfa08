"""
Collaborator contracts consumed by the fetch, live-tail and group components.

Filtering contract: a TopicDataSource applies the key, value and JSON field
filters it is given, for both historical pulls and live subscriptions.
Components on this side of the boundary never re-filter what a source
returns.
"""

from abc import ABC, abstractmethod
from typing import List, Sequence

from topicscope.models import (
    GroupOffsetRow,
    LiveBatch,
    Message,
    MessageFilter,
    PartitionBounds,
)


class LiveListener(ABC):
    """Receives events from a live subscription."""
    
    @abstractmethod
    def on_batch(self, batch: LiveBatch) -> None:
        """Handle a push batch. Must not block."""
        pass
    
    @abstractmethod
    def on_error(self, error: BaseException) -> None:
        """Handle a transport failure. No further events follow."""
        pass
    
    @abstractmethod
    def on_close(self) -> None:
        """Handle the stream ending normally."""
        pass


class SubscriptionHandle(ABC):
    """Release handle for an open live subscription."""
    
    @abstractmethod
    def close(self) -> None:
        """
        Release the subscription.
        
        Idempotent. Once close returns the source delivers no further events
        for this subscription.
        """
        pass
    
    @property
    @abstractmethod
    def closed(self) -> bool:
        pass


class TopicDataSource(ABC):
    """Reads messages from the log store."""
    
    @abstractmethod
    async def fetch_batch(
        self,
        topic: str,
        partition: int,
        offset: int,
        count: int,
        filters: MessageFilter,
    ) -> List[Message]:
        """
        Read up to count matching messages starting at offset.
        
        Raises:
            FetchError: If the topic or partition is unknown, the offset is out
                of range, or the transport fails
        """
        pass
    
    @abstractmethod
    async def open_live_subscription(
        self,
        topic: str,
        partition: int,
        filters: MessageFilter,
        listener: LiveListener,
    ) -> SubscriptionHandle:
        """
        Subscribe to messages appended to a partition from now on.
        
        Raises:
            SubscriptionError: If the subscription cannot be opened
        """
        pass


class TopicMetadataSource(ABC):
    """Describes topic partitions."""
    
    @abstractmethod
    async def describe_topic(self, topic: str) -> Sequence[PartitionBounds]:
        """
        Get bounds for every partition of a topic, ordered by partition.
        
        Raises:
            FetchError: If the topic is unknown
        """
        pass


class GroupOffsetStore(ABC):
    """Reads and writes consumer group committed offsets."""
    
    @abstractmethod
    async def list_offsets(self, topic: str, group_id: str) -> Sequence[GroupOffsetRow]:
        """Get beginning, end and committed offsets per partition."""
        pass
    
    @abstractmethod
    async def commit_seek(
        self,
        topic: str,
        group_id: str,
        partition: int,
        target_offset: int,
    ) -> bool:
        """
        Set the committed offset of a group for one partition.
        
        Returns:
            True on success
        """
        pass
