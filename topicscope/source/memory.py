"""
In-memory log store.

Implements every collaborator contract over per-partition message lists so
the engine can run without a broker: demos, tests, and local development.
Filters are applied here, on the source side, with the same predicates the
engine exposes.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from topicscope.data.filter import FilterEngine
from topicscope.errors import FetchError, FetchErrorReason, SubscriptionError, SubscriptionErrorReason
from topicscope.models import (
    GroupOffsetRow,
    LiveBatch,
    Message,
    MessageFilter,
    PartitionBounds,
)
from topicscope.source.base import (
    GroupOffsetStore,
    LiveListener,
    SubscriptionHandle,
    TopicDataSource,
    TopicMetadataSource,
)
from topicscope.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class PartitionLog:
    """
    Messages of one partition.
    
    Attributes:
        beginning_offset: Oldest retained offset
        messages: Retained messages, offsets beginning_offset..end_offset-1
    """
    beginning_offset: int = 0
    messages: List[Message] = field(default_factory=list)
    
    @property
    def end_offset(self) -> int:
        return self.beginning_offset + len(self.messages)
    
    def bounds(self, partition: int) -> PartitionBounds:
        return PartitionBounds(partition, self.beginning_offset, self.end_offset)


class MemorySubscription(SubscriptionHandle):
    """Live subscription registered with an InMemoryLogStore."""
    
    def __init__(
        self,
        store: "InMemoryLogStore",
        topic: str,
        partition: int,
        filters: MessageFilter,
        listener: LiveListener,
    ):
        self.topic = topic
        self.partition = partition
        self.filters = filters
        self.listener = listener
        self._store = store
        self._closed = False
    
    @property
    def closed(self) -> bool:
        return self._closed
    
    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._store._remove_subscription(self)


class InMemoryLogStore(TopicDataSource, TopicMetadataSource, GroupOffsetStore):
    """
    Thread-safe in-memory topics, live subscriptions and group offsets.
    
    Appending messages pushes one LiveBatch per append call to every open
    subscription on that partition.
    """
    
    def __init__(self, scan_multiplier: int = 100, min_scan: int = 1000):
        """
        Initialize store.
        
        Args:
            scan_multiplier: A pull scans at most count * scan_multiplier records
            min_scan: Lower bound on records scanned per pull
        """
        self.scan_multiplier = scan_multiplier
        self.min_scan = min_scan
        
        self._topics: Dict[str, Dict[int, PartitionLog]] = {}
        self._subscriptions: List[MemorySubscription] = []
        self._group_offsets: Dict[Tuple[str, str], Dict[int, int]] = {}
        self._lock = threading.RLock()
    
    @classmethod
    def from_config(cls, config) -> "InMemoryLogStore":
        return cls(
            scan_multiplier=config.get("fetch.scan_multiplier", 100),
            min_scan=config.get("fetch.min_scan", 1000),
        )
    
    # Topic administration
    
    def create_topic(self, topic: str, partitions: int = 1) -> None:
        """Create a topic with empty partitions."""
        if partitions <= 0:
            raise ValueError(f"partitions must be positive, got {partitions}")
        with self._lock:
            if topic in self._topics:
                raise ValueError(f"Topic already exists: {topic}")
            self._topics[topic] = {p: PartitionLog() for p in range(partitions)}
        
        logger.info("Created topic", topic=topic, partitions=partitions)
    
    def append(
        self,
        topic: str,
        partition: int,
        records: Iterable[Tuple[Optional[str], str]],
        headers: Optional[Mapping[str, str]] = None,
        timestamp: Optional[int] = None,
    ) -> List[Message]:
        """
        Append (key, value) records and push them to live subscribers.
        
        Returns:
            The appended messages
        """
        ts = timestamp if timestamp is not None else int(time.time() * 1000)
        
        with self._lock:
            log = self._partition_log(topic, partition)
            appended = []
            for key, value in records:
                message = Message(
                    partition=partition,
                    offset=log.end_offset,
                    key=key,
                    value=value,
                    timestamp=ts,
                    headers=dict(headers or {}),
                )
                log.messages.append(message)
                appended.append(message)
            
            bounds = log.bounds(partition)
            subscribers = self._subscribers(topic, partition)
            
            # Delivered under the store lock so batches reach each
            # subscriber in offset order and none arrive after close().
            for subscription in subscribers:
                if subscription.closed:
                    continue
                visible = FilterEngine(subscription.filters).apply(appended)
                self._deliver(
                    subscription,
                    LiveBatch(
                        partition=partition,
                        beginning_offset=bounds.beginning_offset,
                        end_offset=bounds.end_offset,
                        messages=tuple(visible),
                    ),
                )
        
        logger.debug(
            "Appended messages",
            topic=topic,
            partition=partition,
            count=len(appended),
            subscribers=len(subscribers),
        )
        return appended
    
    def produce(
        self,
        topic: str,
        partition: int,
        value: str,
        key: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Message:
        """Append a single message."""
        return self.append(topic, partition, [(key, value)], headers=headers)[0]
    
    def truncate(self, topic: str, partition: int, before_offset: int) -> PartitionBounds:
        """
        Drop messages below before_offset (retention).
        
        Returns:
            New partition bounds
        """
        with self._lock:
            log = self._partition_log(topic, partition)
            drop = max(0, min(before_offset, log.end_offset) - log.beginning_offset)
            del log.messages[:drop]
            log.beginning_offset += drop
            bounds = log.bounds(partition)
        
        logger.info(
            "Truncated partition",
            topic=topic,
            partition=partition,
            beginning_offset=bounds.beginning_offset,
        )
        return bounds
    
    def fail_subscriptions(self, topic: str, partition: int, error: BaseException) -> int:
        """
        Signal a transport failure to every subscriber of a partition.
        
        Returns:
            Number of subscriptions notified
        """
        with self._lock:
            subscribers = self._subscribers(topic, partition)
            for subscription in subscribers:
                subscription.listener.on_error(error)
        return len(subscribers)
    
    def _subscribers(self, topic: str, partition: int) -> List[MemorySubscription]:
        return [
            s for s in self._subscriptions
            if s.topic == topic and s.partition == partition
        ]
    
    def _deliver(self, subscription: MemorySubscription, batch: LiveBatch) -> None:
        """Push a batch to one subscriber; its failure stays with that subscriber."""
        try:
            subscription.listener.on_batch(batch)
        except Exception as e:
            logger.error(
                "Live subscriber failed to handle batch",
                topic=subscription.topic,
                partition=subscription.partition,
                end_offset=batch.end_offset,
                error=str(e),
            )
            subscription.listener.on_error(e)
    
    def subscription_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            return sum(1 for s in self._subscriptions if topic is None or s.topic == topic)
    
    # TopicDataSource
    
    async def fetch_batch(
        self,
        topic: str,
        partition: int,
        offset: int,
        count: int,
        filters: MessageFilter,
    ) -> List[Message]:
        engine = FilterEngine(filters)
        max_scan = max(count * self.scan_multiplier, self.min_scan)
        
        with self._lock:
            log = self._fetch_log(topic, partition)
            if offset < log.beginning_offset or offset > log.end_offset:
                raise FetchError(
                    FetchErrorReason.OFFSET_OUT_OF_RANGE,
                    f"offset {offset} outside [{log.beginning_offset}, {log.end_offset}] "
                    f"for {topic}-{partition}",
                )
            
            start = offset - log.beginning_offset
            candidates = log.messages[start:start + max_scan]
        
        result = []
        for message in candidates:
            if engine.matches(message):
                result.append(message)
                if len(result) >= count:
                    break
        
        logger.debug(
            "Served fetch",
            topic=topic,
            partition=partition,
            offset=offset,
            scanned=len(candidates),
            returned=len(result),
        )
        return result
    
    async def open_live_subscription(
        self,
        topic: str,
        partition: int,
        filters: MessageFilter,
        listener: LiveListener,
    ) -> SubscriptionHandle:
        with self._lock:
            partitions = self._topics.get(topic)
            if partitions is None or partition not in partitions:
                raise SubscriptionError(
                    SubscriptionErrorReason.OPEN_FAILED,
                    f"unknown partition {topic}-{partition}",
                )
            subscription = MemorySubscription(self, topic, partition, filters, listener)
            self._subscriptions.append(subscription)
        
        logger.debug("Opened subscription", topic=topic, partition=partition)
        return subscription
    
    def _remove_subscription(self, subscription: MemorySubscription) -> None:
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)
    
    # TopicMetadataSource
    
    async def describe_topic(self, topic: str) -> Sequence[PartitionBounds]:
        with self._lock:
            partitions = self._topics.get(topic)
            if partitions is None:
                raise FetchError(FetchErrorReason.TOPIC_NOT_FOUND, topic)
            return [partitions[p].bounds(p) for p in sorted(partitions)]
    
    # GroupOffsetStore
    
    async def list_offsets(self, topic: str, group_id: str) -> Sequence[GroupOffsetRow]:
        with self._lock:
            partitions = self._topics.get(topic, {})
            committed = self._group_offsets.get((topic, group_id), {})
            return [
                GroupOffsetRow(
                    partition=p,
                    beginning_offset=partitions[p].beginning_offset,
                    end_offset=partitions[p].end_offset,
                    consumer_offset=committed.get(p),
                )
                for p in sorted(partitions)
            ]
    
    async def commit_seek(
        self,
        topic: str,
        group_id: str,
        partition: int,
        target_offset: int,
    ) -> bool:
        with self._lock:
            partitions = self._topics.get(topic)
            if partitions is None or partition not in partitions:
                logger.warning(
                    "Commit for unknown partition",
                    topic=topic,
                    partition=partition,
                    group_id=group_id,
                )
                return False
            self._group_offsets.setdefault((topic, group_id), {})[partition] = target_offset
        return True
    
    def committed(self, topic: str, group_id: str, partition: int) -> Optional[int]:
        with self._lock:
            return self._group_offsets.get((topic, group_id), {}).get(partition)
    
    def _partition_log(self, topic: str, partition: int) -> PartitionLog:
        partitions = self._topics.get(topic)
        if partitions is None:
            raise KeyError(f"Unknown topic: {topic}")
        if partition not in partitions:
            raise KeyError(f"Unknown partition: {topic}-{partition}")
        return partitions[partition]
    
    def _fetch_log(self, topic: str, partition: int) -> PartitionLog:
        partitions = self._topics.get(topic)
        if partitions is None:
            raise FetchError(FetchErrorReason.TOPIC_NOT_FOUND, topic)
        if partition not in partitions:
            raise FetchError(FetchErrorReason.PARTITION_NOT_FOUND, f"{topic}-{partition}")
        return partitions[partition]
