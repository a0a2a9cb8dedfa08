"""
Live tail of one topic partition.

A LiveTailSession owns at most one subscription at a time. Batches pushed by
the subscription are decoded and appended to a bounded buffer together with
the partition bounds they report. Each subscription is tagged with a
generation number; events carrying a stale generation (from a subscription
that was stopped or replaced) are dropped, so nothing from a released
subscription is observable once stop() returns.

State machine::

    IDLE -> CONNECTING -> OPEN -> CLOSED
                 |          |
                 +-> ERROR -+-> CLOSED
"""

import threading
import uuid
from typing import Callable, Optional, Tuple

from topicscope.data.decode import DEFAULT_INDENT, collapse, expand
from topicscope.errors import SubscriptionError, SubscriptionErrorReason
from topicscope.live.buffer import DEFAULT_CAPACITY, LiveBuffer
from topicscope.models import (
    ConnectionStatus,
    LiveBatch,
    LiveTailSnapshot,
    Message,
    MessageFilter,
    PartitionBounds,
    PartitionBoundsTable,
)
from topicscope.source.base import LiveListener, SubscriptionHandle, TopicDataSource
from topicscope.utils.logging import get_logger

logger = get_logger(__name__)

ErrorCallback = Callable[[SubscriptionError], None]


class _SessionListener(LiveListener):
    """Routes subscription events to the session generation that opened it."""
    
    def __init__(self, session: "LiveTailSession", generation: int):
        self._session = session
        self._generation = generation
    
    def on_batch(self, batch: LiveBatch) -> None:
        self._session._deliver(self._generation, batch)
    
    def on_error(self, error: BaseException) -> None:
        self._session._fail(self._generation, error)
    
    def on_close(self) -> None:
        self._session._stop(self._generation)


class LiveTailSession:
    """
    Cancellable live subscription with a sliding message buffer.
    
    Thread-safe: subscription events may arrive on any thread. on_batch never
    suspends; all mutations happen under a single lock, so the buffer and the
    bounds always change together. Sessions share no state with each other.
    """
    
    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        indent: int = DEFAULT_INDENT,
        bounds_table: Optional[PartitionBoundsTable] = None,
        on_error: Optional[ErrorCallback] = None,
    ):
        """
        Initialize an idle session.
        
        Args:
            capacity: Buffer capacity
            indent: Indentation of decoded JSON views
            bounds_table: Topic bounds patched with each batch's bounds
            on_error: Called with the SubscriptionError after a stream failure
        """
        self.session_id = uuid.uuid4().hex[:12]
        self.capacity = capacity
        self.indent = indent
        self.bounds_table = bounds_table
        self.on_error_callback = on_error
        
        self._lock = threading.RLock()
        self._status = ConnectionStatus.IDLE
        self._generation = 0
        self._handle: Optional[SubscriptionHandle] = None
        self._buffer = LiveBuffer(capacity)
        self._bounds: Optional[PartitionBounds] = None
        self._topic: Optional[str] = None
        self._partition: Optional[int] = None
        self._filters = MessageFilter()
        self._last_error: Optional[SubscriptionError] = None
        
        self._log = logger.bind(session_id=self.session_id)
    
    @classmethod
    def from_config(cls, config, **kwargs) -> "LiveTailSession":
        kwargs.setdefault("capacity", config.get("live.buffer_capacity", DEFAULT_CAPACITY))
        kwargs.setdefault("indent", config.get("decode.indent", DEFAULT_INDENT))
        return cls(**kwargs)
    
    # Lifecycle
    
    async def start(
        self,
        source: TopicDataSource,
        topic: str,
        partition: int,
        filters: Optional[MessageFilter] = None,
    ) -> bool:
        """
        Open a subscription on a partition, starting from now.
        
        A session that is still connecting or open is stopped first, so at
        most one subscription is ever held. The buffer starts empty.
        
        Args:
            source: Data source providing the subscription
            topic: Topic name
            partition: Partition number
            filters: Filters forwarded to the source
        
        Returns:
            True if the session is open; False if it was stopped while
            the subscription was being opened
        
        Raises:
            SubscriptionError: If the subscription cannot be opened
        """
        filters = filters or MessageFilter()
        
        with self._lock:
            active = self._status not in (ConnectionStatus.IDLE, ConnectionStatus.CLOSED)
        if active:
            self._log.info("Replacing active subscription", topic=self._topic, partition=self._partition)
            self.stop()
        
        with self._lock:
            self._generation += 1
            generation = self._generation
            self._topic = topic
            self._partition = partition
            self._filters = filters
            self._buffer = LiveBuffer(self.capacity)
            self._bounds = self.bounds_table.get(partition) if self.bounds_table else None
            self._last_error = None
            self._status = ConnectionStatus.CONNECTING
        
        self._log.info("Connecting live tail", topic=topic, partition=partition)
        
        try:
            handle = await source.open_live_subscription(
                topic, partition, filters, _SessionListener(self, generation)
            )
        except SubscriptionError as e:
            self._abort_connect(generation, e)
            raise
        except Exception as e:
            error = SubscriptionError(SubscriptionErrorReason.OPEN_FAILED, str(e), cause=e)
            self._abort_connect(generation, error)
            raise error from e
        except BaseException:
            # cancelled while connecting
            self._stop(generation)
            raise
        
        with self._lock:
            opened = generation == self._generation and self._status == ConnectionStatus.CONNECTING
            if opened:
                self._handle = handle
                self._status = ConnectionStatus.OPEN
        
        if not opened:
            handle.close()
            self._log.info("Released subscription opened after stop", topic=topic, partition=partition)
            return False
        
        self._log.info("Live tail open", topic=topic, partition=partition)
        return True
    
    def stop(self) -> None:
        """
        Release the subscription and close the session.
        
        Idempotent and safe to call from any thread, including concurrently
        with batch delivery. Once stop returns no further buffer or bounds
        change from the released subscription is observable.
        """
        self._stop(None)
    
    def _stop(self, generation: Optional[int]) -> None:
        with self._lock:
            if generation is not None and generation != self._generation:
                return
            if self._status in (ConnectionStatus.IDLE, ConnectionStatus.CLOSED):
                return
            self._generation += 1
            handle, self._handle = self._handle, None
            self._status = ConnectionStatus.CLOSED
        
        try:
            if handle is not None:
                handle.close()
        finally:
            self._log.info("Stopped live tail", topic=self._topic, partition=self._partition)
    
    def _abort_connect(self, generation: int, error: SubscriptionError) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._status = ConnectionStatus.ERROR
            self._last_error = error
        self._log.warning(
            "Failed to open live tail",
            topic=self._topic,
            partition=self._partition,
            reason=error.reason.value,
            error=str(error),
        )
        self._stop(generation)
    
    # Subscription events
    
    def on_batch(self, batch: LiveBatch) -> bool:
        """
        Apply a batch from the current subscription.
        
        Returns:
            False if the batch was ignored (session not open or wrong partition)
        """
        with self._lock:
            generation = self._generation
        return self._deliver(generation, batch)
    
    def _deliver(self, generation: int, batch: LiveBatch) -> bool:
        with self._lock:
            if generation != self._generation or self._status != ConnectionStatus.OPEN:
                self._log.debug("Ignoring batch for inactive subscription", partition=batch.partition)
                return False
            if batch.partition != self._partition:
                self._log.warning(
                    "Ignoring batch for another partition",
                    expected=self._partition,
                    partition=batch.partition,
                )
                return False
            
            decoded = [expand(m, self.indent) for m in batch.messages]
            evicted = self._buffer.extend(decoded)
            self._bounds = batch.bounds
            if self.bounds_table is not None:
                self.bounds_table.update(batch.bounds)
            buffered = len(self._buffer)
        
        self._log.debug(
            "Applied live batch",
            partition=batch.partition,
            count=len(decoded),
            evicted=evicted,
            buffered=buffered,
            end_offset=batch.end_offset,
        )
        return True
    
    def on_error(self, error: BaseException) -> Optional[SubscriptionError]:
        """
        Fail the current subscription and stop the session.
        
        No reconnect is attempted; call start again to resume.
        
        Returns:
            The surfaced SubscriptionError, or None if the session was not
            connecting or open
        """
        with self._lock:
            generation = self._generation
        return self._fail(generation, error)
    
    def _fail(self, generation: int, error: BaseException) -> Optional[SubscriptionError]:
        if isinstance(error, SubscriptionError):
            surfaced = error
        else:
            surfaced = SubscriptionError(SubscriptionErrorReason.STREAM_FAILED, str(error), cause=error)
        
        with self._lock:
            if generation != self._generation or self._status not in (
                ConnectionStatus.CONNECTING,
                ConnectionStatus.OPEN,
            ):
                return None
            self._status = ConnectionStatus.ERROR
            self._last_error = surfaced
        
        self._log.warning(
            "Live tail failed",
            topic=self._topic,
            partition=self._partition,
            error=str(surfaced),
        )
        self._stop(generation)
        
        if self.on_error_callback is not None:
            self.on_error_callback(surfaced)
        return surfaced
    
    # Presentation
    
    def snapshot(self) -> LiveTailSnapshot:
        """Consistent copy of the session state."""
        with self._lock:
            return LiveTailSnapshot(
                topic=self._topic,
                partition=self._partition,
                filters=self._filters,
                messages=self._buffer.snapshot(),
                bounds=self._bounds,
                status=self._status,
            )
    
    @property
    def status(self) -> ConnectionStatus:
        with self._lock:
            return self._status
    
    @property
    def messages(self) -> Tuple[Message, ...]:
        with self._lock:
            return self._buffer.snapshot()
    
    @property
    def bounds(self) -> Optional[PartitionBounds]:
        with self._lock:
            return self._bounds
    
    @property
    def last_error(self) -> Optional[SubscriptionError]:
        with self._lock:
            return self._last_error
    
    def clear(self) -> None:
        """Empty the buffer; subscription and bounds are kept."""
        with self._lock:
            self._buffer.clear()
    
    def toggle_decoded(self, offset: int) -> Optional[bool]:
        """
        Flip the JSON view of a buffered message.
        
        Returns:
            True if now expanded, False if raw, None if no buffered message
            has that offset
        """
        expanded = []
        
        def flip(message: Message) -> Message:
            result = collapse(message) if message.decoded_view is not None else expand(message, self.indent)
            expanded.append(result.decoded_view is not None)
            return result
        
        with self._lock:
            if not self._buffer.replace(offset, flip):
                return None
        return expanded[0]
    
    async def __aenter__(self) -> "LiveTailSession":
        return self
    
    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stop()
