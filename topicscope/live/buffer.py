"""
Bounded sliding window of live messages.

Appends beyond capacity evict the oldest messages first. Not thread-safe on
its own; LiveTailSession serializes access under its lock.
"""

from collections import deque
from typing import Callable, Deque, Iterable, Tuple

from topicscope.models import Message

DEFAULT_CAPACITY = 100


class LiveBuffer:
    """Fixed-capacity FIFO of messages in arrival order."""
    
    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """
        Initialize buffer.
        
        Args:
            capacity: Maximum number of messages kept
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._messages: Deque[Message] = deque(maxlen=capacity)
    
    def extend(self, messages: Iterable[Message]) -> int:
        """
        Append messages in order, evicting from the front when full.
        
        Returns:
            Number of messages evicted
        """
        evicted = 0
        for message in messages:
            if len(self._messages) == self.capacity:
                evicted += 1
            self._messages.append(message)
        return evicted
    
    def replace(self, offset: int, transform: Callable[[Message], Message]) -> bool:
        """
        Replace the message at a given offset with transform(message).
        
        Returns:
            False if no buffered message has that offset
        """
        for i, message in enumerate(self._messages):
            if message.offset == offset:
                self._messages[i] = transform(message)
                return True
        return False
    
    def snapshot(self) -> Tuple[Message, ...]:
        return tuple(self._messages)
    
    def clear(self) -> None:
        self._messages.clear()
    
    def __len__(self) -> int:
        return len(self._messages)
