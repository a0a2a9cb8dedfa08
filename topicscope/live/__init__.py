"""Live tailing."""

from topicscope.live.buffer import LiveBuffer
from topicscope.live.session import LiveTailSession

__all__ = [
    "LiveBuffer",
    "LiveTailSession",
]
