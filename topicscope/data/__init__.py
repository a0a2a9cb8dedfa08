"""Message filtering, decoding and historical fetch."""

from topicscope.data.decode import decode_view
from topicscope.data.fetcher import HistoricalFetcher, build_query
from topicscope.data.filter import FilterEngine, matches

__all__ = [
    "decode_view",
    "HistoricalFetcher",
    "build_query",
    "FilterEngine",
    "matches",
]
