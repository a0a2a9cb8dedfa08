"""Tests for historical fetch."""

import json

import pytest

from topicscope.data.fetcher import HistoricalFetcher, build_query, find_bounds
from topicscope.errors import FetchError, FetchErrorReason, InvalidBoundsError
from topicscope.models import (
    FetchQuery,
    Message,
    MessageFilter,
    OffsetPolicy,
    PartitionBounds,
    PartitionBoundsTable,
)
from topicscope.source.base import TopicDataSource
from topicscope.source.memory import InMemoryLogStore


class RecordingSource(TopicDataSource):
    """Returns scripted messages and records each request."""
    
    def __init__(self, messages=None, error=None):
        self.messages = messages or []
        self.error = error
        self.requests = []
    
    async def fetch_batch(self, topic, partition, offset, count, filters):
        self.requests.append((topic, partition, offset, count, filters))
        if self.error is not None:
            raise self.error
        return list(self.messages)
    
    async def open_live_subscription(self, topic, partition, filters, listener):
        raise NotImplementedError


@pytest.fixture
def store():
    """Store with one partition holding 20 JSON and raw messages."""
    store = InMemoryLogStore()
    store.create_topic("orders", partitions=2)
    for i in range(20):
        value = json.dumps({"id": i, "user": f"user-{i % 4}"}) if i % 2 == 0 else f"raw-{i}"
        store.produce("orders", 0, value, key=f"k{i % 3}")
    return store


class TestBuildQuery:
    """Test query construction."""
    
    def test_newest_query(self):
        """Query starts count messages before the end."""
        query = build_query(
            "orders",
            PartitionBounds(1, 100, 500),
            OffsetPolicy("newest", 50),
            MessageFilter(key_filter="k"),
        )
        
        assert query == FetchQuery(
            topic="orders", partition=1, offset=450, count=50, key_filter="k",
        )
    
    def test_invalid_bounds(self):
        """Inconsistent bounds fail the pull before any request."""
        with pytest.raises(InvalidBoundsError):
            build_query("orders", PartitionBounds(0, 9, 1), OffsetPolicy())
    
    def test_query_requires_positive_count(self):
        """Queries need a positive count."""
        with pytest.raises(ValueError):
            FetchQuery(topic="t", partition=0, offset=0, count=0)
    
    def test_find_bounds_missing_partition(self):
        """Unknown partition is reported as a fetch error."""
        with pytest.raises(FetchError) as exc_info:
            find_bounds([PartitionBounds(0, 0, 1)], "orders", 3)
        
        assert exc_info.value.reason == FetchErrorReason.PARTITION_NOT_FOUND
    
    def test_plan_from_bounds_table(self):
        """Planning reads the partition bounds held in the table."""
        table = PartitionBoundsTable.from_bounds(
            "orders", [PartitionBounds(0, 0, 20), PartitionBounds(1, 5, 8)],
        )
        fetcher = HistoricalFetcher()
        
        newest = fetcher.plan(table, 0, OffsetPolicy("newest", 5))
        earliest = fetcher.plan(table, 1, OffsetPolicy("earliest", 5), MessageFilter(value_filter="v"))
        
        assert newest == FetchQuery(topic="orders", partition=0, offset=15, count=5)
        assert earliest == FetchQuery(
            topic="orders", partition=1, offset=5, count=5, value_filter="v",
        )
    
    def test_plan_clamps_to_beginning(self):
        """A newest window wider than the partition starts at its beginning."""
        table = PartitionBoundsTable.from_bounds("orders", [PartitionBounds(0, 5, 8)])
        
        query = HistoricalFetcher().plan(table, 0, OffsetPolicy("newest", 10))
        
        assert query.offset == 5
    
    def test_plan_unknown_partition(self):
        """A partition missing from the table fails with PARTITION_NOT_FOUND."""
        table = PartitionBoundsTable.from_bounds("orders", [PartitionBounds(0, 0, 1)])
        
        with pytest.raises(FetchError) as exc_info:
            HistoricalFetcher().plan(table, 4, OffsetPolicy())
        
        assert exc_info.value.reason == FetchErrorReason.PARTITION_NOT_FOUND
    
    def test_plan_invalid_bounds(self):
        """Inconsistent table bounds are rejected."""
        table = PartitionBoundsTable("orders", {0: PartitionBounds(0, 9, 1)})
        
        with pytest.raises(InvalidBoundsError):
            HistoricalFetcher().plan(table, 0, OffsetPolicy())


class TestHistoricalFetcher:
    """Test HistoricalFetcher."""
    
    @pytest.mark.asyncio
    async def test_request_matches_query(self):
        """Source receives exactly the query's parameters and filters."""
        source = RecordingSource()
        query = FetchQuery(
            topic="orders", partition=2, offset=40, count=7,
            json_key_filter="user", json_value_filter="bob",
        )
        
        await HistoricalFetcher().fetch(source, query)
        
        assert source.requests == [("orders", 2, 40, 7, query.filters)]
    
    @pytest.mark.asyncio
    async def test_decodes_json(self):
        """JSON values get a decoded view, raw values do not."""
        source = RecordingSource([
            Message(partition=0, offset=1, key=None, value='{"a": [1, 2]}', timestamp=0),
            Message(partition=0, offset=2, key=None, value="raw", timestamp=0),
        ])
        
        result = await HistoricalFetcher().fetch(source, FetchQuery("t", 0, 1, 2))
        
        assert json.loads(result[0].decoded_view) == {"a": [1, 2]}
        assert result[1].decoded_view is None
        assert result[1].value == "raw"
    
    @pytest.mark.asyncio
    async def test_does_not_refilter(self):
        """Whatever the source returns is surfaced as-is."""
        source = RecordingSource([
            Message(partition=0, offset=1, key="other", value="x", timestamp=0),
        ])
        query = FetchQuery("t", 0, 0, 5, key_filter="wanted")
        
        result = await HistoricalFetcher().fetch(source, query)
        
        assert [m.key for m in result] == ["other"]
    
    @pytest.mark.asyncio
    async def test_source_error_propagates(self):
        """Source fetch errors reach the caller unchanged."""
        error = FetchError(FetchErrorReason.OFFSET_OUT_OF_RANGE, "too far")
        source = RecordingSource(error=error)
        
        with pytest.raises(FetchError) as exc_info:
            await HistoricalFetcher().fetch(source, FetchQuery("t", 0, 0, 1))
        
        assert exc_info.value is error
        assert len(source.requests) == 1
    
    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        """Transport failures become FetchError(TRANSPORT)."""
        source = RecordingSource(error=ConnectionResetError("reset by peer"))
        
        with pytest.raises(FetchError) as exc_info:
            await HistoricalFetcher().fetch(source, FetchQuery("t", 0, 0, 1))
        
        assert exc_info.value.reason == FetchErrorReason.TRANSPORT
    
    @pytest.mark.asyncio
    async def test_pull_newest(self, store):
        """pull resolves the newest offset from topic metadata."""
        result = await HistoricalFetcher().pull(
            store, store, "orders", 0, OffsetPolicy("newest", 5)
        )
        
        assert [m.offset for m in result] == [15, 16, 17, 18, 19]
        assert [m.decoded_view is not None for m in result] == [False, True, False, True, False]
    
    @pytest.mark.asyncio
    async def test_pull_earliest_with_filters(self, store):
        """Filters are applied by the source."""
        result = await HistoricalFetcher().pull(
            store,
            store,
            "orders",
            0,
            OffsetPolicy("earliest", 3),
            MessageFilter(json_key_filter="user", json_value_filter="user-2"),
        )
        
        assert [m.offset for m in result] == [2, 6, 10]
    
    @pytest.mark.asyncio
    async def test_pull_empty_partition(self, store):
        """An empty partition yields no messages."""
        result = await HistoricalFetcher().pull(store, store, "orders", 1, OffsetPolicy())
        
        assert result == []
    
    @pytest.mark.asyncio
    async def test_pull_unknown_partition(self, store):
        """Unknown partitions fail with PARTITION_NOT_FOUND."""
        with pytest.raises(FetchError) as exc_info:
            await HistoricalFetcher().pull(store, store, "orders", 9, OffsetPolicy())
        
        assert exc_info.value.reason == FetchErrorReason.PARTITION_NOT_FOUND
    
    @pytest.mark.asyncio
    async def test_concurrent_fetches(self, store):
        """Concurrent pulls are independent."""
        import asyncio
        
        fetcher = HistoricalFetcher()
        first, second = await asyncio.gather(
            fetcher.fetch(store, FetchQuery("orders", 0, 0, 2)),
            fetcher.fetch(store, FetchQuery("orders", 0, 10, 3)),
        )
        
        assert [m.offset for m in first] == [0, 1]
        assert [m.offset for m in second] == [10, 11, 12]
