"""Tests for the in-memory log store."""

import threading

import pytest

from topicscope.errors import FetchError, FetchErrorReason
from topicscope.models import MessageFilter, PartitionBounds
from topicscope.source.base import LiveListener
from topicscope.source.memory import InMemoryLogStore
from topicscope.utils.config import Config


class RecordingListener(LiveListener):
    """Collects live events; optionally fails on every batch."""
    
    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.batches = []
        self.errors = []
        self.closed = 0
    
    def on_batch(self, batch):
        if self.fail_with is not None:
            raise self.fail_with
        self.batches.append(batch)
    
    def on_error(self, error):
        self.errors.append(error)
    
    def on_close(self):
        self.closed += 1


@pytest.fixture
def store():
    store = InMemoryLogStore(scan_multiplier=2, min_scan=10)
    store.create_topic("events", partitions=3)
    return store


class TestTopics:
    """Test topic administration."""
    
    def test_duplicate_topic(self, store):
        """Topics cannot be created twice."""
        with pytest.raises(ValueError):
            store.create_topic("events")
    
    def test_offsets_assigned_sequentially(self, store):
        """Appended messages get consecutive offsets."""
        messages = store.append("events", 1, [("a", "1"), ("b", "2")], headers={"h": "v"})
        
        assert [m.offset for m in messages] == [0, 1]
        assert messages[0].headers == {"h": "v"}
        assert messages[0].partition == 1
    
    @pytest.mark.asyncio
    async def test_describe_topic(self, store):
        """Bounds reflect appends and truncation."""
        store.append("events", 0, [(None, str(i)) for i in range(8)])
        store.truncate("events", 0, 3)
        
        bounds = await store.describe_topic("events")
        
        assert bounds == [
            PartitionBounds(0, 3, 8),
            PartitionBounds(1, 0, 0),
            PartitionBounds(2, 0, 0),
        ]
        assert bounds[0].size == 5
    
    @pytest.mark.asyncio
    async def test_describe_unknown_topic(self, store):
        """Unknown topics raise TOPIC_NOT_FOUND."""
        with pytest.raises(FetchError) as exc_info:
            await store.describe_topic("missing")
        
        assert exc_info.value.reason == FetchErrorReason.TOPIC_NOT_FOUND
    
    def test_from_config(self):
        """Scan limits come from config."""
        config = Config()
        config.set("fetch.scan_multiplier", 7)
        
        store = InMemoryLogStore.from_config(config)
        
        assert store.scan_multiplier == 7
        assert store.min_scan == 1000


class TestFetchBatch:
    """Test source-side fetch."""
    
    @pytest.mark.asyncio
    async def test_fetch_from_offset(self, store):
        """Fetch reads count messages starting at offset."""
        store.append("events", 0, [(None, str(i)) for i in range(10)])
        
        messages = await store.fetch_batch("events", 0, 4, 3, MessageFilter())
        
        assert [m.value for m in messages] == ["4", "5", "6"]
    
    @pytest.mark.asyncio
    async def test_fetch_at_end(self, store):
        """Fetching at the end offset returns nothing."""
        store.append("events", 0, [(None, "x")])
        
        assert await store.fetch_batch("events", 0, 1, 5, MessageFilter()) == []
    
    @pytest.mark.asyncio
    async def test_offset_out_of_range(self, store):
        """Offsets outside the retained range are rejected."""
        store.append("events", 0, [(None, str(i)) for i in range(10)])
        store.truncate("events", 0, 5)
        
        for offset in (4, 11):
            with pytest.raises(FetchError) as exc_info:
                await store.fetch_batch("events", 0, offset, 1, MessageFilter())
            assert exc_info.value.reason == FetchErrorReason.OFFSET_OUT_OF_RANGE
    
    @pytest.mark.asyncio
    async def test_unknown_partition(self, store):
        """Unknown partitions are rejected."""
        with pytest.raises(FetchError) as exc_info:
            await store.fetch_batch("events", 7, 0, 1, MessageFilter())
        
        assert exc_info.value.reason == FetchErrorReason.PARTITION_NOT_FOUND
    
    @pytest.mark.asyncio
    async def test_filters_applied(self, store):
        """Exact key filter is applied server-side."""
        store.append("events", 0, [(f"k{i % 2}", str(i)) for i in range(10)])
        
        messages = await store.fetch_batch("events", 0, 0, 3, MessageFilter(key_filter="k1"))
        
        assert [m.value for m in messages] == ["1", "3", "5"]
    
    @pytest.mark.asyncio
    async def test_scan_limit(self, store):
        """Filtered pulls stop after the scan limit."""
        records = [("skip", str(i)) for i in range(20)] + [("hit", "found")]
        store.append("events", 0, records)
        
        messages = await store.fetch_batch("events", 0, 0, 1, MessageFilter(key_filter="hit"))
        
        assert messages == []
    
    @pytest.mark.asyncio
    async def test_group_offsets(self, store):
        """Committed offsets are listed per partition."""
        store.append("events", 2, [(None, "x")] * 6)
        
        assert await store.commit_seek("events", "g", 2, 4)
        assert not await store.commit_seek("events", "g", 9, 4)
        rows = await store.list_offsets("events", "g")
        
        assert [r.consumer_offset for r in rows] == [None, None, 4]
        assert rows[2].lag == 2


class TestLiveSubscriptions:
    """Test live push delivery."""
    
    @pytest.mark.asyncio
    async def test_failing_listener_is_isolated(self, store):
        """A listener that raises gets on_error; the others still get the batch."""
        broken = RecordingListener(fail_with=RuntimeError("boom"))
        healthy = RecordingListener()
        await store.open_live_subscription("events", 0, MessageFilter(), broken)
        await store.open_live_subscription("events", 0, MessageFilter(), healthy)
        
        messages = store.append("events", 0, [("a", "1"), ("b", "2")])
        
        assert [m.offset for m in messages] == [0, 1]
        assert len(healthy.batches) == 1
        assert [m.value for m in healthy.batches[0].messages] == ["1", "2"]
        assert healthy.errors == []
        assert broken.batches == []
        assert len(broken.errors) == 1
        assert str(broken.errors[0]) == "boom"
    
    @pytest.mark.asyncio
    async def test_failing_listener_first_of_three(self, store):
        """Delivery continues past a failure regardless of subscription order."""
        listeners = [
            RecordingListener(fail_with=ValueError("bad")),
            RecordingListener(),
            RecordingListener(),
        ]
        for listener in listeners:
            await store.open_live_subscription("events", 1, MessageFilter(), listener)
        
        store.produce("events", 1, "x")
        
        assert [len(l.batches) for l in listeners] == [0, 1, 1]
        assert [len(l.errors) for l in listeners] == [1, 0, 0]
    
    @pytest.mark.asyncio
    async def test_concurrent_appends_arrive_in_offset_order(self, store):
        """Batches from racing producers reach a subscriber in offset order."""
        listener = RecordingListener()
        await store.open_live_subscription("events", 0, MessageFilter(), listener)
        
        def produce_many(worker):
            for i in range(200):
                store.produce("events", 0, f"{worker}-{i}")
        
        threads = [threading.Thread(target=produce_many, args=(w,)) for w in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        
        offsets = [m.offset for batch in listener.batches for m in batch.messages]
        assert offsets == list(range(800))
        end_offsets = [batch.end_offset for batch in listener.batches]
        assert end_offsets == sorted(end_offsets)
    
    @pytest.mark.asyncio
    async def test_no_delivery_after_close(self, store):
        """Once close() returns the listener receives nothing more."""
        listener = RecordingListener()
        handle = await store.open_live_subscription("events", 2, MessageFilter(), listener)
        running = threading.Event()
        done = threading.Event()
        
        def produce_until_done():
            while not done.is_set():
                store.produce("events", 2, "tick")
                running.set()
        
        producer = threading.Thread(target=produce_until_done)
        producer.start()
        try:
            assert running.wait(timeout=5)
            handle.close()
            delivered = len(listener.batches)
            for _ in range(50):
                store.produce("events", 2, "after")
        finally:
            done.set()
            producer.join()
        
        assert len(listener.batches) == delivered
        assert store.subscription_count() == 0
