#!/usr/bin/env python3
"""
Demo: historical pull, live tail and consumer group reset against the
in-memory log store.
"""

import argparse
import asyncio
import json

from topicscope.data.fetcher import HistoricalFetcher
from topicscope.group.tracker import ConsumerGroupOffsetTracker, total_lag
from topicscope.live.session import LiveTailSession
from topicscope.models import (
    MessageFilter,
    OffsetPolicy,
    PartitionBoundsTable,
    SeekCommand,
    SeekMode,
)
from topicscope.source.memory import InMemoryLogStore
from topicscope.utils.config import get_config
from topicscope.utils.logging import configure_from_config


async def run(args) -> None:
    config = get_config(args.config)
    store = InMemoryLogStore.from_config(config)
    store.create_topic(args.topic, partitions=args.partitions)
    
    for i in range(args.messages):
        store.produce(
            args.topic,
            i % args.partitions,
            json.dumps({"id": i, "user": f"user-{i % 5}"}),
            key=f"key-{i % 3}",
        )
    
    # Historical pull of the newest messages on partition 0
    fetcher = HistoricalFetcher.from_config(config)
    messages = await fetcher.pull(
        store,
        store,
        args.topic,
        0,
        OffsetPolicy(mode="newest", count=args.count),
        MessageFilter(json_key_filter="user", json_value_filter=args.user) if args.user else None,
    )
    print(f"Pulled {len(messages)} messages from {args.topic}-0")
    for message in messages:
        print(f"[{message.offset}] key={message.key}")
        print(message.decoded_view or message.value)
    
    # Live tail partition 0 while more messages arrive
    table = PartitionBoundsTable.from_bounds(args.topic, await store.describe_topic(args.topic))
    async with LiveTailSession.from_config(config, bounds_table=table) as session:
        await session.start(store, args.topic, 0)
        for i in range(args.live):
            store.produce(args.topic, 0, f"live-{i}")
        snapshot = session.snapshot()
        print(f"\nLive buffer holds {len(snapshot.messages)} messages, bounds {snapshot.bounds}")
    
    # Consumer group lag and reset
    tracker = ConsumerGroupOffsetTracker()
    await store.commit_seek(args.topic, args.group, 0, 0)
    rows = await tracker.list_offsets(store, args.topic, args.group)
    print(f"\nGroup {args.group} lag before reset: {total_lag(rows)}")
    for row in rows:
        print(f"  partition={row.partition} consumer={row.consumer_offset} lag={row.lag}")
    
    result = await tracker.reset(store, args.topic, args.group, SeekCommand(0, SeekMode.LATEST))
    rows = await tracker.list_offsets(store, args.topic, args.group)
    print(f"Reset partition 0 to {result.target_offset}: lag now {total_lag(rows)}")


def main():
    parser = argparse.ArgumentParser(description='topicscope in-memory demo')
    parser.add_argument('--topic', default='orders', help='Topic name')
    parser.add_argument('--partitions', type=int, default=2, help='Partition count')
    parser.add_argument('--messages', type=int, default=40, help='Messages to seed')
    parser.add_argument('--count', type=int, default=5, help='Messages per pull')
    parser.add_argument('--live', type=int, default=10, help='Messages produced while tailing')
    parser.add_argument('--group', default='demo-group', help='Consumer group ID')
    parser.add_argument('--user', default=None, help='Only pull messages whose "user" field contains this')
    parser.add_argument('--config', default=None, help='YAML configuration file')
    parser.add_argument('--log-level', default='WARNING', help='Log level')
    args = parser.parse_args()
    
    config = get_config(args.config)
    config.set("logging.level", args.log_level)
    config.set("logging.format", "console")
    configure_from_config(config)
    asyncio.run(run(args))


if __name__ == '__main__':
    main()
