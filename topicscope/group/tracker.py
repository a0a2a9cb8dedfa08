"""
Consumer group offsets, lag and seek.

Lag is derived from each row when read and is unknown (None) whenever the
end offset or the committed offset is unknown. A reset validates against
freshly listed bounds before anything is committed; callers list offsets
again afterwards to see the result.
"""

import asyncio
from typing import Iterable, List, Optional, Sequence

from topicscope.errors import InvalidSeekError, OutOfRangeError
from topicscope.models import (
    GroupOffsetRow,
    PartitionBounds,
    ResetResult,
    SeekCommand,
    SeekMode,
)
from topicscope.source.base import GroupOffsetStore
from topicscope.utils.logging import get_logger

logger = get_logger(__name__)

SORT_COLUMNS = ("partition", "beginning_offset", "end_offset", "consumer_offset", "lag")


def total_lag(rows: Iterable[GroupOffsetRow]) -> int:
    """Sum of lag over rows where lag is known."""
    return sum(row.lag for row in rows if row.lag is not None)


def sort_rows(
    rows: Iterable[GroupOffsetRow],
    column: str = "partition",
    descending: bool = False,
) -> List[GroupOffsetRow]:
    """
    Sort rows by a numeric column.
    
    Unknown values order below every known value. Ties keep ascending
    partition order.
    
    Raises:
        ValueError: If column is not sortable
    """
    if column not in SORT_COLUMNS:
        raise ValueError(f"Unknown sort column: {column}")
    
    def sort_key(row: GroupOffsetRow):
        value = getattr(row, column)
        return (value is not None, value if value is not None else 0)
    
    by_partition = sorted(rows, key=lambda r: r.partition)
    return sorted(by_partition, key=sort_key, reverse=descending)


def resolve_seek_target(cmd: SeekCommand, row: GroupOffsetRow) -> int:
    """
    Validate a seek against a partition's current bounds.
    
    Returns:
        Offset to commit
    
    Raises:
        InvalidSeekError: If the command is malformed or the needed bound is
            unknown
        OutOfRangeError: If a custom offset lies outside the bounds
        InvalidBoundsError: If the bounds are inconsistent
    """
    if cmd.mode == SeekMode.CUSTOM:
        if cmd.custom_offset is None:
            raise InvalidSeekError(f"Custom seek on partition {cmd.partition} requires an offset")
    elif cmd.custom_offset is not None:
        raise InvalidSeekError(
            f"Offset {cmd.custom_offset} given for {cmd.mode.value} seek on partition {cmd.partition}"
        )
    
    if row.beginning_offset is None or row.end_offset is None:
        raise InvalidSeekError(f"Bounds of partition {cmd.partition} are unknown")
    
    bounds = PartitionBounds(cmd.partition, row.beginning_offset, row.end_offset).validate()
    
    if cmd.mode == SeekMode.EARLIEST:
        return bounds.beginning_offset
    if cmd.mode == SeekMode.LATEST:
        return bounds.end_offset
    
    if not bounds.contains(cmd.custom_offset):
        raise OutOfRangeError(
            cmd.partition,
            cmd.custom_offset,
            bounds.beginning_offset,
            bounds.end_offset,
        )
    return cmd.custom_offset


class ConsumerGroupOffsetTracker:
    """Lists and resets a consumer group's committed offsets on one topic."""
    
    async def list_offsets(
        self,
        store: GroupOffsetStore,
        topic: str,
        group_id: str,
    ) -> List[GroupOffsetRow]:
        """
        Get offset rows ordered by partition.
        
        Args:
            store: Group offset store
            topic: Topic name
            group_id: Consumer group ID
        
        Returns:
            One row per partition
        """
        rows = sorted(await store.list_offsets(topic, group_id), key=lambda r: r.partition)
        
        logger.debug(
            "Listed group offsets",
            topic=topic,
            group_id=group_id,
            partitions=len(rows),
            total_lag=total_lag(rows),
        )
        return rows
    
    async def reset(
        self,
        store: GroupOffsetStore,
        topic: str,
        group_id: str,
        cmd: SeekCommand,
    ) -> ResetResult:
        """
        Reset one partition's committed offset.
        
        Current bounds are re-read before validating, since they may have
        advanced. Nothing is committed if validation fails.
        
        Raises:
            InvalidSeekError: If the command is malformed or the partition is
                unknown
            OutOfRangeError: If a custom offset lies outside the bounds
        """
        rows = await self.list_offsets(store, topic, group_id)
        target = resolve_seek_target(cmd, _row_for(rows, topic, cmd.partition))
        return await self._commit(store, topic, group_id, cmd, target)
    
    async def reset_all(
        self,
        store: GroupOffsetStore,
        topic: str,
        group_id: str,
        mode: SeekMode,
        custom_offset: Optional[int] = None,
    ) -> List[ResetResult]:
        """
        Apply the same seek to every partition of the topic.
        
        Every partition is validated before any offset is committed.
        
        Raises:
            InvalidSeekError: If the command is malformed
            OutOfRangeError: If a custom offset lies outside any partition's
                bounds
        """
        rows = await self.list_offsets(store, topic, group_id)
        planned = []
        for row in rows:
            cmd = SeekCommand(partition=row.partition, mode=mode, custom_offset=custom_offset)
            planned.append((cmd, resolve_seek_target(cmd, row)))
        
        return [
            await self._commit(store, topic, group_id, cmd, target)
            for cmd, target in planned
        ]
    
    async def _commit(
        self,
        store: GroupOffsetStore,
        topic: str,
        group_id: str,
        cmd: SeekCommand,
        target: int,
    ) -> ResetResult:
        try:
            committed = await store.commit_seek(topic, group_id, cmd.partition, target)
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Seek commit failed",
                topic=topic,
                group_id=group_id,
                partition=cmd.partition,
                target_offset=target,
                error=str(e),
            )
            return ResetResult(cmd.partition, False, target, reason=str(e))
        
        if not committed:
            logger.warning(
                "Seek rejected by store",
                topic=topic,
                group_id=group_id,
                partition=cmd.partition,
                target_offset=target,
            )
            return ResetResult(cmd.partition, False, target, reason="rejected by store")
        
        logger.info(
            "Reset group offset",
            topic=topic,
            group_id=group_id,
            partition=cmd.partition,
            mode=cmd.mode.value,
            target_offset=target,
        )
        return ResetResult(cmd.partition, True, target)


def _row_for(rows: Sequence[GroupOffsetRow], topic: str, partition: int) -> GroupOffsetRow:
    for row in rows:
        if row.partition == partition:
            return row
    raise InvalidSeekError(f"Unknown partition {topic}-{partition}")
