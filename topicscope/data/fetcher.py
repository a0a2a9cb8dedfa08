"""
Bounded historical fetch.

Resolves a starting offset, pulls one batch from a TopicDataSource and
attaches JSON pretty views. Filters travel with the query to the source,
which applies them; results are not filtered again here.
"""

import asyncio
from typing import List, Optional, Sequence

from topicscope.data.decode import DEFAULT_INDENT, expand
from topicscope.errors import FetchError, FetchErrorReason
from topicscope.models import (
    FetchQuery,
    Message,
    MessageFilter,
    OffsetPolicy,
    PartitionBounds,
    PartitionBoundsTable,
)
from topicscope.offset.resolver import resolve_offset
from topicscope.source.base import TopicDataSource, TopicMetadataSource
from topicscope.utils.logging import get_logger

logger = get_logger(__name__)


def build_query(
    topic: str,
    bounds: PartitionBounds,
    policy: OffsetPolicy,
    filters: Optional[MessageFilter] = None,
) -> FetchQuery:
    """
    Build a query for the partition described by bounds.
    
    Raises:
        InvalidBoundsError: If bounds are inconsistent
    """
    filters = filters or MessageFilter()
    return FetchQuery(
        topic=topic,
        partition=bounds.partition,
        offset=resolve_offset(bounds, policy),
        count=policy.count,
        key_filter=filters.key_filter,
        value_filter=filters.value_filter,
        json_key_filter=filters.json_key_filter,
        json_value_filter=filters.json_value_filter,
    )


class HistoricalFetcher:
    """
    Issues one-shot bounded pulls.
    
    Stateless beyond its settings: concurrent fetch calls are independent.
    """
    
    def __init__(self, indent: int = DEFAULT_INDENT):
        """
        Initialize fetcher.
        
        Args:
            indent: Indentation of decoded JSON views
        """
        self.indent = indent
    
    @classmethod
    def from_config(cls, config) -> "HistoricalFetcher":
        return cls(indent=config.get("decode.indent", DEFAULT_INDENT))
    
    async def fetch(self, source: TopicDataSource, query: FetchQuery) -> List[Message]:
        """
        Pull query.count messages starting at query.offset.
        
        Args:
            source: Data source serving the pull
            query: Pull parameters
        
        Returns:
            Messages as returned by the source, with decoded views attached
        
        Raises:
            FetchError: If the source rejects the pull or the transport fails
        """
        try:
            messages = await source.fetch_batch(
                query.topic,
                query.partition,
                query.offset,
                query.count,
                query.filters,
            )
        except FetchError as e:
            logger.warning(
                "Fetch rejected by source",
                topic=query.topic,
                partition=query.partition,
                offset=query.offset,
                reason=e.reason.value,
            )
            raise
        except (OSError, asyncio.TimeoutError) as e:
            logger.error(
                "Fetch transport failure",
                topic=query.topic,
                partition=query.partition,
                offset=query.offset,
                error=str(e),
            )
            raise FetchError(FetchErrorReason.TRANSPORT, str(e)) from e
        
        result = [expand(m, self.indent) for m in messages]
        
        logger.debug(
            "Fetched messages",
            topic=query.topic,
            partition=query.partition,
            offset=query.offset,
            requested=query.count,
            count=len(result),
        )
        return result
    
    def plan(
        self,
        table: PartitionBoundsTable,
        partition: int,
        policy: OffsetPolicy,
        filters: Optional[MessageFilter] = None,
    ) -> FetchQuery:
        """
        Build a query from bounds already held in a topic bounds table.
        
        Raises:
            FetchError: If the table has no entry for partition
            InvalidBoundsError: If the partition bounds are inconsistent
        """
        bounds = table.get(partition)
        if bounds is None:
            raise FetchError(FetchErrorReason.PARTITION_NOT_FOUND, f"{table.topic}-{partition}")
        return build_query(table.topic, bounds, policy, filters)
    
    async def pull(
        self,
        source: TopicDataSource,
        metadata: TopicMetadataSource,
        topic: str,
        partition: int,
        policy: OffsetPolicy,
        filters: Optional[MessageFilter] = None,
    ) -> List[Message]:
        """
        Describe the topic, resolve the start offset and fetch.
        
        Raises:
            FetchError: If the partition is unknown or the pull fails
            InvalidBoundsError: If the partition metadata is inconsistent
        """
        bounds = find_bounds(await metadata.describe_topic(topic), topic, partition)
        query = build_query(topic, bounds, policy, filters)
        return await self.fetch(source, query)


def find_bounds(bounds: Sequence[PartitionBounds], topic: str, partition: int) -> PartitionBounds:
    """
    Pick one partition's bounds from a topic description.
    
    Raises:
        FetchError: If the partition is not described
    """
    for b in bounds:
        if b.partition == partition:
            return b
    raise FetchError(FetchErrorReason.PARTITION_NOT_FOUND, f"{topic}-{partition}")
