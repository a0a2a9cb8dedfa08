"""
Starting-offset resolution for historical pulls.

Given a partition's retained range and a policy, decide where a bounded
pull starts reading.
"""

from typing import Optional

from topicscope.models import OffsetPolicy, OffsetResetMode, PartitionBounds


def resolve_offset(bounds: PartitionBounds, policy: OffsetPolicy) -> int:
    """
    Compute the starting offset for a pull.
    
    EARLIEST starts at the beginning offset. NEWEST starts ``policy.count``
    messages before the end offset, clamped to the beginning offset so the
    result never precedes the retained log.
    
    Args:
        bounds: Partition bounds
        policy: Reset policy and requested message count
    
    Returns:
        Starting offset within [beginning_offset, end_offset]
    
    Raises:
        InvalidBoundsError: If bounds are inconsistent
    """
    bounds.validate()
    
    if policy.mode == OffsetResetMode.EARLIEST:
        return bounds.beginning_offset
    
    return max(bounds.end_offset - policy.count, bounds.beginning_offset)


class OffsetResolver:
    """
    Resolves starting offsets with a default policy.
    
    Thin stateful wrapper over resolve_offset for callers that configure the
    policy once (e.g. from ``fetch.default_policy`` / ``fetch.default_count``).
    """
    
    def __init__(self, default_policy: OffsetPolicy = OffsetPolicy()):
        self.default_policy = default_policy
    
    @classmethod
    def from_config(cls, config) -> "OffsetResolver":
        return cls(
            OffsetPolicy(
                mode=config.get("fetch.default_policy", "newest"),
                count=config.get("fetch.default_count", 10),
            )
        )
    
    def resolve(self, bounds: PartitionBounds, policy: Optional[OffsetPolicy] = None) -> int:
        return resolve_offset(bounds, policy or self.default_policy)
