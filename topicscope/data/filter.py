"""
Message filter predicates.

Key and value filters are exact matches. The JSON field filter is a
substring match on the stringified value of a top-level field and only
applies when both the field name and the search value are given. All
supplied filters must pass.
"""

import json
from typing import Any, Optional

from topicscope.data.decode import parse_json
from topicscope.models import Message, MessageFilter


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        # integral floats print without a fraction: 1.0 -> "1"
        return str(int(value))
    return json.dumps(value, ensure_ascii=False)


def match_key(message: Message, key_filter: Optional[str]) -> bool:
    if not key_filter:
        return True
    return message.key == key_filter


def match_value(message: Message, value_filter: Optional[str]) -> bool:
    if not value_filter:
        return True
    return message.value == value_filter


def match_json_field(
    message: Message,
    json_key_filter: Optional[str],
    json_value_filter: Optional[str],
) -> bool:
    if not (json_key_filter and json_value_filter):
        return True
    
    try:
        obj = parse_json(message.value)
    except ValueError:
        return False
    
    if not isinstance(obj, dict) or json_key_filter not in obj:
        return False
    
    try:
        text = _stringify(obj[json_key_filter])
    except RecursionError:
        return False
    return json_value_filter in text


def matches(message: Message, message_filter: Optional[MessageFilter]) -> bool:
    """
    Check a message against every supplied filter.
    
    Args:
        message: Message to test
        message_filter: Filters; None or all-empty always matches
    
    Returns:
        True if all supplied filters pass
    """
    if message_filter is None:
        return True
    
    return (
        match_key(message, message_filter.key_filter)
        and match_value(message, message_filter.value_filter)
        and match_json_field(
            message,
            message_filter.json_key_filter,
            message_filter.json_value_filter,
        )
    )


class FilterEngine:
    """Applies a fixed MessageFilter to messages."""
    
    def __init__(self, message_filter: Optional[MessageFilter] = None):
        self.message_filter = message_filter or MessageFilter()
    
    def matches(self, message: Message) -> bool:
        return matches(message, self.message_filter)
    
    def apply(self, messages):
        """Keep the matching messages, preserving order."""
        return [m for m in messages if self.matches(m)]
