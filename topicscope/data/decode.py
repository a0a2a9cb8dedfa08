"""
JSON pretty-view decoding.

A value that is not valid JSON is rendered raw: decode helpers return None
instead of raising.
"""

import dataclasses
import json
from typing import Any, Iterable, List, Optional

from topicscope.models import Message

DEFAULT_INDENT = 4


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def parse_json(value: Optional[str]) -> Any:
    """
    Parse strict JSON (NaN and Infinity are rejected).
    
    Raises:
        ValueError: If value is not valid JSON or nests too deeply to parse
    """
    if value is None:
        raise ValueError("No value to parse")
    try:
        return json.loads(value, parse_constant=_reject_constant)
    except RecursionError as e:
        raise ValueError("JSON nested too deeply") from e


def decode_view(value: Optional[str], indent: int = DEFAULT_INDENT) -> Optional[str]:
    """
    Pretty-print value if it is JSON.
    
    Args:
        value: Raw message value
        indent: Indentation width
    
    Returns:
        Re-serialized JSON, or None if value does not parse
    """
    try:
        obj = parse_json(value)
        return json.dumps(obj, indent=indent, ensure_ascii=False)
    except (ValueError, RecursionError):
        return None


def expand(message: Message, indent: int = DEFAULT_INDENT) -> Message:
    """Return a copy of message with its decoded view computed."""
    return dataclasses.replace(message, decoded_view=decode_view(message.value, indent))


def collapse(message: Message) -> Message:
    """Return a copy of message rendered raw."""
    if message.decoded_view is None:
        return message
    return dataclasses.replace(message, decoded_view=None)


def expand_all(messages: Iterable[Message], indent: int = DEFAULT_INDENT) -> List[Message]:
    return [expand(m, indent) for m in messages]
