from __future__ import annotations

import json
from typing import Any

from ops_broker.errors import DecodeFailure


def decode_stream_line(line: str) -> dict[str, Any] | None:
    """Decode one line of stream-json output.

    Blank lines decode to None. Anything else must be a JSON object, otherwise
    DecodeFailure is raised so the caller can log the line and move on.
    """
    stripped = line.strip()
    if not stripped:
        return None
    try:
        event = json.loads(stripped)
    except json.JSONDecodeError as ex:
        raise DecodeFailure(f"Invalid JSON at column {ex.colno}: {ex.msg}", stripped) from ex
    if not isinstance(event, dict):
        raise DecodeFailure(f"Expected a JSON object, got {type(event).__name__}", stripped)
    return event


def parse_stream_line(line: str) -> dict[str, Any] | None:
    try:
        return decode_stream_line(line)
    except DecodeFailure:
        return None
