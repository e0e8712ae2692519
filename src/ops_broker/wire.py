"""Client-facing stream events and their server-sent-event framing."""

from __future__ import annotations

import json
from typing import Any

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def text_delta_event(text: str) -> dict[str, Any]:
    return {
        "type": "stream_event",
        "event": {
            "type": "content_block_delta",
            "delta": {"type": "text_delta", "text": text},
        },
    }


def error_event(message: str) -> dict[str, Any]:
    return {"type": "error", "error": message}


def done_event() -> dict[str, Any]:
    return {"type": "done"}


def extract_text_delta(event: dict[str, Any]) -> str | None:
    """Return the text of a stream_event/content_block_delta/text_delta event, else None."""
    if event.get("type") != "stream_event":
        return None
    inner = event.get("event")
    if not isinstance(inner, dict) or inner.get("type") != "content_block_delta":
        return None
    delta = inner.get("delta")
    if not isinstance(delta, dict) or delta.get("type") != "text_delta":
        return None
    text = delta.get("text")
    return text if isinstance(text, str) else None


def is_terminal(event: dict[str, Any]) -> bool:
    return event.get("type") in ("done", "error")


def format_sse(event: dict[str, Any]) -> str:
    return f"data: {json.dumps(event, ensure_ascii=False)}\n\n"
