"""Server-Sent Event framing for chat turn events."""

import json

from .constants import SSE_DONE_SENTINEL
from .services.chat_service import ChatEvent

SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


def format_frame(data: str, event: str | None = None) -> str:
    lines = [f"event: {event}"] if event else []
    lines.extend(f"data: {line}" for line in data.split("\n"))
    return "\n".join(lines) + "\n\n"


def encode_chat_event(event: ChatEvent) -> str:
    if event.kind == "fragment":
        return format_frame(json.dumps({"content": event.content}))
    if event.kind == "done":
        return format_frame(SSE_DONE_SENTINEL)
    return format_frame(json.dumps({"error": event.content}), event="error")
