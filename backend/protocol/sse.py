# backend/protocol/sse.py
"""
Server-sent event framing for run events.

Wire format (one frame per event):

    data: {"type": "log", "data": "Crawling /about"}\\n\\n

Terminal error frames also carry the exit status:

    data: {"type": "error", "data": "Audit failed (exit 1)", "exit_code": 1}\\n\\n

Usage example:

    body = encode_event_stream(coordinator.stream(run))
    return StreamingResponse(body, media_type=SSE_MEDIA_TYPE)
"""

from __future__ import annotations

import json
from contextlib import aclosing
from typing import AsyncIterator

from orchestrator.events import RunEvent


def encode_sse_frame(event: RunEvent) -> str:
    """Serialize one run event as a single `data:` frame."""
    payload = json.dumps(event.to_payload(), ensure_ascii=False, separators=(",", ":"))
    return f"data: {payload}\n\n"


async def encode_event_stream(events: AsyncIterator[RunEvent]) -> AsyncIterator[str]:
    """
    Frame an event iterator for a streaming response.

    The source iterator is closed when framing stops for any reason, so its
    cleanup runs as soon as the response does.
    """
    async with aclosing(events):
        async for event in events:
            yield encode_sse_frame(event)
