# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
from typing import AsyncIterator

from orchestrator import events
from orchestrator.events import RunEvent
from protocol.sse import encode_event_stream, encode_sse_frame


def decode(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: "):-2])


def test_log_frame_shape():
    frame = encode_sse_frame(events.log("Crawling /über"))
    assert decode(frame) == {"type": "log", "data": "Crawling /über"}


def test_error_frame_carries_exit_code():
    frame = encode_sse_frame(events.error("failed", exit_code=1))
    assert decode(frame) == {"type": "error", "data": "failed", "exit_code": 1}


def test_carriage_returns_stay_inside_one_frame():
    frame = encode_sse_frame(events.log("10%\r20%"))
    assert frame.count("\n") == 2
    assert decode(frame)["data"] == "10%\r20%"


def test_encode_event_stream_closes_source_when_stopped_early():
    closed: list[bool] = []

    async def source() -> AsyncIterator[RunEvent]:
        try:
            yield events.start("go")
            yield events.log("one")
            yield events.log("two")
        finally:
            closed.append(True)

    async def scenario() -> list[str]:
        stream = encode_event_stream(source())
        first = await stream.__anext__()
        await stream.aclose()
        return [first]

    frames = asyncio.run(scenario())

    assert decode(frames[0])["type"] == "start"
    assert closed == [True]
