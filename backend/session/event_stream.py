"""
Event streamer: turns a running audit task into ordered run events.

Responsibilities:
- One LOG event per output line, in the order the handle surfaces them
- Exactly one terminal event once the exit status is known:
    DONE for status 0, ERROR (carrying the status) otherwise
- Detect a vanished client while the task is quiet

Non-responsibilities:
- START event and launch failures (run coordinator)
- Slot reservation/release and killing the task (run coordinator)
- Wire framing (protocol.sse)
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Awaitable, Callable, TypeVar

from adapters.audit.base import ProcessHandle
from constants import DISCONNECT_CHECK_INTERVAL_S
from orchestrator import events
from orchestrator.errors import ClientDisconnected
from orchestrator.events import RunEvent
from sites.registry import SiteDescriptor


IsDisconnectedFn = Callable[[], Awaitable[bool]]

T = TypeVar("T")


class EventStreamer:
    """
    Relays one process handle to one listener.

    Suspends on the handle's line channel and exit status. When nothing
    arrives for check_interval_s, asks is_disconnected() and raises
    ClientDisconnected if the listener is gone.
    """

    def __init__(self, *, check_interval_s: float = DISCONNECT_CHECK_INTERVAL_S) -> None:
        if check_interval_s <= 0:
            raise ValueError("check_interval_s must be > 0")
        self._check_interval_s = check_interval_s

    async def relay(
        self,
        handle: ProcessHandle,
        site: SiteDescriptor,
        *,
        is_disconnected: IsDisconnectedFn | None = None,
    ) -> AsyncIterator[RunEvent]:
        while True:
            line = await self._watch(handle.next_line, is_disconnected)
            if line is None:
                break
            yield events.log(line.text)

        exit_code = await self._watch(handle.wait, is_disconnected)

        if exit_code == 0:
            yield events.done(f"✅ Audit complete for {site.name}")
        else:
            yield events.error(f"❌ Audit failed (exit {exit_code})", exit_code=exit_code)

    async def _watch(
        self,
        make_awaitable: Callable[[], Awaitable[T]],
        is_disconnected: IsDisconnectedFn | None,
    ) -> T:
        if is_disconnected is None:
            return await make_awaitable()

        while True:
            try:
                return await asyncio.wait_for(make_awaitable(), timeout=self._check_interval_s)
            except asyncio.TimeoutError:
                if await is_disconnected():
                    raise ClientDisconnected() from None
