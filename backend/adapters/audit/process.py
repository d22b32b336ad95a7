"""
asyncio-backed audit task supervisor.

Role in the system:
- Spawns the external audit task with both output pipes attached.
- Runs one pump task per pipe; pumps push decoded lines into a single
  queue in arrival order, then a None sentinel when their pipe closes.
- Reports the exit status once both pipes closed and the process exited.
- kill() sends SIGTERM and escalates to SIGKILL after a grace period.

Architectural constraints:
- No event typing or run tracking here; the run coordinator owns that.
- kill() never awaits, so it is safe inside cleanup blocks that run
  while the surrounding task is being cancelled.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Sequence

from adapters.audit.base import OutputLine, OutputStream, ProcessHandle, ProcessSupervisor
from constants import KILL_GRACE_S, OUTPUT_ENCODING, OUTPUT_LINE_LIMIT_BYTES
from observability.logger import log_event
from orchestrator.errors import LaunchFailure


class AsyncioProcessHandle(ProcessHandle):
    """Handle for one asyncio subprocess."""

    def __init__(
        self,
        proc: asyncio.subprocess.Process,
        *,
        kill_grace_s: float = KILL_GRACE_S,
        line_limit_bytes: int = OUTPUT_LINE_LIMIT_BYTES,
    ) -> None:
        self._proc = proc
        self._kill_grace_s = kill_grace_s
        self._line_limit_bytes = line_limit_bytes

        self._lines: asyncio.Queue[OutputLine | None] = asyncio.Queue()
        self._pumps: list[asyncio.Task[None]] = []
        self._open_streams = 0
        self._eof = False

        self._kill_requested = False
        self._escalation: asyncio.Task[None] | None = None

        for stream, reader in (
            (OutputStream.STDOUT, proc.stdout),
            (OutputStream.STDERR, proc.stderr),
        ):
            if reader is None:
                continue
            self._open_streams += 1
            self._pumps.append(asyncio.create_task(self._pump(stream, reader)))

        if self._open_streams == 0:
            self._eof = True

    # ------------------------------------------------------------------
    # ProcessHandle contract
    # ------------------------------------------------------------------

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    async def next_line(self) -> OutputLine | None:
        if self._eof:
            return None

        while True:
            item = await self._lines.get()
            if item is not None:
                return item

            self._open_streams -= 1
            if self._open_streams == 0:
                self._eof = True
                return None

    async def wait(self) -> int:
        if self._pumps:
            await asyncio.wait(self._pumps)
        return await self._proc.wait()

    def kill(self) -> None:
        if self._kill_requested or self._proc.returncode is not None:
            return
        self._kill_requested = True

        try:
            self._proc.terminate()
        except ProcessLookupError:
            return

        log_event({
            "event_type": "PROCESS_KILLED",
            "pid": self._proc.pid,
            "signal": "SIGTERM",
        })

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._escalation = loop.create_task(self._escalate())

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _pump(self, stream: OutputStream, reader: asyncio.StreamReader) -> None:
        # True while skipping the remainder of a line that overran the limit
        discarding = False
        try:
            while True:
                try:
                    raw = await reader.readuntil(b"\n")
                except asyncio.LimitOverrunError as exc:
                    # Nothing consumed yet; drop what is buffered and keep skipping
                    await reader.readexactly(exc.consumed)
                    if not discarding:
                        discarding = True
                        log_event({
                            "event_type": "PROCESS_LINE_TOO_LONG",
                            "pid": self._proc.pid,
                            "stream": stream.value,
                            "limit_bytes": self._line_limit_bytes,
                        })
                    continue
                except asyncio.IncompleteReadError as exc:
                    # EOF; a final line may lack its newline
                    if exc.partial and not discarding:
                        self._emit(stream, exc.partial)
                    break

                if discarding:
                    discarding = False
                    continue

                self._emit(stream, raw)
        finally:
            self._lines.put_nowait(None)

    def _emit(self, stream: OutputStream, raw: bytes) -> None:
        text = raw.decode(OUTPUT_ENCODING, errors="replace").rstrip()
        self._lines.put_nowait(OutputLine(stream=stream, text=text))

    async def _escalate(self) -> None:
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=self._kill_grace_s)
            return
        except asyncio.TimeoutError:
            pass

        try:
            self._proc.kill()
        except ProcessLookupError:
            return

        log_event({
            "event_type": "PROCESS_KILLED",
            "pid": self._proc.pid,
            "signal": "SIGKILL",
        })


class AsyncioProcessSupervisor(ProcessSupervisor):
    """Spawns audit tasks with asyncio.create_subprocess_exec."""

    def __init__(
        self,
        *,
        kill_grace_s: float = KILL_GRACE_S,
        line_limit_bytes: int = OUTPUT_LINE_LIMIT_BYTES,
    ) -> None:
        self._kill_grace_s = kill_grace_s
        self._line_limit_bytes = line_limit_bytes

    async def start(self, command: Sequence[str], *, cwd: Path | None = None) -> ProcessHandle:
        if not command:
            raise LaunchFailure("empty command")

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                cwd=str(cwd) if cwd is not None else None,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=self._line_limit_bytes,
            )
        except OSError as exc:
            # Missing binary, permission denied, or missing working directory
            raise LaunchFailure(f"{command[0]}: {exc.strerror or exc}") from exc

        log_event({
            "event_type": "PROCESS_STARTED",
            "pid": proc.pid,
            "argv": list(command),
            "cwd": str(cwd) if cwd is not None else None,
        })

        return AsyncioProcessHandle(
            proc,
            kill_grace_s=self._kill_grace_s,
            line_limit_bytes=self._line_limit_bytes,
        )
