# pylint: disable=missing-module-docstring,missing-function-docstring

import asyncio
import json
import sys
import textwrap
from pathlib import Path

import pytest

from adapters.audit.base import OutputLine, OutputStream, ProcessHandle
from adapters.audit.process import AsyncioProcessSupervisor
from observability import logger
from orchestrator.errors import LaunchFailure


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")


def write_script(tmp_path: Path, body: str) -> Path:
    path = tmp_path / "task.py"
    path.write_text(textwrap.dedent(body), encoding="utf-8")
    return path


async def drain(handle: ProcessHandle) -> list[OutputLine]:
    lines: list[OutputLine] = []
    while True:
        line = await handle.next_line()
        if line is None:
            return lines
        lines.append(line)


# ---------------------------------------------------------------------
# Output & exit status
# ---------------------------------------------------------------------

def test_lines_from_both_streams_and_exit_code(tmp_path: Path):
    script = write_script(tmp_path, """
        import sys
        sys.stdout.write("out one  \\n"); sys.stdout.flush()
        sys.stderr.write("err one\\t\\n"); sys.stderr.flush()
        sys.stdout.write("out two\\n"); sys.stdout.flush()
        sys.stdout.write("tail")
        sys.exit(3)
    """)

    async def scenario() -> tuple[list[OutputLine], int, int | None]:
        handle = await AsyncioProcessSupervisor().start([sys.executable, str(script)])
        lines = await drain(handle)
        code = await handle.wait()
        return lines, code, await handle.next_line()

    lines, code, after_eof = asyncio.run(scenario())

    stdout = [l.text for l in lines if l.stream is OutputStream.STDOUT]
    stderr = [l.text for l in lines if l.stream is OutputStream.STDERR]

    # Per-stream order is exact; trailing whitespace stripped; partial tail kept
    assert stdout == ["out one", "out two", "tail"]
    assert stderr == ["err one"]
    assert code == 3
    assert after_eof is None


def test_runs_in_working_directory(tmp_path: Path):
    workdir = tmp_path / "work"
    workdir.mkdir()
    script = write_script(tmp_path, """
        import os
        print(os.getcwd())
    """)

    async def scenario() -> list[OutputLine]:
        handle = await AsyncioProcessSupervisor().start(
            [sys.executable, str(script)], cwd=workdir,
        )
        lines = await drain(handle)
        assert await handle.wait() == 0
        return lines

    lines = asyncio.run(scenario())

    assert Path(lines[0].text).resolve() == workdir.resolve()


def test_overlong_line_is_dropped_and_logged(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    script = write_script(tmp_path, """
        print("x" * 500)
        print("short")
    """)

    async def scenario() -> list[OutputLine]:
        supervisor = AsyncioProcessSupervisor(line_limit_bytes=64)
        handle = await supervisor.start([sys.executable, str(script)])
        lines = await drain(handle)
        assert await handle.wait() == 0
        return lines

    lines = asyncio.run(scenario())

    assert [l.text for l in lines] == ["short"]

    too_long = [json.loads(c) for c in captured if "PROCESS_LINE_TOO_LONG" in c]
    assert len(too_long) == 1
    assert too_long[0]["limit_bytes"] == 64


def test_overlong_line_written_in_chunks_is_dropped_whole(tmp_path: Path):
    script = write_script(tmp_path, """
        import sys, time
        sys.stdout.write("x" * 200); sys.stdout.flush()
        time.sleep(0.3)
        sys.stdout.write("y" * 10 + "\\n"); sys.stdout.flush()
        print("short")
    """)

    async def scenario() -> list[OutputLine]:
        supervisor = AsyncioProcessSupervisor(line_limit_bytes=64)
        handle = await supervisor.start([sys.executable, str(script)])
        lines = await drain(handle)
        assert await handle.wait() == 0
        return lines

    lines = asyncio.run(scenario())

    assert [l.text for l in lines] == ["short"]


def test_invalid_utf8_is_replaced(tmp_path: Path):
    script = write_script(tmp_path, """
        import sys
        sys.stdout.buffer.write(b"bad \\xff\\xfe\\n"); sys.stdout.flush()
    """)

    async def scenario() -> tuple[list[OutputLine], int]:
        handle = await AsyncioProcessSupervisor().start([sys.executable, str(script)])
        lines = await drain(handle)
        return lines, await handle.wait()

    lines, code = asyncio.run(scenario())

    assert len(lines) == 1
    assert lines[0].text.startswith("bad ")
    assert "\ufffd" in lines[0].text
    assert code == 0


# ---------------------------------------------------------------------
# Launch failures
# ---------------------------------------------------------------------

def test_missing_binary_raises_launch_failure(tmp_path: Path):
    async def scenario() -> None:
        await AsyncioProcessSupervisor().start([str(tmp_path / "no-such-binary")])

    with pytest.raises(LaunchFailure):
        asyncio.run(scenario())


def test_missing_working_directory_raises_launch_failure(tmp_path: Path):
    async def scenario() -> None:
        await AsyncioProcessSupervisor().start(
            [sys.executable, "-c", "pass"], cwd=tmp_path / "gone",
        )

    with pytest.raises(LaunchFailure):
        asyncio.run(scenario())


def test_empty_command_raises_launch_failure():
    async def scenario() -> None:
        await AsyncioProcessSupervisor().start([])

    with pytest.raises(LaunchFailure):
        asyncio.run(scenario())


# ---------------------------------------------------------------------
# Kill
# ---------------------------------------------------------------------

@posix_only
def test_kill_terminates_running_process(tmp_path: Path):
    script = write_script(tmp_path, """
        import time
        print("ready", flush=True)
        time.sleep(30)
    """)

    async def scenario() -> int:
        handle = await AsyncioProcessSupervisor().start([sys.executable, str(script)])
        first = await handle.next_line()
        assert first is not None and first.text == "ready"

        handle.kill()
        handle.kill()  # idempotent
        return await asyncio.wait_for(handle.wait(), timeout=5)

    code = asyncio.run(scenario())

    assert code != 0


@posix_only
def test_kill_escalates_when_sigterm_ignored(tmp_path: Path):
    script = write_script(tmp_path, """
        import signal, time
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        print("ready", flush=True)
        time.sleep(30)
    """)

    async def scenario() -> int:
        supervisor = AsyncioProcessSupervisor(kill_grace_s=0.2)
        handle = await supervisor.start([sys.executable, str(script)])
        await handle.next_line()

        handle.kill()
        return await asyncio.wait_for(handle.wait(), timeout=5)

    code = asyncio.run(scenario())

    assert code == -9


def test_kill_after_exit_is_noop(tmp_path: Path):
    script = write_script(tmp_path, "print('bye')\n")

    async def scenario() -> int | None:
        handle = await AsyncioProcessSupervisor().start([sys.executable, str(script)])
        await drain(handle)
        assert await handle.wait() == 0

        handle.kill()
        return handle.returncode

    assert asyncio.run(scenario()) == 0
