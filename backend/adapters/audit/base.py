"""
Audit task adapter contract.

This module defines the *interface only*. No run tracking, event typing,
or connection handling lives here.

Key invariants:
- One handle == one spawned external process, owned by exactly one run.
- Output lines are surfaced in arrival order; per-stream order is exact,
  cross-stream order is best-effort.
- Launch failure is raised from start(), never reported via wait().
- kill() is idempotent and a no-op after the process has exited.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Sequence


class OutputStream(str, Enum):
    """Which standard stream a line came from."""

    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class OutputLine:
    """One line of task output, trailing whitespace removed."""

    stream: OutputStream
    text: str


class ProcessHandle(ABC):
    """
    Live view of one running audit task.

    Implementations are responsible for:
    - Pumping both output streams into a single ordered line channel
    - Reporting the exit status once both streams closed and the process exited
    - Terminating the process on request
    """

    @property
    @abstractmethod
    def returncode(self) -> int | None:
        """Exit status, or None while the process is alive."""
        raise NotImplementedError

    @abstractmethod
    async def next_line(self) -> OutputLine | None:
        """
        Wait for the next output line.

        Returns None once both streams have closed; every later call also
        returns None.
        """
        raise NotImplementedError

    @abstractmethod
    async def wait(self) -> int:
        """Wait until both streams closed and the process exited; return its status."""
        raise NotImplementedError

    @abstractmethod
    def kill(self) -> None:
        """
        Send a termination signal.

        Contract:
        - Safe to call repeatedly.
        - No-op if the process already exited.
        - Must not block; escalation (if any) happens in the background.
        """
        raise NotImplementedError


class ProcessSupervisor(ABC):
    """Launches audit tasks."""

    @abstractmethod
    async def start(self, command: Sequence[str], *, cwd: Path | None = None) -> ProcessHandle:
        """
        Spawn one process.

        Raises:
            orchestrator.errors.LaunchFailure if the command cannot be launched.
        """
        raise NotImplementedError
