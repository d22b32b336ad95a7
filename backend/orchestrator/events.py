"""
Run event definitions.

Rules:
- Events describe facts observed during one run.
- Events carry data only (no behavior beyond wire serialization).
- Within one run, events are emitted in strict chronological order.
- Exactly one terminal event (DONE or ERROR) ends a run's stream.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class EventType(str, Enum):
    """Discriminant for run events, as sent to the client."""

    START = "start"
    LOG = "log"
    DONE = "done"
    ERROR = "error"


TERMINAL_EVENT_TYPES = frozenset({EventType.DONE, EventType.ERROR})


@dataclass(frozen=True)
class RunEvent:
    """
    Base run event.

    data is the human-readable message (or output line for LOG).
    """

    event_type: EventType
    data: str

    @property
    def is_terminal(self) -> bool:
        return self.event_type in TERMINAL_EVENT_TYPES

    def to_payload(self) -> dict[str, Any]:
        return {"type": self.event_type.value, "data": self.data}


@dataclass(frozen=True)
class RunStarted(RunEvent):
    """Slot reserved; the audit task is about to be launched."""


@dataclass(frozen=True)
class RunLog(RunEvent):
    """One output line from the audit task (stdout or stderr)."""


@dataclass(frozen=True)
class RunDone(RunEvent):
    """Audit task exited with status 0."""


@dataclass(frozen=True)
class RunFailed(RunEvent):
    """
    Audit task failed.

    exit_code is the non-zero exit status, or None if the task never
    started or the run broke down before an exit status was known.
    """

    exit_code: int | None = None

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["exit_code"] = self.exit_code
        return payload


# =============================================================================
# Constructors
# =============================================================================

def start(message: str) -> RunStarted:
    return RunStarted(event_type=EventType.START, data=message)


def log(line: str) -> RunLog:
    return RunLog(event_type=EventType.LOG, data=line)


def done(message: str) -> RunDone:
    return RunDone(event_type=EventType.DONE, data=message)


def error(message: str, exit_code: int | None = None) -> RunFailed:
    return RunFailed(event_type=EventType.ERROR, data=message, exit_code=exit_code)
