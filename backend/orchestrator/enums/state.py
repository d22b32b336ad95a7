"""
Run lifecycle state enumeration.

Rules:
- This enum defines ONLY the per-run lifecycle phases.
- No behavior, no helper methods, no side effects.
- Transitions are made exclusively by the run coordinator.
"""

from __future__ import annotations

from enum import Enum


class RunPhase(str, Enum):
    """
    Lifecycle of one audit run.

    IDLE -> RESERVED -> RUNNING -> TERMINATING -> IDLE
    """

    IDLE = "IDLE"
    RESERVED = "RESERVED"
    RUNNING = "RUNNING"
    TERMINATING = "TERMINATING"
