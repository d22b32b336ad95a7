"""
Run tracker: which site slugs currently have an active audit.

Rules:
- A slug is present iff exactly one audit task is running for it.
- Check-and-insert is atomic; all operations share one lock.
- release() is unconditional and idempotent.
- The tracker is an explicit object owned by the app, never a module global.
"""

from __future__ import annotations

import threading


class RunTracker:
    """
    Process-wide membership set of running slugs.

    Operations are linearizable with respect to each other. Throughput is
    irrelevant (runs are human-initiated), so one lock covers everything.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._running: set[str] = set()

    def try_reserve(self, slug: str) -> bool:
        """
        Insert slug if absent.

        Returns:
            True if reserved, False if already running (no mutation).
        """
        with self._lock:
            if slug in self._running:
                return False
            self._running.add(slug)
            return True

    def release(self, slug: str) -> None:
        """Remove slug; no-op if absent."""
        with self._lock:
            self._running.discard(slug)

    def is_running(self, slug: str) -> bool:
        with self._lock:
            return slug in self._running

    def running(self) -> frozenset[str]:
        """Snapshot of all running slugs."""
        with self._lock:
            return frozenset(self._running)


class RunLease:
    """
    One run's claim on a reserved slug.

    release() frees the slot at most once, so several cleanup paths can
    call it without removing a later run's reservation for the same slug.
    """

    def __init__(self, tracker: RunTracker, slug: str) -> None:
        self._tracker = tracker
        self._slug = slug
        self._lock = threading.Lock()
        self._released = False

    @property
    def slug(self) -> str:
        return self._slug

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> bool:
        """
        Release the slot if this lease still holds it.

        Returns:
            True on the first call, False afterwards.
        """
        with self._lock:
            if self._released:
                return False
            self._released = True

        self._tracker.release(self._slug)
        return True


def acquire_lease(tracker: RunTracker, slug: str) -> RunLease | None:
    """Reserve slug and wrap it in a lease; None if already running."""
    if not tracker.try_reserve(slug):
        return None
    return RunLease(tracker, slug)
