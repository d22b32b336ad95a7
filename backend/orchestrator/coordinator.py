"""
Run coordinator for audit runs.

Responsibilities:
- Validate a run request (site exists, content directory available)
- Reserve the site's slot in the run tracker (at most one run per slug)
- Emit START, launch the external audit task, relay its events
- Guarantee cleanup on every exit path: kill a live task, release the
  slot exactly once, stop the run timer

Non-responsibilities:
- Authentication (auth.guard)
- Pipe reading and signal delivery (adapters.audit.process)
- Line-to-event relaying and disconnect polling (session.event_stream)
- Wire framing (protocol.sse)

Lifecycle of one run:
    IDLE -> RESERVED -> RUNNING -> TERMINATING -> IDLE

Rejections (SiteNotFound, ContentUnavailable, RunAlreadyActive) are raised
from begin() before any transition, so a rejected request never touches
the tracker beyond the failed reservation attempt.
"""

from __future__ import annotations

from contextlib import aclosing
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, AsyncIterator
from uuid import uuid4

from adapters.audit.base import ProcessHandle, ProcessSupervisor
from observability.logger import log_event
from observability.metrics import start_timer, stop_timer
from orchestrator import events
from orchestrator.enums.state import RunPhase
from orchestrator.errors import (
    ClientDisconnected,
    ContentUnavailable,
    LaunchFailure,
    RunAlreadyActive,
    RunRejected,
    SiteNotFound,
)
from orchestrator.events import EventType, RunEvent
from orchestrator.run_tracker import RunLease, RunTracker, acquire_lease
from session.event_stream import EventStreamer, IsDisconnectedFn
from sites.registry import SiteDescriptor, SiteRegistry

if TYPE_CHECKING:
    from config import AppConfig


def _new_run_id() -> str:
    return f"run_{uuid4().hex[:12]}"


# ------------------------------------------------------------------
# Run records
# ------------------------------------------------------------------

@dataclass(frozen=True)
class AuditRequest:
    """A validated request to audit one site. Not persisted."""

    slug: str
    site: SiteDescriptor


class AuditRun:
    """
    Mutable record of one run.

    Owned exclusively by the coordinator call that created it; nothing is
    shared with other runs except the tracker behind the lease.
    """

    def __init__(self, *, request: AuditRequest, lease: RunLease, timer_id: str) -> None:
        self.run_id = _new_run_id()
        self.request = request
        self.lease = lease
        self.timer_id = timer_id
        self.phase = RunPhase.RESERVED
        self.handle: ProcessHandle | None = None
        self.outcome: str | None = None

    @property
    def slug(self) -> str:
        return self.request.slug


# ------------------------------------------------------------------
# Coordinator
# ------------------------------------------------------------------

class RunCoordinator:
    """
    Orchestrates validation, reservation, supervision and streaming.

    Guarantees:
    - A slug's slot is held from begin() until finish(), never longer
    - finish() is idempotent; the first call does the cleanup
    - Events for one run are yielded in strict order, ending with at most
      one terminal event
    """

    def __init__(
        self,
        *,
        registry: SiteRegistry,
        tracker: RunTracker,
        supervisor: ProcessSupervisor,
        streamer: EventStreamer,
        audit_command: str,
        publish_script: Path,
        workspace_dir: Path,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._supervisor = supervisor
        self._streamer = streamer
        self._audit_command = audit_command
        self._publish_script = publish_script
        self._workspace_dir = workspace_dir

        self._active: dict[str, AuditRun] = {}

    @staticmethod
    def from_config(
        config: AppConfig,
        *,
        registry: SiteRegistry,
        tracker: RunTracker,
        supervisor: ProcessSupervisor,
        streamer: EventStreamer | None = None,
    ) -> RunCoordinator:
        return RunCoordinator(
            registry=registry,
            tracker=tracker,
            supervisor=supervisor,
            streamer=streamer or EventStreamer(),
            audit_command=config.audit_command,
            publish_script=config.publish_script,
            workspace_dir=config.workspace_dir,
        )

    # ------------------------------------------------------------------
    # Validation & reservation
    # ------------------------------------------------------------------

    def resolve(self, slug: str) -> AuditRequest:
        """
        Validate a run request without touching the tracker.

        Raises:
            SiteNotFound, ContentUnavailable
        """
        site = self._registry.get(slug)
        if site is None:
            raise SiteNotFound(slug, "Site not found")

        if not site.content_available():
            raise ContentUnavailable(slug, "Content directory not available")

        return AuditRequest(slug=slug, site=site)

    def begin(self, slug: str) -> AuditRun:
        """
        Validate and reserve. On success the run is RESERVED and the caller
        must eventually drive stream() or call finish().

        Raises:
            SiteNotFound, ContentUnavailable, RunAlreadyActive
        """
        try:
            request = self.resolve(slug)

            lease = acquire_lease(self._tracker, slug)
            if lease is None:
                raise RunAlreadyActive(slug, "Audit already running")
        except RunRejected as exc:
            log_event({
                "event_type": "RUN_REJECTED",
                "slug": slug,
                "reason": type(exc).__name__,
                "status_code": exc.status_code,
            })
            raise

        run = AuditRun(
            request=request,
            lease=lease,
            timer_id=start_timer("audit_run_duration"),
        )
        self._active[slug] = run

        log_event({
            "event_type": "RUN_STATE_CHANGED",
            "run_id": run.run_id,
            "slug": slug,
            "from": RunPhase.IDLE.value,
            "to": RunPhase.RESERVED.value,
        })
        return run

    def build_command(self, request: AuditRequest) -> list[str]:
        site = request.site
        assert site.content_dir is not None
        return [
            self._audit_command,
            str(self._publish_script),
            "--dir", site.content_dir,
            "--url", site.url,
            "--name", site.name,
            "--slug", site.slug,
        ]

    # ------------------------------------------------------------------
    # Run body
    # ------------------------------------------------------------------

    async def stream(
        self,
        run: AuditRun,
        *,
        is_disconnected: IsDisconnectedFn | None = None,
    ) -> AsyncIterator[RunEvent]:
        """
        Drive a RESERVED run to completion, yielding its events.

        Cleanup runs in `finally`, so it also happens when the consumer stops
        iterating or the surrounding task is cancelled (client disconnect).
        """
        if run.phase is not RunPhase.RESERVED:
            # Already finished (e.g. shutdown) before streaming began
            return

        site = run.request.site

        try:
            yield events.start(f"Audit started for {site.name}...")

            self._transition(run, RunPhase.RUNNING)
            try:
                run.handle = await self._supervisor.start(
                    self.build_command(run.request),
                    cwd=self._workspace_dir,
                )
            except LaunchFailure as exc:
                run.outcome = "launch_failure"
                log_event({
                    "event_type": "RUN_LAUNCH_FAILED",
                    "run_id": run.run_id,
                    "slug": run.slug,
                    "message": str(exc),
                })
                yield events.error(f"❌ Audit could not be started: {exc}")
                return

            relayed = self._streamer.relay(
                run.handle,
                site,
                is_disconnected=is_disconnected,
            )
            async with aclosing(relayed):
                async for event in relayed:
                    if event.is_terminal:
                        run.outcome = "done" if event.event_type is EventType.DONE else "failed"
                    yield event

        except ClientDisconnected:
            run.outcome = "client_disconnect"

        except Exception as exc:  # pylint: disable=broad-exception-caught
            run.outcome = "internal_error"
            log_event({
                "event_type": "RUN_FATAL_ERROR",
                "run_id": run.run_id,
                "slug": run.slug,
                "exception": type(exc).__name__,
                "message": str(exc),
            })
            yield events.error("❌ Audit aborted: internal error")

        finally:
            self.finish(run)

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def finish(self, run: AuditRun) -> None:
        """
        Terminate a run: kill a live task, release the slot, stop the timer.

        Never awaits, so it is safe from cancelled contexts. Idempotent.
        """
        if run.phase in (RunPhase.TERMINATING, RunPhase.IDLE):
            return

        self._transition(run, RunPhase.TERMINATING)

        if run.outcome is None:
            # Stopped without a terminal event and without an explicit cause
            run.outcome = "aborted"

        if run.outcome in ("client_disconnect", "aborted"):
            log_event({
                "event_type": "RUN_CLIENT_DISCONNECTED",
                "run_id": run.run_id,
                "slug": run.slug,
            })

        if run.handle is not None and run.handle.returncode is None:
            run.handle.kill()

        run.lease.release()
        if self._active.get(run.slug) is run:
            del self._active[run.slug]

        stop_timer(
            run.timer_id,
            slug=run.slug,
            run_id=run.run_id,
            details={"outcome": run.outcome},
        )

        self._transition(run, RunPhase.IDLE)

    def shutdown(self) -> None:
        """Terminate every active run (application shutdown)."""
        for run in list(self._active.values()):
            if run.outcome is None:
                run.outcome = "shutdown"
            self.finish(run)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def active_run(self, slug: str) -> AuditRun | None:
        return self._active.get(slug)

    def site_status(self) -> list[dict[str, Any]]:
        """Every registered site with content availability and running flag."""
        return [
            {
                **site.to_dict(),
                "available": site.content_available(),
                "running": self._tracker.is_running(site.slug),
            }
            for site in self._registry
        ]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(run: AuditRun, to: RunPhase) -> None:
        log_event({
            "event_type": "RUN_STATE_CHANGED",
            "run_id": run.run_id,
            "slug": run.slug,
            "from": run.phase.value,
            "to": to.value,
        })
        run.phase = to
