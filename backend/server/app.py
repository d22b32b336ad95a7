"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Initialize shared resources (site registry, run tracker, access guard,
  run coordinator) once per process
- Register routes
- Terminate live audit runs on shutdown
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from adapters.audit.base import ProcessSupervisor
from adapters.audit.process import AsyncioProcessSupervisor
from auth.guard import AccessGuard, new_session_token
from config import AppConfig
from observability.logger import log_event
from observability.metrics import timed
from orchestrator.coordinator import RunCoordinator
from orchestrator.run_tracker import RunTracker
from session.event_stream import EventStreamer
from sites.registry import SiteRegistry

from server.routes import register_routes


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config
    log_event({
        "event_type": "APP_STARTED",
        "env": config.env,
        "port": config.port,
        "sites": len(app.state.registry),
    })
    try:
        yield
    finally:
        app.state.coordinator.shutdown()
        log_event({"event_type": "APP_STOPPED"})


def create_app(
    config: AppConfig | None = None,
    *,
    registry: SiteRegistry | None = None,
    supervisor: ProcessSupervisor | None = None,
    streamer: EventStreamer | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    This is the app factory pattern that allows:
    - Testing with different configurations and fake supervisors
    - ASGI server compatibility
    """
    config = config or AppConfig.load_from_env()

    if registry is None:
        with timed("site_registry_load", details={"path": str(config.sites_path)}):
            registry = SiteRegistry.load(config.sites_path)

    tracker = RunTracker()

    # Capability token: generated ONCE per process lifetime
    access_guard = AccessGuard(
        session_token=new_session_token(),
        username=config.dash_user,
        password=config.dash_pass,
        realm=config.auth_realm,
    )

    coordinator = RunCoordinator.from_config(
        config,
        registry=registry,
        tracker=tracker,
        supervisor=supervisor or AsyncioProcessSupervisor(),
        streamer=streamer,
    )

    app = FastAPI(title="Audit Dashboard", lifespan=_lifespan)

    app.state.config = config
    app.state.registry = registry
    app.state.run_tracker = tracker
    app.state.access_guard = access_guard
    app.state.coordinator = coordinator

    # Routes
    register_routes(app)

    return app
