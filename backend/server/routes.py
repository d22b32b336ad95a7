"""
Route registration for the audit dashboard API.

Responsibilities:
- Define HTTP endpoints (index, site status, audit stream, static files)
- Enforce the access guard on everything except /health
- Map run rejections to JSON error responses
- Pull dependencies from app.state
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse
from starlette.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from auth.guard import AccessGuard
from constants import INDEX_FILENAME, SESSION_TOKEN_PLACEHOLDER, SSE_HEADERS, SSE_MEDIA_TYPE
from observability.logger import log_event
from orchestrator.coordinator import RunCoordinator
from orchestrator.errors import RunRejected
from protocol.sse import encode_event_stream


async def require_access(request: Request) -> None:
    """Dependency: 401 with a Basic challenge unless the guard allows the request."""
    guard: AccessGuard = request.app.state.access_guard

    allowed = guard.is_allowed(
        token=request.query_params.get("token"),
        authorization=request.headers.get("authorization"),
    )
    if allowed:
        return

    log_event({
        "event_type": "ACCESS_DENIED",
        "path": request.url.path,
        "client": request.client.host if request.client else None,
    })
    raise HTTPException(
        status_code=401,
        detail="Access requires authentication.",
        headers=guard.challenge_headers(),
    )


def register_routes(app: FastAPI) -> None:
    """Register all routes on the FastAPI app."""

    @app.exception_handler(RunRejected)
    async def run_rejected_handler(_: Request, exc: RunRejected) -> JSONResponse: # pyright: ignore[reportUnusedFunction]
        return JSONResponse(status_code=exc.status_code, content={"error": str(exc)})

    @app.get("/health")
    async def health() -> dict[str, str]: # pyright: ignore[reportUnusedFunction]
        return {"status": "ok"}

    @app.get("/", dependencies=[Depends(require_access)])
    async def index() -> HTMLResponse: # pyright: ignore[reportUnusedFunction]
        guard: AccessGuard = app.state.access_guard
        index_path: Path = app.state.config.web_root / INDEX_FILENAME

        try:
            html = index_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise HTTPException(status_code=404, detail="Not Found") from None

        return HTMLResponse(html.replace(SESSION_TOKEN_PLACEHOLDER, guard.session_token))

    @app.get("/api/sites", dependencies=[Depends(require_access)])
    async def list_sites() -> list[dict[str, Any]]: # pyright: ignore[reportUnusedFunction]
        coordinator: RunCoordinator = app.state.coordinator
        return coordinator.site_status()

    @app.get("/api/audit/{slug}", dependencies=[Depends(require_access)])
    async def run_audit(slug: str, request: Request) -> StreamingResponse: # pyright: ignore[reportUnusedFunction]
        coordinator: RunCoordinator = app.state.coordinator

        # Rejections raise here, before any bytes are streamed
        run = coordinator.begin(slug)

        return RunEventResponse(
            encode_event_stream(
                coordinator.stream(run, is_disconnected=request.is_disconnected)
            ),
            on_close=lambda: coordinator.finish(run),
        )

    # Registered last: catches every remaining GET path
    @app.get("/{file_path:path}", dependencies=[Depends(require_access)])
    async def static_file(file_path: str) -> FileResponse: # pyright: ignore[reportUnusedFunction]
        root: Path = app.state.config.web_root.resolve()
        candidate = (root / file_path).resolve()

        if candidate.is_dir():
            candidate = candidate / INDEX_FILENAME

        if not candidate.is_relative_to(root) or not candidate.is_file():
            raise HTTPException(status_code=404, detail="Not Found")

        return FileResponse(candidate)


class RunEventResponse(StreamingResponse):
    """
    Streaming response for one audit run.

    on_close runs once the response is finished with, however it ends
    (normal completion, disconnect, send failure, or a body that never
    started iterating).
    """

    def __init__(self, content: Any, *, on_close: Callable[[], None]) -> None:
        super().__init__(content, media_type=SSE_MEDIA_TYPE, headers=SSE_HEADERS)
        self._on_close = on_close

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            self._on_close()
