"""
Run error taxonomy.

Immediate rejections (no stream, no state change) derive from RunRejected
and carry the HTTP status they map to. LaunchFailure and ClientDisconnected
happen after the stream has started and are handled inside the run.
"""

from __future__ import annotations


class RunRejected(Exception):
    """Base class for run requests refused before any state transition."""

    status_code: int = 400

    def __init__(self, slug: str, message: str) -> None:
        super().__init__(message)
        self.slug = slug


class SiteNotFound(RunRejected):
    """Slug does not resolve to a registered site."""

    status_code = 404


class ContentUnavailable(RunRejected):
    """Site has no content directory, or it does not exist."""

    status_code = 412


class RunAlreadyActive(RunRejected):
    """An audit is already running for this slug; the in-flight run is untouched."""

    status_code = 409


class LaunchFailure(Exception):
    """The external audit task could not be started at all."""


class ClientDisconnected(Exception):
    """The listening client went away before the run finished."""
