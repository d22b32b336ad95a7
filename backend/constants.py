"""
BEHAVIOR-AS-CONSTANTS
---------------------
Single source of truth for all behavioral tunables in the control plane.

Rules:
- If changing a value changes runtime behavior, it belongs here.
- No magic numbers elsewhere in the codebase.
- Deployment-specific values (paths, credentials, ports) live in config.py.
"""

from __future__ import annotations

from typing import Final

# =============================================================================
# HTTP surface
# =============================================================================

DEFAULT_PORT: Final[int] = 4242
DEFAULT_HOST: Final[str] = "0.0.0.0"
DEFAULT_AUTH_REALM: Final[str] = "SEO Dashboard"

# Placeholder in index.html replaced with the capability token on page load
SESSION_TOKEN_PLACEHOLDER: Final[str] = "__SESSION_TOKEN__"
SESSION_TOKEN_BYTES: Final[int] = 32

INDEX_FILENAME: Final[str] = "index.html"

SSE_MEDIA_TYPE: Final[str] = "text/event-stream"
SSE_HEADERS: Final[dict[str, str]] = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # disable proxy buffering
}

# =============================================================================
# External audit task
# =============================================================================

DEFAULT_AUDIT_COMMAND: Final[str] = "node"
PUBLISH_SCRIPT_RELPATH: Final[str] = "skills/seo-audit/scripts/publish-dashboard.mjs"

# asyncio StreamReader limit; longer lines are dropped and logged
OUTPUT_LINE_LIMIT_BYTES: Final[int] = 1024 * 1024
OUTPUT_ENCODING: Final[str] = "utf-8"

# SIGTERM -> SIGKILL escalation delay after kill()
KILL_GRACE_S: Final[float] = 5.0

# =============================================================================
# Streaming
# =============================================================================

# While no output arrives, poll the connection this often for a disconnect
DISCONNECT_CHECK_INTERVAL_S: Final[float] = 1.0
