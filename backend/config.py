"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No run coordination logic
- No behavioral constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from constants import (
    DEFAULT_AUDIT_COMMAND,
    DEFAULT_AUTH_REALM,
    DEFAULT_HOST,
    DEFAULT_PORT,
    PUBLISH_SCRIPT_RELPATH,
)


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup.
    Passed downward to the access guard and run coordinator.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str
    host: str
    port: int

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    dash_user: str | None
    dash_pass: str | None
    auth_realm: str

    # ------------------------------------------------------------------
    # Content
    # ------------------------------------------------------------------

    sites_path: Path
    web_root: Path

    # ------------------------------------------------------------------
    # External audit task
    # ------------------------------------------------------------------

    workspace_dir: Path
    audit_command: str
    publish_script: Path

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env() -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ValueError if PORT is not an integer.
        """
        workspace_dir = Path(
            os.environ.get("WORKSPACE_DIR", "/home/ubuntu/.openclaw/workspace-main")
        )
        publish_script = os.environ.get("PUBLISH_SCRIPT")

        return AppConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            host=os.environ.get("HOST", DEFAULT_HOST),
            port=int(os.environ.get("PORT", str(DEFAULT_PORT))),

            dash_user=os.environ.get("DASH_USER") or None,
            dash_pass=os.environ.get("DASH_PASS") or None,
            auth_realm=os.environ.get("AUTH_REALM", DEFAULT_AUTH_REALM),

            sites_path=Path(os.environ.get("SITES_PATH", "sites.json")),
            web_root=Path(os.environ.get("WEB_ROOT", "web")),

            workspace_dir=workspace_dir,
            audit_command=os.environ.get("AUDIT_COMMAND", DEFAULT_AUDIT_COMMAND),
            publish_script=(
                Path(publish_script)
                if publish_script
                else workspace_dir / PUBLISH_SCRIPT_RELPATH
            ),
        )
