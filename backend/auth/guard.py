"""
Access guard.

Responsibilities:
- Decide allow/deny for an inbound request from its credentials
- Accept either the per-process capability token (query parameter)
  or a Basic username/password pair (Authorization header)
- Provide the challenge header sent with a deny

Non-responsibilities:
- No rate limiting or lockout
- No credential storage beyond the values handed in at startup
- No HTTP framework coupling (see server.routes.require_access)
"""

from __future__ import annotations

import base64
import binascii
import hmac
import secrets

from constants import SESSION_TOKEN_BYTES


def new_session_token() -> str:
    """Generate the capability token for this process lifetime."""
    return secrets.token_urlsafe(SESSION_TOKEN_BYTES)


def _equals(provided: str, expected: str) -> bool:
    return hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


def parse_basic_credentials(authorization: str | None) -> tuple[str, str] | None:
    """
    Decode an `Authorization: Basic ...` header.

    Returns (username, password), or None if the header is absent,
    uses another scheme, or is malformed.
    """
    if not authorization:
        return None

    scheme, _, encoded = authorization.partition(" ")
    if scheme.lower() != "basic" or not encoded:
        return None

    try:
        decoded = base64.b64decode(encoded.strip(), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None

    username, sep, password = decoded.partition(":")
    if not sep:
        return None
    return username, password


class AccessGuard:
    """
    Binary allow/deny decision over two independent credential checks.

    Basic credentials are only accepted when both username and password
    are configured.
    """

    def __init__(
        self,
        *,
        session_token: str,
        username: str | None,
        password: str | None,
        realm: str,
    ) -> None:
        self._session_token = session_token
        self._username = username
        self._password = password
        self._realm = realm

    @property
    def session_token(self) -> str:
        return self._session_token

    def token_allows(self, token: str | None) -> bool:
        if not token:
            return False
        return _equals(token, self._session_token)

    def basic_allows(self, authorization: str | None) -> bool:
        if not self._username or not self._password:
            return False

        credentials = parse_basic_credentials(authorization)
        if credentials is None:
            return False

        username, password = credentials
        # Evaluate both to keep timing independent of which field mismatched
        user_ok = _equals(username, self._username)
        pass_ok = _equals(password, self._password)
        return user_ok and pass_ok

    def is_allowed(self, *, token: str | None, authorization: str | None) -> bool:
        return self.token_allows(token) or self.basic_allows(authorization)

    def challenge_headers(self) -> dict[str, str]:
        return {"WWW-Authenticate": f'Basic realm="{self._realm}"'}
