"""Staff token authentication with expiring bearer sessions."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Callable, Optional

from stayhub.utils.config import Settings, get_settings
from stayhub.utils.logger import get_logger


logger = get_logger(__name__)


class AuthenticationError(Exception):
    """Base authentication failure."""


class AdminTokenNotConfiguredError(AuthenticationError):
    """Raised when ADMIN_TOKEN is missing."""


class InvalidAdminTokenError(AuthenticationError):
    """Raised when provided token is invalid."""


class SessionExpiredError(InvalidAdminTokenError):
    """Raised when a bearer session has outlived its TTL."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthService:
    """Validates the staff token and issues bearer sessions.

    Several staff members can be logged in at once; each session expires
    `session_ttl_minutes` after login.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._settings = settings or get_settings()
        self._clock = clock
        self._sessions: dict[str, datetime] = {}
        self._lock = Lock()

    @property
    def auth_enabled(self) -> bool:
        return bool(self._settings.admin_token)

    @property
    def session_ttl_minutes(self) -> int:
        return self._settings.session_ttl_minutes

    def _expected_token(self) -> str:
        if not self._settings.admin_token:
            raise AdminTokenNotConfiguredError(
                "ADMIN_TOKEN is not configured. Set ADMIN_TOKEN in environment variables."
            )
        return self._settings.admin_token

    def login(self, provided_admin_token: str) -> str:
        expected = self._expected_token()
        if not secrets.compare_digest(provided_admin_token, expected):
            logger.warning("Rejected staff login")
            raise InvalidAdminTokenError("Invalid admin token")
        bearer = secrets.token_urlsafe(32)
        expires_at = self._clock() + timedelta(minutes=self._settings.session_ttl_minutes)
        with self._lock:
            self._purge_expired()
            self._sessions[bearer] = expires_at
        return bearer

    def _purge_expired(self) -> None:
        now = self._clock()
        for token in [token for token, expiry in self._sessions.items() if expiry <= now]:
            del self._sessions[token]

    def validate_bearer_token(self, bearer_token: str) -> None:
        if not self.auth_enabled:
            return
        with self._lock:
            expires_at = next(
                (
                    expiry
                    for token, expiry in self._sessions.items()
                    if secrets.compare_digest(bearer_token, token)
                ),
                None,
            )
            if expires_at is None:
                raise InvalidAdminTokenError("Invalid bearer token. Login first.")
            if expires_at <= self._clock():
                self._sessions.pop(bearer_token, None)
                raise SessionExpiredError("Session expired. Login again.")

    def logout(self, bearer_token: str) -> None:
        with self._lock:
            self._sessions.pop(bearer_token, None)
