"""Session token lifecycle for the local binding.

Sessions are stored in the key-value store with a cleanup TTL matching
session expiry; the stored expires_at is authoritative.
Token format is cryptographically random (secrets.token_urlsafe).
"""

import secrets
from datetime import timedelta

from auth.config import AuthConfig
from auth.exceptions import ProviderError
from auth.storage import KeyValueStore
from auth.types import ProviderSession
from utils.timezone import Clock, now_utc, parse_iso


class SessionExpiredError(ProviderError):
    """Session token unknown or past its expiry."""


class SessionManager:
    """Opaque bearer sessions with sliding expiry."""

    KEY_PREFIX = "session:"

    def __init__(self, store: KeyValueStore, config: AuthConfig, clock: Clock = now_utc):
        self._store = store
        self._config = config
        self._clock = clock
        self._ttl_seconds = config.session_expiry_hours * 3600

    def _key(self, token: str) -> str:
        return f"{self.KEY_PREFIX}{token}"

    def _save(self, session: ProviderSession, created_at: str) -> None:
        self._store.set(
            self._key(session.access_token),
            {
                "user_id": session.user_id,
                "created_at": created_at,
                "expires_at": session.expires_at.isoformat(),
            },
            expire_seconds=self._ttl_seconds,
        )

    def create_session(self, user_id: str) -> ProviderSession:
        """Create new session for user."""
        now = self._clock()
        session = ProviderSession(
            access_token=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        self._save(session, now.isoformat())
        return session

    def validate_session(self, token: str) -> ProviderSession:
        """Validate token and slide its expiry forward.

        Raises SessionExpiredError if token invalid or expired.
        """
        data = self._store.get(self._key(token))
        if data is None:
            raise SessionExpiredError("Session not found or expired")

        now = self._clock()
        if now > parse_iso(data["expires_at"]):
            self._store.remove(self._key(token))
            raise SessionExpiredError("Session expired")

        session = ProviderSession(
            access_token=token,
            user_id=data["user_id"],
            expires_at=now + timedelta(seconds=self._ttl_seconds),
        )
        self._save(session, data["created_at"])
        return session

    def revoke_session(self, token: str) -> None:
        """Revoke session (logout). Safe to call with nonexistent token."""
        self._store.remove(self._key(token))
