"""Security event logging for the auth audit trail.

Append-only log to the security_events table. A failed audit write is
reported through the module logger and never fails the auth operation
that triggered it.
"""

import asyncio
import logging
from enum import Enum
from typing import Any

import psycopg2
from psycopg2.extras import Json

from clients.postgres_client import PostgresClient
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class SecurityEvent(Enum):
    """Auth security event types."""

    REGISTERED = "registered"
    REGISTRATION_PROFILE_FAILED = "registration_profile_failed"
    LOGIN_SUCCEEDED = "login_succeeded"
    LOGIN_FAILED = "login_failed"
    PROFILE_MISSING_SIGNOUT = "profile_missing_signout"
    SIGNED_OUT = "signed_out"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_UPDATED = "password_updated"
    TWO_FACTOR_CHALLENGED = "two_factor_challenged"
    TWO_FACTOR_VERIFIED = "two_factor_verified"
    TWO_FACTOR_FAILED = "two_factor_failed"
    BACKUP_CODE_USED = "backup_code_used"
    TWO_FACTOR_ENABLED = "two_factor_enabled"
    TWO_FACTOR_DISABLED = "two_factor_disabled"
    VERIFICATION_RESENT = "verification_resent"
    VERIFICATION_PENDING = "verification_pending"
    RATE_LIMITED = "rate_limited"


class SecurityLogger:
    """Append-only security event logger."""

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def log(
        self,
        event: SecurityEvent,
        email: str | None = None,
        user_id: str | None = None,
        provider: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Log security event to database."""
        try:
            self._db.execute_returning(
                """INSERT INTO security_events
                   (event_type, email, user_id, provider, details, created_at)
                   VALUES (%s, %s, %s, %s, %s, %s)
                   RETURNING id""",
                (
                    event.value,
                    email,
                    user_id,
                    provider,
                    Json(details) if details else None,
                    now_utc(),
                ),
            )
        except psycopg2.Error as e:
            logger.error(f"Failed to record security event {event.value}: {e}")


async def audit(security_logger: SecurityLogger, event: SecurityEvent, **fields: Any) -> None:
    """Write an audit row off the event loop."""
    await asyncio.to_thread(security_logger.log, event, **fields)
