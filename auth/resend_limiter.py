"""Rate limiting for "resend verification email".

State is one RateLimitRecord per lower-cased email in the key-value store;
the decision is recomputed from that record and the clock on every call.
Only successful sends count against the quota.

This throttles the UX only. Clearing storage resets it, so it is not a
security boundary; the mail backend must enforce its own limits.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable

from pydantic import ValidationError

from auth.adapter import guarded
from auth.config import AuthConfig
from auth.exceptions import RateLimitedError
from auth.storage import KeyValueStore
from auth.types import AuthResult, RateLimitRecord
from utils.timezone import Clock, now_utc, seconds_until

logger = logging.getLogger(__name__)


def format_countdown(seconds: int) -> str:
    """Render seconds as m:ss."""
    minutes, secs = divmod(max(seconds, 0), 60)
    return f"{minutes}:{secs:02d}"


@dataclass
class ResendStatus:
    """What the pending-verification screen should show right now."""

    allowed: bool
    attempts: int
    retry_after_seconds: int = 0
    reason: str | None = None  # "blocked" or "cooldown" when not allowed
    message: str | None = None


@dataclass
class ResendOutcome:
    attempts: int
    message: str
    blocked_until: datetime | None = None


class VerificationResendLimiter:
    """Attempt bound, per-send cooldown and block window for one email."""

    KEY_PREFIX = "verification_resend:"

    def __init__(self, store: KeyValueStore, config: AuthConfig, clock: Clock = now_utc):
        self._store = store
        self._max_attempts = config.resend_max_attempts
        self._cooldown = timedelta(seconds=config.resend_cooldown_seconds)
        self._block = timedelta(seconds=config.resend_block_seconds)
        self._clock = clock

    def _key(self, email: str) -> str:
        return f"{self.KEY_PREFIX}{email.strip().lower()}"

    def _load(self, key: str) -> RateLimitRecord:
        data = self._store.get(key)
        if data is None:
            return RateLimitRecord()
        try:
            return RateLimitRecord.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable resend record {key}: {e}")
            self._store.remove(key)
            return RateLimitRecord()

    def _save(self, key: str, record: RateLimitRecord) -> None:
        self._store.set(
            key,
            record.model_dump(mode="json"),
            expire_seconds=int((self._block + self._cooldown).total_seconds()),
        )

    def status(self, email: str) -> ResendStatus:
        """Current countdown for email. Clears the record once a block has fully elapsed."""
        key = self._key(email)
        record = self._load(key)
        now = self._clock()

        if (
            record.attempts >= self._max_attempts
            and record.blocked_until is not None
            and record.blocked_until > now
        ):
            remaining = seconds_until(record.blocked_until, now)
            return ResendStatus(
                allowed=False,
                attempts=record.attempts,
                retry_after_seconds=remaining,
                reason="blocked",
                message=(
                    "Too many verification emails requested. "
                    f"Please wait {format_countdown(remaining)} before trying again."
                ),
            )

        if record.last_attempt_at is not None and now - record.last_attempt_at < self._cooldown:
            remaining = seconds_until(record.last_attempt_at + self._cooldown, now)
            return ResendStatus(
                allowed=False,
                attempts=record.attempts,
                retry_after_seconds=remaining,
                reason="cooldown",
                message=f"Please wait {remaining}s before resending.",
            )

        if record.attempts >= self._max_attempts:
            self._store.remove(key)
            return ResendStatus(allowed=True, attempts=0)

        return ResendStatus(allowed=True, attempts=record.attempts)

    async def resend(
        self,
        email: str,
        send: Callable[[], Awaitable[AuthResult[Any]]],
    ) -> AuthResult[ResendOutcome]:
        """
        Run send if the limiter allows it and count it if it succeeded.

        A denial returns RateLimited with the countdown and reason and leaves
        the record untouched. A failed send returns its error uncounted.
        """
        current = self.status(email)
        if not current.allowed:
            logger.info(f"Verification resend denied ({current.reason}, {current.retry_after_seconds}s)")
            return AuthResult.failure(
                RateLimitedError(current.retry_after_seconds, reason=current.reason, message=current.message)
            )

        outcome = await guarded("resend_verification", send())
        sent = outcome.result if outcome.ok else outcome
        if not sent.ok:
            return AuthResult(error=sent.error)

        # Re-read after the await; read and write below must not be split
        key = self._key(email)
        record = self._load(key)
        now = self._clock()
        if record.attempts >= self._max_attempts:
            record = RateLimitRecord()

        attempts = record.attempts + 1
        blocked_until = now + self._block if attempts >= self._max_attempts else None
        self._save(key, RateLimitRecord(attempts=attempts, last_attempt_at=now, blocked_until=blocked_until))

        if blocked_until is not None:
            minutes = int(self._block.total_seconds()) // 60
            message = (
                "Verification email sent. You've hit the resend limit, "
                f"please wait {minutes} minutes before requesting another."
            )
        else:
            message = f"Verification email sent (attempt {attempts}/{self._max_attempts})."
        return AuthResult.success(ResendOutcome(attempts=attempts, message=message, blocked_until=blocked_until))
