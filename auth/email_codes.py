"""Emailed one-time sign-in codes.

One outstanding code per principal: each send replaces the previous one.
Codes are 6 digits, stored as SHA-256 hashes with an explicit expiry, and
deleted on the first successful verification.
"""

import asyncio
import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

from auth.config import AuthConfig
from auth.storage import KeyValueStore
from auth.types import EmailVerificationCode
from clients.email_client import EmailGatewayClient, EmailGatewayError
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)


@dataclass
class CodeCheck:
    """Outcome of a send or verify call."""

    success: bool
    message: str
    reason: str | None = None  # sent | send_failed | verified | incorrect | expired


def _hash(code: str) -> str:
    return hashlib.sha256(code.encode()).hexdigest()


class EmailCodeService:
    """Verification-email sender over the email gateway."""

    KEY_PREFIX = "email_2fa_code:"

    def __init__(
        self,
        store: KeyValueStore,
        email_client: EmailGatewayClient,
        config: AuthConfig,
        clock: Clock = now_utc,
    ):
        self._store = store
        self._email_client = email_client
        self._expiry = timedelta(minutes=config.email_code_expiry_minutes)
        self._expiry_minutes = config.email_code_expiry_minutes
        self._clock = clock

    def _key(self, principal_id: str) -> str:
        return f"{self.KEY_PREFIX}{principal_id}"

    async def send_code(self, principal_id: str, email: str, display_name: str) -> CodeCheck:
        code = f"{secrets.randbelow(1_000_000):06d}"
        now = self._clock()
        record = EmailVerificationCode(
            principal_id=principal_id,
            code_hash=_hash(code),
            created_at=now,
            expires_at=now + self._expiry,
        )
        self._store.set(
            self._key(principal_id),
            record.model_dump(mode="json"),
            expire_seconds=int(self._expiry.total_seconds()),
        )

        try:
            await asyncio.to_thread(
                self._email_client.send_two_factor_code, email, display_name, code, self._expiry_minutes
            )
        except EmailGatewayError as e:
            logger.error(f"Sign-in code for {principal_id} not delivered: {e}")
            self._store.remove(self._key(principal_id))
            return CodeCheck(success=False, message="Could not send verification code", reason="send_failed")

        return CodeCheck(success=True, message=f"Verification code sent to {email}", reason="sent")

    async def verify_code(self, principal_id: str, code: str) -> CodeCheck:
        key = self._key(principal_id)
        data = self._store.get(key)
        if data is None:
            return CodeCheck(success=False, message="Code expired or not found", reason="expired")

        record = EmailVerificationCode.model_validate(data)
        if self._clock() > record.expires_at:
            self._store.remove(key)
            return CodeCheck(success=False, message="Code expired or not found", reason="expired")

        if not hmac.compare_digest(record.code_hash, _hash(code.strip())):
            return CodeCheck(success=False, message="Incorrect code", reason="incorrect")

        self._store.remove(key)
        return CodeCheck(success=True, message="Code verified", reason="verified")
