"""Two-factor sign-in.

One LoginAttempt per login walks PRIMARY_AUTH -> AWAITING_2FA_METHOD_CHECK
-> (AWAITING_AUTHENTICATOR_CODE | AWAITING_EMAIL_CODE) -> VERIFIED, or to
FAILED. A FAILED attempt past primary auth stays re-enterable: the user
resubmits a code without signing in again. Every VERIFIED attempt goes
through the SessionContinuationGate.

No attempt cap here; the server owns that.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from auth import totp
from auth.adapter import AuthAdapter, guarded, looks_like_email
from auth.config import AuthConfig
from auth.continuation import ContinuationDecision, SessionContinuationGate
from auth.email_codes import EmailCodeService
from auth.exceptions import (
    AuthError,
    AuthErrorKind,
    CodeExpiredError,
    IncorrectCodeError,
    ProviderError,
    RateLimitedError,
)
from auth.pending_identity import PendingIdentityStore
from auth.security_logger import SecurityEvent, SecurityLogger, audit
from auth.two_factor_store import TwoFactorStore
from auth.types import AuthFailure, AuthResult, PendingSource, Principal, TwoFactorMethod
from utils.timezone import Clock, now_utc, seconds_until

logger = logging.getLogger(__name__)


class TwoFactorState(Enum):
    PRIMARY_AUTH = "primary_auth"
    AWAITING_2FA_METHOD_CHECK = "awaiting_2fa_method_check"
    AWAITING_AUTHENTICATOR_CODE = "awaiting_authenticator_code"
    AWAITING_EMAIL_CODE = "awaiting_email_code"
    VERIFIED = "verified"
    FAILED = "failed"


@dataclass
class LoginAttempt:
    """State of one sign-in. error holds the last failure, cleared on progress."""

    identifier: str
    state: TwoFactorState = TwoFactorState.PRIMARY_AUTH
    principal: Principal | None = None
    method: TwoFactorMethod | None = None
    error: AuthFailure | None = None
    decision: ContinuationDecision | None = None
    code_sent_at: datetime | None = None
    history: list[TwoFactorState] = field(default_factory=list)

    def move_to(self, state: TwoFactorState) -> None:
        self.history.append(self.state)
        self.state = state

    @property
    def completed(self) -> bool:
        return self.state is TwoFactorState.VERIFIED and self.decision is ContinuationDecision.COMPLETE


@dataclass
class AuthenticatorEnrollment:
    """Shown once at enrollment: the secret, its QR payload and the plain backup codes."""

    secret: str
    provisioning_uri: str
    backup_codes: list[str]


class TwoFactorOrchestrator:
    """Drives LoginAttempts through primary auth, the 2FA method and the gate."""

    def __init__(
        self,
        adapter: AuthAdapter,
        store: TwoFactorStore,
        email_codes: EmailCodeService,
        gate: SessionContinuationGate,
        pending_identities: PendingIdentityStore,
        security_logger: SecurityLogger,
        config: AuthConfig,
        clock: Clock = now_utc,
    ):
        self._adapter = adapter
        self._store = store
        self._email_codes = email_codes
        self._gate = gate
        self._pending = pending_identities
        self._security_logger = security_logger
        self._config = config
        self._clock = clock
        self._cooldown = timedelta(seconds=config.email_code_resend_seconds)

    def _fail(self, attempt: LoginAttempt, error: AuthError | AuthFailure) -> LoginAttempt:
        attempt.error = error if isinstance(error, AuthFailure) else AuthFailure.from_error(error)
        attempt.move_to(TwoFactorState.FAILED)
        return attempt

    # Login

    async def login(self, identifier: str, password: str) -> LoginAttempt:
        attempt = LoginAttempt(identifier=identifier)

        primary = await self._adapter.login(identifier, password)
        if not primary.ok:
            if primary.error.kind is AuthErrorKind.EMAIL_NOT_CONFIRMED and looks_like_email(identifier):
                self._pending.claim(identifier.strip(), PendingSource.LOGIN_REDIRECT)
            return self._fail(attempt, primary.error)

        attempt.principal = primary.result
        attempt.move_to(TwoFactorState.AWAITING_2FA_METHOD_CHECK)

        try:
            status = await asyncio.to_thread(self._store.get_status, attempt.principal.id)
        except Exception as e:
            logger.exception(f"Two-factor status lookup for {attempt.principal.id} failed")
            return self._fail(attempt, ProviderError(f"Could not load two-factor settings: {e}"))

        if not status.enabled:
            return await self._verified(attempt)

        attempt.method = status.method
        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_CHALLENGED,
            email=attempt.principal.email,
            user_id=attempt.principal.id,
            details={"method": status.method.value if status.method else None},
        )

        if status.method is TwoFactorMethod.AUTHENTICATOR:
            attempt.move_to(TwoFactorState.AWAITING_AUTHENTICATOR_CODE)
            return attempt
        if status.method is TwoFactorMethod.EMAIL:
            return await self._send_email_code(attempt)

        # Enabled without a method: fail closed
        logger.error(f"Two-factor enabled without a method for {attempt.principal.id}")
        return self._fail(attempt, ProviderError("Two-factor settings are incomplete"))

    async def _verified(self, attempt: LoginAttempt) -> LoginAttempt:
        attempt.error = None
        attempt.move_to(TwoFactorState.VERIFIED)

        decision = await self._gate.decide(attempt.principal)
        if decision.ok:
            attempt.decision = decision.result
        else:
            attempt.error = decision.error
        return attempt

    def _accepts(self, attempt: LoginAttempt, method: TwoFactorMethod) -> bool:
        waiting = (
            TwoFactorState.AWAITING_AUTHENTICATOR_CODE
            if method is TwoFactorMethod.AUTHENTICATOR
            else TwoFactorState.AWAITING_EMAIL_CODE
        )
        return (
            attempt.principal is not None
            and attempt.method is method
            and attempt.state in (waiting, TwoFactorState.FAILED)
        )

    async def _code_rejected(self, attempt: LoginAttempt, error: AuthError) -> LoginAttempt:
        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_FAILED,
            email=attempt.principal.email,
            user_id=attempt.principal.id,
            details={"method": attempt.method.value, "kind": error.kind.value},
        )
        return self._fail(attempt, error)

    async def _code_accepted(self, attempt: LoginAttempt) -> None:
        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_VERIFIED,
            email=attempt.principal.email,
            user_id=attempt.principal.id,
            details={"method": attempt.method.value},
        )
        try:
            await asyncio.to_thread(self._store.touch_last_used, attempt.principal.id)
        except Exception:
            logger.exception(f"Could not record two-factor use for {attempt.principal.id}")

    # Authenticator

    async def submit_authenticator_code(self, attempt: LoginAttempt, code: str) -> LoginAttempt:
        """
        Verify an authenticator code, falling back to one backup code.

        The same input is tried as a TOTP code first and then consumed as a
        backup code at most once.
        """
        if not self._accepts(attempt, TwoFactorMethod.AUTHENTICATOR):
            raise ValueError(f"Attempt in state {attempt.state.value} does not accept authenticator codes")

        user_id = attempt.principal.id
        try:
            status = await asyncio.to_thread(self._store.get_status, user_id)
            if status.secret and totp.verify_totp(
                status.secret, code, self._clock(), valid_window=self._config.totp_valid_window
            ):
                await self._code_accepted(attempt)
                return await self._verified(attempt)

            if await asyncio.to_thread(self._store.consume_backup_code, user_id, totp.hash_backup_code(code)):
                await audit(
                    self._security_logger,
                    SecurityEvent.BACKUP_CODE_USED,
                    email=attempt.principal.email,
                    user_id=user_id,
                )
                await self._code_accepted(attempt)
                return await self._verified(attempt)
        except Exception as e:
            logger.exception(f"Authenticator check for {user_id} failed")
            return self._fail(attempt, ProviderError(f"Could not verify code: {e}"))

        return await self._code_rejected(attempt, IncorrectCodeError("Incorrect verification code"))

    # Email

    async def _send_email_code(self, attempt: LoginAttempt) -> LoginAttempt:
        """Send a code; the attempt only waits for it once the send succeeded."""
        principal = attempt.principal
        sent = await guarded(
            "send_email_code",
            self._email_codes.send_code(principal.id, principal.email, principal.username or principal.email),
        )
        if not sent.ok:
            return self._fail(attempt, sent.error)
        if not sent.result.success:
            return self._fail(attempt, ProviderError(sent.result.message))

        attempt.code_sent_at = self._clock()
        attempt.error = None
        attempt.move_to(TwoFactorState.AWAITING_EMAIL_CODE)
        return attempt

    async def submit_email_code(self, attempt: LoginAttempt, code: str) -> LoginAttempt:
        if not self._accepts(attempt, TwoFactorMethod.EMAIL):
            raise ValueError(f"Attempt in state {attempt.state.value} does not accept email codes")

        checked = await guarded("verify_email_code", self._email_codes.verify_code(attempt.principal.id, code))
        if not checked.ok:
            return self._fail(attempt, checked.error)

        check = checked.result
        if check.success:
            await self._code_accepted(attempt)
            return await self._verified(attempt)
        if check.reason == "expired":
            return await self._code_rejected(attempt, CodeExpiredError(check.message))
        return await self._code_rejected(attempt, IncorrectCodeError(check.message))

    async def resend_email_code(self, attempt: LoginAttempt) -> LoginAttempt:
        """
        Send a fresh code, at most once per cooldown.

        Inside the cooldown the attempt keeps its state and carries a
        RateLimited error with the remaining seconds.
        """
        if not self._accepts(attempt, TwoFactorMethod.EMAIL):
            raise ValueError(f"Attempt in state {attempt.state.value} does not accept email codes")

        if attempt.code_sent_at is not None:
            ready_at = attempt.code_sent_at + self._cooldown
            remaining = seconds_until(ready_at, self._clock())
            if remaining > 0:
                attempt.error = AuthFailure.from_error(
                    RateLimitedError(remaining, reason="cooldown", message=f"Please wait {remaining}s to resend the code.")
                )
                return attempt

        return await self._send_email_code(attempt)

    # Enrollment

    async def enroll_authenticator(self, principal: Principal) -> AuthResult[AuthenticatorEnrollment]:
        """Start authenticator setup. 2FA stays as-is until confirm_authenticator succeeds."""
        return await guarded("enroll_authenticator", self._enroll_authenticator(principal))

    async def _enroll_authenticator(self, principal: Principal) -> AuthenticatorEnrollment:
        secret = totp.generate_secret()
        backup_codes = totp.generate_backup_codes(self._config.backup_code_count)
        await asyncio.to_thread(
            self._store.save_pending_authenticator,
            principal.id,
            secret,
            [totp.hash_backup_code(c) for c in backup_codes],
        )
        return AuthenticatorEnrollment(
            secret=secret,
            provisioning_uri=totp.provisioning_uri(secret, principal.email, self._config.totp_issuer),
            backup_codes=backup_codes,
        )

    async def confirm_authenticator(self, principal: Principal, code: str) -> AuthResult[None]:
        return await guarded("confirm_authenticator", self._confirm_authenticator(principal, code))

    async def _confirm_authenticator(self, principal: Principal, code: str) -> None:
        secret = await asyncio.to_thread(self._store.get_pending_secret, principal.id)
        if secret is None:
            raise CodeExpiredError("No authenticator enrollment in progress")
        if not totp.verify_totp(secret, code, self._clock(), valid_window=self._config.totp_valid_window):
            raise IncorrectCodeError("Incorrect verification code")
        if not await asyncio.to_thread(self._store.enable_authenticator, principal.id):
            raise CodeExpiredError("No authenticator enrollment in progress")

        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_ENABLED,
            email=principal.email,
            user_id=principal.id,
            details={"method": TwoFactorMethod.AUTHENTICATOR.value},
        )

    async def enable_email(self, principal: Principal) -> AuthResult[list[str]]:
        """Switch to email codes. Returns the new plain backup codes."""
        return await guarded("enable_email_2fa", self._enable_email(principal))

    async def _enable_email(self, principal: Principal) -> list[str]:
        backup_codes = totp.generate_backup_codes(self._config.backup_code_count)
        hashes = [totp.hash_backup_code(c) for c in backup_codes]
        await asyncio.to_thread(self._store.enable_email, principal.id, hashes)
        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_ENABLED,
            email=principal.email,
            user_id=principal.id,
            details={"method": TwoFactorMethod.EMAIL.value},
        )
        return backup_codes

    async def disable(self, principal: Principal) -> AuthResult[None]:
        return await guarded("disable_2fa", self._disable(principal))

    async def _disable(self, principal: Principal) -> None:
        await asyncio.to_thread(self._store.disable, principal.id)
        await audit(
            self._security_logger,
            SecurityEvent.TWO_FACTOR_DISABLED,
            email=principal.email,
            user_id=principal.id,
        )
