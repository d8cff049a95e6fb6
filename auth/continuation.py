"""Decides whether a signed-in principal may enter the app.

Called after plain login, authenticator 2FA and email 2FA alike.
"""

import logging
from enum import Enum

from auth.adapter import AuthAdapter
from auth.exceptions import ProfileMissingError
from auth.pending_identity import PendingIdentityStore
from auth.security_logger import SecurityEvent, SecurityLogger, audit
from auth.types import AuthResult, PendingSource, Principal

logger = logging.getLogger(__name__)


class ContinuationDecision(Enum):
    COMPLETE = "complete"
    PENDING_VERIFICATION = "pending_verification"


class SessionContinuationGate:
    def __init__(
        self,
        adapter: AuthAdapter,
        pending_identities: PendingIdentityStore,
        security_logger: SecurityLogger,
    ):
        self._adapter = adapter
        self._pending = pending_identities
        self._security_logger = security_logger

    async def decide(self, principal: Principal) -> AuthResult[ContinuationDecision]:
        """
        COMPLETE unless the profile says the email is explicitly unverified.

        Legacy profiles without the flag (None) complete. A failed profile
        lookup is returned as the error and nothing completes.
        """
        lookup = await self._adapter.get_profile(principal.id)
        if not lookup.ok:
            logger.error(f"Continuation check for {principal.id} failed: {lookup.error.message}")
            return AuthResult(error=lookup.error)

        profile = lookup.result
        if profile is None:
            return AuthResult.failure(ProfileMissingError("Account profile not found"))

        if profile.email_verified is False:
            self._pending.claim(principal.email, PendingSource.LOGIN_REDIRECT)
            await audit(
                self._security_logger,
                SecurityEvent.VERIFICATION_PENDING,
                email=principal.email,
                user_id=principal.id,
            )
            return AuthResult.success(ContinuationDecision.PENDING_VERIFICATION)

        return AuthResult.success(ContinuationDecision.COMPLETE)
