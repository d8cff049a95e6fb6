"""Sign-up entry point that hands off to the pending-verification screen."""

import logging

from auth.adapter import AuthAdapter
from auth.pending_identity import PendingIdentityStore
from auth.types import AuthResult, PendingSource, Principal

logger = logging.getLogger(__name__)


class RegistrationFlow:
    def __init__(self, adapter: AuthAdapter, pending_identities: PendingIdentityStore):
        self._adapter = adapter
        self._pending = pending_identities

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None = None,
    ) -> AuthResult[Principal]:
        """
        Register through the adapter and claim the pending identity for the new account.

        A referral sign-up claims as REFERRAL, any other as REGISTRATION. A
        failed registration claims nothing.
        """
        result = await self._adapter.register(username, email, password, referral_id)
        if not result.ok:
            return result

        source = PendingSource.REFERRAL if referral_id else PendingSource.REGISTRATION
        record = self._pending.claim(result.result.email, source)
        if record.email.lower() != result.result.email.lower():
            logger.warning(
                f"Registration of {result.result.id} left the {record.source.value} pending identity in place"
            )
        return result
