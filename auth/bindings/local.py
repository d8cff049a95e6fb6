"""Self-hosted identity binding: PostgreSQL identities/profiles, argon2
password hashes, opaque session tokens in the key-value store.

Confirmation and reset emails carry single-use link tokens kept in the same
store under their own prefixes.
"""

import asyncio
import logging
import secrets
from datetime import timedelta

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

from auth.bindings.base import AuthStateEmitter, AuthStateEvent, AuthStateListener, Unsubscribe
from auth.config import AuthConfig
from auth.database import IdentityDatabase
from auth.exceptions import InvalidCredentialsError, ProviderError, UsernameTakenError
from auth.session import SessionExpiredError, SessionManager
from auth.storage import KeyValueStore
from auth.types import Principal, Profile, ProviderSession, Registration
from clients.email_client import EmailGatewayClient, EmailGatewayError
from utils.timezone import Clock, now_utc, parse_iso

logger = logging.getLogger(__name__)

# Link token kind -> (store prefix, path on the web client)
_LINKS = {
    "confirm_email": ("link:confirm_email:", "/verify-email"),
    "reset_password": ("link:reset_password:", "/reset-password"),
}


def _principal(identity: dict, username: str | None = None) -> Principal:
    return Principal(
        id=str(identity["id"]),
        email=identity["email"],
        username=username,
        email_verified=identity["email_confirmed_at"] is not None,
        raw={"provider": "local"},
    )


class LocalBinding:
    """Identity binding over the platform's own database."""

    name = "local"

    def __init__(
        self,
        identity_db: IdentityDatabase,
        session_manager: SessionManager,
        email_client: EmailGatewayClient,
        store: KeyValueStore,
        config: AuthConfig,
        clock: Clock = now_utc,
        hasher: PasswordHasher | None = None,
    ):
        self._db = identity_db
        self._sessions = session_manager
        self._email_client = email_client
        self._store = store
        self._config = config
        self._clock = clock
        self._hasher = hasher or PasswordHasher()
        self._session: ProviderSession | None = None
        self._events = AuthStateEmitter()

    # Link tokens

    def _issue_link(self, kind: str, identity_id: str, email: str) -> None:
        prefix, path = _LINKS[kind]
        token = secrets.token_urlsafe(32)
        now = self._clock()
        ttl_seconds = self._config.action_link_expiry_minutes * 60
        self._store.set(
            f"{prefix}{token}",
            {
                "identity_id": identity_id,
                "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
            },
            expire_seconds=ttl_seconds,
        )
        link = f"{self._config.app_base_url}{path}?token={token}"
        try:
            self._email_client.send_action_link(email, kind, link)
        except EmailGatewayError as e:
            raise ProviderError(f"Could not send {kind} email: {e}")

    def _redeem_link(self, kind: str, token: str) -> str | None:
        """Consume a link token. Returns the identity id, or None if unknown/expired."""
        prefix, _ = _LINKS[kind]
        key = f"{prefix}{token}"
        data = self._store.get(key)
        if data is None:
            return None
        self._store.remove(key)
        if self._clock() > parse_iso(data["expires_at"]):
            return None
        return data["identity_id"]

    # Auth
    #
    # Database, session store, argon2 and gateway calls block, so they run
    # in worker threads.

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None = None,
    ) -> Registration:
        if await asyncio.to_thread(self._db.find_profiles_by_username, username):
            raise UsernameTakenError("Username already taken")

        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        identity = await asyncio.to_thread(self._db.create_identity, email, password_hash)
        identity_id = str(identity["id"])

        profile_error = None
        try:
            await asyncio.to_thread(self._db.create_profile, identity_id, email, username, referral_id)
        except (UsernameTakenError, ProviderError) as e:
            profile_error = str(e)
        except Exception as e:
            logger.error(f"Profile insert failed for {identity_id}: {e}")
            profile_error = str(e)

        try:
            await asyncio.to_thread(self._issue_link, "confirm_email", identity_id, identity["email"])
        except ProviderError as e:
            # The pending-verification screen can resend
            logger.warning(f"Confirmation email not sent at registration: {e}")

        return Registration(principal=_principal(identity, username), profile_error=profile_error)

    def _verify_credentials(self, email: str, password: str) -> dict:
        identity = self._db.get_identity_by_email(email)
        if identity is None:
            raise InvalidCredentialsError("Invalid login credentials")

        try:
            self._hasher.verify(identity["password_hash"], password)
        except VerifyMismatchError:
            raise InvalidCredentialsError("Invalid login credentials")
        except (InvalidHashError, VerificationError) as e:
            raise ProviderError(f"Stored credential unusable: {e}")

        if self._hasher.check_needs_rehash(identity["password_hash"]):
            self._db.update_password_hash(str(identity["id"]), self._hasher.hash(password))
        return identity

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        identity = await asyncio.to_thread(self._verify_credentials, email, password)

        principal = _principal(identity)
        self._session = await asyncio.to_thread(self._sessions.create_session, principal.id)
        await self._events.emit(AuthStateEvent.SIGNED_IN, principal)
        return principal

    @property
    def has_session(self) -> bool:
        return self._session is not None

    async def sign_out(self) -> None:
        session, self._session = self._session, None
        if session is None:
            return
        await asyncio.to_thread(self._sessions.revoke_session, session.access_token)
        await self._events.emit(AuthStateEvent.SIGNED_OUT, None)

    async def reset_password_for_email(self, email: str) -> None:
        identity = await asyncio.to_thread(self._db.get_identity_by_email, email)
        if identity is None:
            # Same outcome as success: don't reveal which emails exist
            logger.info("Password reset requested for unknown email")
            return
        await asyncio.to_thread(self._issue_link, "reset_password", str(identity["id"]), identity["email"])

    async def exchange_reset_token(self, token: str) -> Principal:
        """Sign in through a password reset link so update_user can run."""
        identity_id = await asyncio.to_thread(self._redeem_link, "reset_password", token)
        identity = await asyncio.to_thread(self._db.get_identity_by_id, identity_id) if identity_id else None
        if identity is None:
            raise InvalidCredentialsError("Reset link is invalid or has expired")

        principal = _principal(identity)
        self._session = await asyncio.to_thread(self._sessions.create_session, principal.id)
        await self._events.emit(AuthStateEvent.PASSWORD_RECOVERY, principal)
        return principal

    async def confirm_email(self, token: str) -> bool:
        """Redeem a confirmation link. Returns False for unknown or expired links."""
        identity_id = await asyncio.to_thread(self._redeem_link, "confirm_email", token)
        if identity_id is None:
            return False
        return await asyncio.to_thread(self._db.confirm_email, identity_id)

    async def get_user(self) -> Principal | None:
        if self._session is None:
            return None
        try:
            self._session = await asyncio.to_thread(self._sessions.validate_session, self._session.access_token)
        except SessionExpiredError:
            self._session = None
            return None

        identity = await asyncio.to_thread(self._db.get_identity_by_id, self._session.user_id)
        return _principal(identity) if identity else None

    async def update_user(self, password: str) -> Principal:
        principal = await self.get_user()
        if principal is None:
            raise ProviderError("No active session")

        password_hash = await asyncio.to_thread(self._hasher.hash, password)
        await asyncio.to_thread(self._db.update_password_hash, principal.id, password_hash)
        await self._events.emit(AuthStateEvent.USER_UPDATED, principal)
        return principal

    async def resend_verification(self, email: str) -> None:
        identity = await asyncio.to_thread(self._db.get_identity_by_email, email)
        if identity is None or identity["email_confirmed_at"] is not None:
            logger.info("Verification resend skipped: no unconfirmed identity for email")
            return
        await asyncio.to_thread(self._issue_link, "confirm_email", str(identity["id"]), identity["email"])

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe:
        return self._events.subscribe(listener)

    # Profiles

    async def get_profile_by_id(self, user_id: str) -> Profile | None:
        return await asyncio.to_thread(self._db.get_profile_by_id, user_id)

    async def get_profile_by_email(self, email: str) -> Profile | None:
        return await asyncio.to_thread(self._db.get_profile_by_email, email)

    async def find_profiles_by_username(self, username: str) -> list[Profile]:
        return await asyncio.to_thread(self._db.find_profiles_by_username, username)
