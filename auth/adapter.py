"""Provider-agnostic auth adapter.

Every public operation returns AuthResult; expected failures never raise
past this module. Bindings are chosen per operation from AuthConfig, except
login, which always goes through LOGIN_PROVIDER while accounts migrate
between bindings.
"""

import logging
import re
from typing import Awaitable, TypeVar

from pydantic import EmailStr, TypeAdapter, ValidationError

from auth.bindings.base import AuthStateEvent, AuthStateListener, IdentityBinding, Unsubscribe
from auth.config import AuthConfig
from auth.exceptions import (
    AmbiguousIdentifierError,
    AuthError,
    InvalidEmailError,
    ProfileMissingError,
    ProviderError,
    UserNotFoundError,
    UsernameTakenError,
    WeakPasswordError,
)
from auth.security_logger import SecurityEvent, SecurityLogger, audit
from auth.types import AuthResult, IdentityProvider, Principal, Profile

logger = logging.getLogger(__name__)

T = TypeVar("T")

_EMAIL_SHAPE = re.compile(r"\S+@\S+\.\S+")
_EMAIL = TypeAdapter(EmailStr)


def looks_like_email(identifier: str) -> bool:
    return _EMAIL_SHAPE.search(identifier) is not None


async def guarded(operation: str, call: Awaitable[T]) -> AuthResult[T]:
    """Await a call and fold any failure into the result.

    ProviderError and unexpected exceptions are logged with traceback;
    expected auth failures only at INFO.
    """
    try:
        return AuthResult.success(await call)
    except ProviderError as e:
        logger.exception(f"{operation} failed: {e}")
        return AuthResult.failure(e)
    except AuthError as e:
        logger.info(f"{operation} rejected: {e.kind.value}")
        return AuthResult.failure(e)
    except Exception as e:
        logger.exception(f"{operation} failed unexpectedly")
        return AuthResult.failure(ProviderError(f"Unexpected error during {operation}: {e}"))


class AuthAdapter:
    """Routes identity operations to the configured binding."""

    LOGIN_PROVIDER = IdentityProvider.GOTRUE

    def __init__(
        self,
        bindings: dict[IdentityProvider, IdentityBinding],
        config: AuthConfig,
        security_logger: SecurityLogger,
    ):
        required = {self.LOGIN_PROVIDER, config.identity_provider, *config.provider_overrides.values()}
        missing = required - set(bindings)
        if missing:
            raise ValueError(f"No binding registered for: {sorted(p.value for p in missing)}")

        self._bindings = bindings
        self._config = config
        self._security_logger = security_logger

    def _binding(self, operation: str) -> IdentityBinding:
        return self._bindings[self._config.provider_for(operation)]

    @property
    def _login_binding(self) -> IdentityBinding:
        return self._bindings[self.LOGIN_PROVIDER]

    def _check_password(self, password: str) -> None:
        if len(password) < self._config.min_password_length:
            raise WeakPasswordError(
                f"Password must be at least {self._config.min_password_length} characters"
            )

    # Registration

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None = None,
    ) -> AuthResult[Principal]:
        result = await guarded("register", self._register(username, email, password, referral_id))
        if result.ok:
            await audit(
                self._security_logger,
                SecurityEvent.REGISTERED,
                email=result.result.email,
                user_id=result.result.id,
                provider=self._config.provider_for("register").value,
                details={"referral_id": referral_id} if referral_id else None,
            )
        return result

    async def _register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None,
    ) -> Principal:
        try:
            email = _EMAIL.validate_python(email.strip())
        except ValidationError:
            raise InvalidEmailError("Invalid email address")
        self._check_password(password)

        binding = self._binding("register")
        if await binding.find_profiles_by_username(username):
            raise UsernameTakenError("Username already taken")

        registration = await binding.register(username, email, password, referral_id)

        if registration.profile_error:
            # Identity stays; the profile can be completed later
            logger.warning(
                f"Identity {registration.principal.id} registered without profile: "
                f"{registration.profile_error}"
            )
            await audit(
                self._security_logger,
                SecurityEvent.REGISTRATION_PROFILE_FAILED,
                email=registration.principal.email,
                user_id=registration.principal.id,
                provider=binding.name,
                details={"error": registration.profile_error},
            )
        return registration.principal

    # Session lifecycle

    async def login(self, identifier: str, password: str) -> AuthResult[Principal]:
        """Sign in with an email or a username."""
        result = await guarded("login", self._login(identifier.strip(), password))
        if result.ok:
            await audit(
                self._security_logger,
                SecurityEvent.LOGIN_SUCCEEDED,
                email=result.result.email,
                user_id=result.result.id,
                provider=self._login_binding.name,
            )
        else:
            await audit(
                self._security_logger,
                SecurityEvent.LOGIN_FAILED,
                email=identifier if looks_like_email(identifier) else None,
                provider=self._login_binding.name,
                details={"kind": result.error.kind.value},
            )
        return result

    async def _login(self, identifier: str, password: str) -> Principal:
        binding = self._login_binding

        email = identifier
        if not looks_like_email(identifier):
            profiles = await binding.find_profiles_by_username(identifier)
            if not profiles:
                raise UserNotFoundError("No account found for this username")
            if len(profiles) > 1:
                logger.error(f"Username '{identifier}' matches {len(profiles)} profiles")
                raise AmbiguousIdentifierError("Username matches more than one account")
            email = profiles[0].email

        principal = await binding.sign_in_with_password(email, password)

        try:
            profile = await binding.get_profile_by_id(principal.id)
        except Exception:
            await self._force_sign_out(binding, principal, "profile lookup failed")
            raise

        if profile is None:
            await self._force_sign_out(binding, principal, "profile missing")
            raise ProfileMissingError("Account profile not found")

        return principal.model_copy(update={"username": profile.username or principal.username})

    async def _force_sign_out(self, binding: IdentityBinding, principal: Principal, reason: str) -> None:
        if not binding.has_session:
            # A state-change listener already signed this session out
            logger.info(f"Session for {principal.id} already closed: {reason}")
            return

        logger.warning(f"Signing out {principal.id}: {reason}")
        await audit(
            self._security_logger,
            SecurityEvent.PROFILE_MISSING_SIGNOUT,
            email=principal.email,
            user_id=principal.id,
            provider=binding.name,
            details={"reason": reason},
        )
        try:
            await binding.sign_out()
        except AuthError as e:
            # Local session is already dropped; only the remote revoke failed
            logger.error(f"Remote sign-out for {principal.id} failed: {e}")

    async def logout(self) -> AuthResult[None]:
        result = await guarded("logout", self._logout())
        if result.ok:
            await audit(self._security_logger, SecurityEvent.SIGNED_OUT, provider=self._binding("logout").name)
        return result

    async def _logout(self) -> None:
        binding = self._binding("logout")
        await binding.sign_out()
        # Sessions opened by the pinned login binding live there
        if binding is not self._login_binding:
            await self._login_binding.sign_out()

    async def reset_password(self, email: str) -> AuthResult[None]:
        result = await guarded("reset_password", self._binding("reset_password").reset_password_for_email(email))
        if result.ok:
            await audit(
                self._security_logger,
                SecurityEvent.PASSWORD_RESET_REQUESTED,
                email=email,
                provider=self._binding("reset_password").name,
            )
        return result

    async def update_password(self, new_password: str) -> AuthResult[Principal]:
        result = await guarded("update_password", self._update_password(new_password))
        if result.ok:
            await audit(
                self._security_logger,
                SecurityEvent.PASSWORD_UPDATED,
                email=result.result.email,
                user_id=result.result.id,
                provider=self._binding("update_password").name,
            )
        return result

    async def _update_password(self, new_password: str) -> Principal:
        self._check_password(new_password)
        return await self._binding("update_password").update_user(password=new_password)

    async def get_current_user(self) -> AuthResult[Principal | None]:
        return await guarded("get_current_user", self._binding("get_current_user").get_user())

    async def get_profile(self, user_id: str) -> AuthResult[Profile | None]:
        return await guarded("get_profile", self._binding("get_profile").get_profile_by_id(user_id))

    async def resend_verification_email(self, email: str) -> AuthResult[None]:
        binding = self._binding("resend_verification_email")
        result = await guarded("resend_verification_email", binding.resend_verification(email))
        if result.ok:
            await audit(self._security_logger, SecurityEvent.VERIFICATION_RESENT, email=email, provider=binding.name)
        return result

    # State changes

    def on_auth_state_change(self, callback: AuthStateListener) -> Unsubscribe:
        """
        Subscribe to session changes with the profile post-check applied.

        A change carrying a principal whose profile is gone (or can't be
        looked up) signs that session out; the callback then receives
        (SIGNED_OUT, None) instead of the principal.
        """
        bindings = [self._binding("on_auth_state_change")]
        if self._login_binding is not bindings[0]:
            bindings.append(self._login_binding)

        unsubscribes = [binding.on_auth_state_change(self._guard(binding, callback)) for binding in bindings]

        def unsubscribe() -> None:
            for unsub in unsubscribes:
                unsub()

        return unsubscribe

    def _guard(self, binding: IdentityBinding, callback: AuthStateListener) -> AuthStateListener:
        signing_out = False

        async def listener(event: AuthStateEvent, principal: Principal | None) -> None:
            nonlocal signing_out
            if signing_out:
                return

            if principal is not None and not await self._profile_exists(binding, principal):
                signing_out = True
                try:
                    await self._force_sign_out(binding, principal, f"orphaned session on {event.value}")
                finally:
                    signing_out = False
                await callback(AuthStateEvent.SIGNED_OUT, None)
                return

            await callback(event, principal)

        return listener

    async def _profile_exists(self, binding: IdentityBinding, principal: Principal) -> bool:
        try:
            return await binding.get_profile_by_id(principal.id) is not None
        except Exception:
            logger.exception(f"Profile check for {principal.id} failed")
            return False
