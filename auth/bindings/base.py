"""The identity contract both bindings implement."""

from enum import Enum
from typing import Awaitable, Callable, Protocol

from auth.types import Principal, Profile, Registration


class AuthStateEvent(Enum):
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    USER_UPDATED = "USER_UPDATED"
    PASSWORD_RECOVERY = "PASSWORD_RECOVERY"


AuthStateListener = Callable[[AuthStateEvent, Principal | None], Awaitable[None]]
Unsubscribe = Callable[[], None]


class IdentityBinding(Protocol):
    """
    One identity provider behind the adapter.

    Bindings raise AuthError subclasses for every expected failure and
    ProviderError for anything the provider did not explain. Each binding
    keeps its own ProviderSession and attaches it to outgoing calls.
    """

    name: str

    @property
    def has_session(self) -> bool:
        """True while the binding holds a provider session."""
        ...

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None = None,
    ) -> Registration: ...

    async def sign_in_with_password(self, email: str, password: str) -> Principal: ...

    async def sign_out(self) -> None: ...

    async def reset_password_for_email(self, email: str) -> None: ...

    async def get_user(self) -> Principal | None: ...

    async def update_user(self, password: str) -> Principal: ...

    async def resend_verification(self, email: str) -> None: ...

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe: ...

    async def get_profile_by_id(self, user_id: str) -> Profile | None: ...

    async def get_profile_by_email(self, email: str) -> Profile | None: ...

    async def find_profiles_by_username(self, username: str) -> list[Profile]: ...


class AuthStateEmitter:
    """Listener registry shared by the bindings."""

    def __init__(self):
        self._listeners: list[AuthStateListener] = []

    def subscribe(self, listener: AuthStateListener) -> Unsubscribe:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, event: AuthStateEvent, principal: Principal | None) -> None:
        # Copy: a listener may unsubscribe while being notified
        for listener in list(self._listeners):
            await listener(event, principal)
