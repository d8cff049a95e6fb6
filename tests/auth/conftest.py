"""In-memory bindings and stores for adapter and orchestrator tests."""

import uuid

import pytest

from auth.bindings.base import AuthStateEmitter, AuthStateEvent
from auth.exceptions import (
    EmailInUseError,
    EmailNotConfirmedError,
    InvalidCredentialsError,
    ProviderError,
)
from auth.types import Principal, Profile, Registration, TwoFactorMethod, TwoFactorStatus


class FakeBinding:
    """IdentityBinding over dicts. Records which calls were made."""

    def __init__(self, name: str = "gotrue", require_confirmation: bool = False):
        self.name = name
        self.require_confirmation = require_confirmation
        self.identities: dict[str, dict] = {}  # email -> {id, password, confirmed}
        self.profiles: dict[str, Profile] = {}
        self.session: Principal | None = None
        self.calls: list[str] = []
        self.fail_profile_insert = False
        self.profile_lookup_error: Exception | None = None
        self._events = AuthStateEmitter()

    # Test helpers

    def add_account(
        self,
        email: str,
        password: str,
        username: str | None = None,
        email_verified: bool | None = True,
        with_profile: bool = True,
        confirmed: bool = True,
        user_id: str | None = None,
    ) -> str:
        user_id = user_id or str(uuid.uuid4())
        self.identities[email.lower()] = {"id": user_id, "password": password, "confirmed": confirmed}
        if with_profile:
            self.profiles[user_id] = Profile(
                id=user_id,
                email=email,
                username=username,
                display_name=username,
                email_verified=email_verified,
            )
        return user_id

    def _principal(self, email: str) -> Principal:
        identity = self.identities[email.lower()]
        return Principal(id=identity["id"], email=email.lower(), email_verified=identity["confirmed"])

    async def emit(self, event: AuthStateEvent, principal: Principal | None) -> None:
        await self._events.emit(event, principal)

    # IdentityBinding

    async def register(self, username, email, password, referral_id=None) -> Registration:
        self.calls.append("register")
        if email.lower() in self.identities:
            raise EmailInUseError("Email already registered")
        self.add_account(
            email,
            password,
            username=username,
            email_verified=False,
            with_profile=not self.fail_profile_insert,
            confirmed=False,
        )
        principal = self._principal(email).model_copy(update={"username": username})
        error = "insert failed" if self.fail_profile_insert else None
        return Registration(principal=principal, profile_error=error)

    async def sign_in_with_password(self, email, password) -> Principal:
        self.calls.append("sign_in_with_password")
        identity = self.identities.get(email.lower())
        if identity is None or identity["password"] != password:
            raise InvalidCredentialsError("Invalid login credentials")
        if self.require_confirmation and not identity["confirmed"]:
            raise EmailNotConfirmedError("Email not confirmed")
        self.session = self._principal(email)
        await self._events.emit(AuthStateEvent.SIGNED_IN, self.session)
        return self.session

    @property
    def has_session(self) -> bool:
        return self.session is not None

    async def sign_out(self) -> None:
        self.calls.append("sign_out")
        if self.session is None:
            return
        self.session = None
        await self._events.emit(AuthStateEvent.SIGNED_OUT, None)

    async def reset_password_for_email(self, email) -> None:
        self.calls.append("reset_password_for_email")

    async def get_user(self) -> Principal | None:
        self.calls.append("get_user")
        return self.session

    async def update_user(self, password) -> Principal:
        self.calls.append("update_user")
        if self.session is None:
            raise ProviderError("No active session")
        self.identities[self.session.email]["password"] = password
        return self.session

    async def resend_verification(self, email) -> None:
        self.calls.append("resend_verification")

    def on_auth_state_change(self, listener):
        return self._events.subscribe(listener)

    async def get_profile_by_id(self, user_id) -> Profile | None:
        self.calls.append("get_profile_by_id")
        if self.profile_lookup_error is not None:
            raise self.profile_lookup_error
        return self.profiles.get(user_id)

    async def get_profile_by_email(self, email) -> Profile | None:
        return next((p for p in self.profiles.values() if p.email == email.lower()), None)

    async def find_profiles_by_username(self, username) -> list[Profile]:
        self.calls.append("find_profiles_by_username")
        return [p for p in self.profiles.values() if p.username == username]


class FakeTwoFactorStore:
    """TwoFactorStore over a dict, same semantics as TwoFactorDatabase."""

    def __init__(self):
        self.rows: dict[str, dict] = {}
        self.last_used: dict[str, bool] = {}

    def get_status(self, user_id: str) -> TwoFactorStatus:
        row = self.rows.get(user_id)
        if row is None:
            return TwoFactorStatus(user_id=user_id, enabled=False)
        return TwoFactorStatus(
            user_id=user_id,
            enabled=row["enabled"],
            method=row["method"],
            secret=row["secret"],
            backup_codes=list(row["backup_codes"]),
        )

    def save_pending_authenticator(self, user_id, secret, backup_code_hashes) -> None:
        row = self.rows.setdefault(
            user_id, {"enabled": False, "method": None, "secret": None, "backup_codes": []}
        )
        row["pending"] = (secret, list(backup_code_hashes))

    def get_pending_secret(self, user_id) -> str | None:
        pending = self.rows.get(user_id, {}).get("pending")
        return pending[0] if pending else None

    def enable_authenticator(self, user_id) -> bool:
        row = self.rows.get(user_id)
        if not row or not row.get("pending"):
            return False
        secret, codes = row.pop("pending")
        row.update(enabled=True, method=TwoFactorMethod.AUTHENTICATOR, secret=secret, backup_codes=codes)
        return True

    def enable_email(self, user_id, backup_code_hashes) -> None:
        self.rows[user_id] = {
            "enabled": True,
            "method": TwoFactorMethod.EMAIL,
            "secret": None,
            "backup_codes": list(backup_code_hashes),
        }

    def disable(self, user_id) -> None:
        if user_id in self.rows:
            self.rows[user_id] = {"enabled": False, "method": None, "secret": None, "backup_codes": []}

    def consume_backup_code(self, user_id, code_hash) -> bool:
        row = self.rows.get(user_id)
        if not row or not row["enabled"] or code_hash not in row["backup_codes"]:
            return False
        row["backup_codes"].remove(code_hash)
        return True

    def touch_last_used(self, user_id) -> None:
        self.last_used[user_id] = True


@pytest.fixture
def gotrue_binding() -> FakeBinding:
    return FakeBinding("gotrue", require_confirmation=True)


@pytest.fixture
def local_binding() -> FakeBinding:
    return FakeBinding("local")


@pytest.fixture
def two_factor_store() -> FakeTwoFactorStore:
    return FakeTwoFactorStore()
