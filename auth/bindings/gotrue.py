"""Hosted identity binding: GoTrue auth REST API plus a PostgREST users table.

The binding holds the bearer session returned by GoTrue and attaches it to
every call made on the user's behalf; before sign-in the anon key is used.
"""

import logging
from datetime import timedelta
from typing import Any

import httpx

from auth.bindings.base import AuthStateEmitter, AuthStateEvent, AuthStateListener, Unsubscribe
from auth.exceptions import (
    AuthError,
    EmailInUseError,
    EmailNotConfirmedError,
    InvalidCredentialsError,
    InvalidEmailError,
    ProviderError,
    RateLimitedError,
    WeakPasswordError,
)
from auth.types import Principal, Profile, ProviderSession, Registration
from utils.timezone import Clock, now_utc

logger = logging.getLogger(__name__)

USERS_TABLE = "users"
_PROFILE_SELECT = "id,email,username,display_name,email_verified,metadata"

# GoTrue error_code -> exception raised to the adapter
_ERROR_CODES: dict[str, type[AuthError]] = {
    "invalid_credentials": InvalidCredentialsError,
    "email_not_confirmed": EmailNotConfirmedError,
    "user_already_exists": EmailInUseError,
    "email_exists": EmailInUseError,
    "weak_password": WeakPasswordError,
    "email_address_invalid": InvalidEmailError,
}

# Older GoTrue releases only send a message
_ERROR_MESSAGES: dict[str, type[AuthError]] = {
    "Invalid login credentials": InvalidCredentialsError,
    "Email not confirmed": EmailNotConfirmedError,
    "User already registered": EmailInUseError,
}


def _error_from_response(response: httpx.Response) -> AuthError:
    """Translate a non-2xx GoTrue response into a typed error."""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}

    code = body.get("error_code") or body.get("code") or body.get("error")
    message = body.get("msg") or body.get("message") or body.get("error_description") or response.text

    if response.status_code == 429 or str(code).startswith("over_"):
        return RateLimitedError(retry_after_seconds=60, reason="provider", message=message)

    if isinstance(code, str) and code in _ERROR_CODES:
        return _ERROR_CODES[code](message)

    for fragment, error_cls in _ERROR_MESSAGES.items():
        if fragment in str(message):
            return error_cls(message)

    return ProviderError(f"Identity provider error {response.status_code}: {message}")


def _principal_from_user(user: dict[str, Any]) -> Principal:
    metadata = user.get("user_metadata") or {}
    return Principal(
        id=user["id"],
        email=user["email"],
        username=metadata.get("username"),
        email_verified=user.get("email_confirmed_at") is not None,
        raw=user,
    )


def _profile_from_row(row: dict[str, Any]) -> Profile:
    return Profile(
        id=row["id"],
        email=row["email"],
        username=row.get("username"),
        display_name=row.get("display_name"),
        email_verified=row.get("email_verified"),
        metadata=row.get("metadata") or {},
    )


class GoTrueBinding:
    """Identity binding over GoTrue and PostgREST."""

    name = "gotrue"

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        redirect_url: str,
        http: httpx.AsyncClient | None = None,
        clock: Clock = now_utc,
    ):
        if not base_url:
            raise ValueError("base_url is required")
        if not anon_key:
            raise ValueError("anon_key is required")

        self._base_url = base_url.rstrip("/")
        self._anon_key = anon_key
        self._redirect_url = redirect_url
        self._http = http or httpx.AsyncClient(timeout=10.0)
        self._clock = clock
        self._session: ProviderSession | None = None
        self._events = AuthStateEmitter()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
        use_session: bool = True,
    ) -> httpx.Response:
        token = self._session.access_token if use_session and self._session else self._anon_key
        request_headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
        }
        if headers:
            request_headers.update(headers)

        try:
            return await self._http.request(
                method,
                f"{self._base_url}{path}",
                json=json,
                params=params,
                headers=request_headers,
            )
        except httpx.HTTPError as e:
            logger.error(f"Identity provider request {method} {path} failed: {e}")
            raise ProviderError(f"Identity provider unreachable: {e}")

    async def _auth_call(self, method: str, path: str, **kwargs) -> dict[str, Any]:
        response = await self._request(method, f"/auth/v1{path}", **kwargs)
        if response.is_success:
            return response.json() if response.content else {}
        raise _error_from_response(response)

    def _store_session(self, body: dict[str, Any]) -> Principal:
        principal = _principal_from_user(body["user"])
        expires_in = body.get("expires_in")
        self._session = ProviderSession(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token"),
            user_id=principal.id,
            expires_at=self._clock() + timedelta(seconds=expires_in) if expires_in else None,
        )
        return principal

    # Auth

    async def register(
        self,
        username: str,
        email: str,
        password: str,
        referral_id: str | None = None,
    ) -> Registration:
        body = await self._auth_call(
            "POST",
            "/signup",
            params={"redirect_to": self._redirect_url},
            json={
                "email": email,
                "password": password,
                "data": {"username": username, "display_name": username},
            },
            use_session=False,
        )

        # With autoconfirm GoTrue returns a session, otherwise the bare user
        if "access_token" in body:
            principal = self._store_session(body)
            await self._events.emit(AuthStateEvent.SIGNED_IN, principal)
        else:
            principal = _principal_from_user(body.get("user") or body)

        profile_error = await self._insert_profile(principal, username, referral_id)
        return Registration(principal=principal, profile_error=profile_error)

    async def _insert_profile(self, principal: Principal, username: str, referral_id: str | None) -> str | None:
        """Create the profile row. Returns an error description instead of raising."""
        row = {
            "id": principal.id,
            "username": username,
            "email": principal.email,
            "display_name": username,
            "email_verified": False,
            "referred_by": referral_id,
            "metadata": {"user_type": "broker", "referral_count": 0},
        }
        try:
            response = await self._request(
                "POST",
                f"/rest/v1/{USERS_TABLE}",
                json=[row],
                headers={"Prefer": "return=minimal"},
            )
        except ProviderError as e:
            return str(e)
        if not response.is_success:
            return f"Profile insert failed with {response.status_code}: {response.text}"
        return None

    async def sign_in_with_password(self, email: str, password: str) -> Principal:
        body = await self._auth_call(
            "POST",
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
            use_session=False,
        )
        principal = self._store_session(body)
        await self._events.emit(AuthStateEvent.SIGNED_IN, principal)
        return principal

    @property
    def has_session(self) -> bool:
        return self._session is not None

    async def sign_out(self) -> None:
        """Drop the local session first so a remote failure can't keep it alive."""
        session, self._session = self._session, None
        if session is None:
            return

        await self._events.emit(AuthStateEvent.SIGNED_OUT, None)

        response = await self._request(
            "POST",
            "/auth/v1/logout",
            headers={"Authorization": f"Bearer {session.access_token}"},
            use_session=False,
        )
        # 401/404: token already invalid server-side, nothing left to revoke
        if not response.is_success and response.status_code not in (401, 404):
            raise _error_from_response(response)

    async def reset_password_for_email(self, email: str) -> None:
        await self._auth_call(
            "POST",
            "/recover",
            params={"redirect_to": f"{self._redirect_url}/reset-password"},
            json={"email": email},
            use_session=False,
        )

    async def get_user(self) -> Principal | None:
        if self._session is None:
            return None

        response = await self._request("GET", "/auth/v1/user")
        if response.status_code == 401:
            logger.info("Stored session rejected by identity provider, clearing it")
            self._session = None
            return None
        if not response.is_success:
            raise _error_from_response(response)
        return _principal_from_user(response.json())

    async def update_user(self, password: str) -> Principal:
        if self._session is None:
            raise ProviderError("No active session")

        body = await self._auth_call("PUT", "/user", json={"password": password})
        principal = _principal_from_user(body)
        await self._events.emit(AuthStateEvent.USER_UPDATED, principal)
        return principal

    async def resend_verification(self, email: str) -> None:
        await self._auth_call(
            "POST",
            "/resend",
            params={"redirect_to": self._redirect_url},
            json={"type": "signup", "email": email},
            use_session=False,
        )

    def on_auth_state_change(self, listener: AuthStateListener) -> Unsubscribe:
        return self._events.subscribe(listener)

    # Profiles

    async def _select_profiles(self, column: str, value: str) -> list[Profile]:
        response = await self._request(
            "GET",
            f"/rest/v1/{USERS_TABLE}",
            params={"select": _PROFILE_SELECT, column: f"eq.{value}"},
        )
        if not response.is_success:
            raise ProviderError(f"Profile lookup failed with {response.status_code}: {response.text}")
        return [_profile_from_row(row) for row in response.json()]

    async def get_profile_by_id(self, user_id: str) -> Profile | None:
        rows = await self._select_profiles("id", user_id)
        return rows[0] if rows else None

    async def get_profile_by_email(self, email: str) -> Profile | None:
        rows = await self._select_profiles("email", email.lower())
        return rows[0] if rows else None

    async def find_profiles_by_username(self, username: str) -> list[Profile]:
        return await self._select_profiles("username", username)

    async def aclose(self) -> None:
        await self._http.aclose()
