"""Pydantic models and result carriers for the auth domain."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, EmailStr, Field

from auth.exceptions import AuthError, AuthErrorKind, RateLimitedError

T = TypeVar("T")


class IdentityProvider(str, Enum):
    """The two identity bindings the adapter can route to."""

    GOTRUE = "gotrue"
    LOCAL = "local"


class Principal(BaseModel):
    """An authenticated identity, provider-agnostic."""

    id: str = Field(..., description="Opaque provider user id")
    email: EmailStr
    username: str | None = None
    email_verified: bool | None = None
    raw: dict[str, Any] = Field(default_factory=dict, description="Provider payload, opaque")


class ProviderSession(BaseModel):
    """Binding-private session material. Only the owning binding reads it."""

    access_token: str
    refresh_token: str | None = None
    user_id: str
    expires_at: datetime | None = None


class Profile(BaseModel):
    """A row of the users profile table."""

    id: str
    email: EmailStr
    username: str | None = None
    display_name: str | None = None
    email_verified: bool | None = None  # None on legacy rows predating the flag
    metadata: dict[str, Any] = Field(default_factory=dict)

    model_config = {"from_attributes": True}


class TwoFactorMethod(str, Enum):
    AUTHENTICATOR = "authenticator"
    EMAIL = "email"


class TwoFactorStatus(BaseModel):
    """Per-principal two-factor configuration."""

    user_id: str
    enabled: bool  # Required - fail closed, no default
    method: TwoFactorMethod | None = None
    secret: str | None = None
    backup_codes: list[str] = Field(default_factory=list)


class EmailVerificationCode(BaseModel):
    """A single-use emailed code awaiting verification. Only the hash is kept."""

    principal_id: str
    code_hash: str
    created_at: datetime
    expires_at: datetime


class RateLimitRecord(BaseModel):
    """Resend bookkeeping for one target email."""

    attempts: int = Field(default=0, ge=0)
    last_attempt_at: datetime | None = None
    blocked_until: datetime | None = None


class PendingSource(str, Enum):
    """Navigation path that landed the user on the pending-verification screen."""

    REGISTRATION = "registration"
    LOGIN_REDIRECT = "login_redirect"
    REFERRAL = "referral"


class PendingRegistrationIdentity(BaseModel):
    """Whose email the pending-verification screen is about."""

    email: EmailStr
    created_at: datetime
    source: PendingSource


@dataclass
class Registration:
    """What a binding returns from register."""

    principal: Principal
    profile_error: str | None = None


@dataclass
class AuthFailure:
    """Typed failure returned to callers instead of raising."""

    kind: AuthErrorKind
    message: str
    retry_after_seconds: int | None = None
    reason: str | None = None

    @classmethod
    def from_error(cls, error: AuthError) -> "AuthFailure":
        if isinstance(error, RateLimitedError):
            return cls(
                kind=error.kind,
                message=str(error),
                retry_after_seconds=error.retry_after_seconds,
                reason=error.reason,
            )
        return cls(kind=error.kind, message=str(error))


@dataclass
class AuthResult(Generic[T]):
    """The {result, error} shape every public operation returns."""

    result: T | None = None
    error: AuthFailure | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, result: T | None = None) -> "AuthResult[T]":
        return cls(result=result)

    @classmethod
    def failure(cls, error: AuthError) -> "AuthResult[T]":
        return cls(error=AuthFailure.from_error(error))
