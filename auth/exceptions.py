"""Typed exceptions for auth failures.

Raised inside the package (bindings, stores, code services) and converted to
AuthFailure values at the adapter/orchestrator boundary, so callers never see
them thrown.
"""

from enum import Enum


class AuthErrorKind(Enum):
    """Error taxonomy exposed to callers."""

    INVALID_CREDENTIALS = "invalid_credentials"
    USERNAME_TAKEN = "username_taken"
    EMAIL_IN_USE = "email_in_use"
    WEAK_PASSWORD = "weak_password"
    INVALID_EMAIL = "invalid_email"
    USER_NOT_FOUND = "user_not_found"
    AMBIGUOUS_IDENTIFIER = "ambiguous_identifier"
    PROFILE_MISSING = "profile_missing"
    EMAIL_NOT_CONFIRMED = "email_not_confirmed"
    INCORRECT_CODE = "incorrect_code"
    CODE_EXPIRED = "code_expired"
    RATE_LIMITED = "rate_limited"
    PROVIDER_ERROR = "provider_error"


class AuthError(Exception):
    """Base class for authentication errors."""

    kind = AuthErrorKind.PROVIDER_ERROR


class InvalidCredentialsError(AuthError):
    """Password does not match the identity."""

    kind = AuthErrorKind.INVALID_CREDENTIALS


class UsernameTakenError(AuthError):
    """Another profile already uses this username."""

    kind = AuthErrorKind.USERNAME_TAKEN


class EmailInUseError(AuthError):
    """Another identity already uses this email."""

    kind = AuthErrorKind.EMAIL_IN_USE


class WeakPasswordError(AuthError):
    """Password rejected by the strength policy."""

    kind = AuthErrorKind.WEAK_PASSWORD


class InvalidEmailError(AuthError):
    """Email address is malformed."""

    kind = AuthErrorKind.INVALID_EMAIL


class UserNotFoundError(AuthError):
    """
    Identifier not associated with any profile.

    Note: In user-facing responses, don't reveal whether an email exists.
    """

    kind = AuthErrorKind.USER_NOT_FOUND


class AmbiguousIdentifierError(AuthError):
    """Username matched more than one profile. Data-integrity violation."""

    kind = AuthErrorKind.AMBIGUOUS_IDENTIFIER


class ProfileMissingError(AuthError):
    """Credentials were valid but the profile row does not exist."""

    kind = AuthErrorKind.PROFILE_MISSING


class EmailNotConfirmedError(AuthError):
    """Identity provider refuses sign-in until the email is confirmed."""

    kind = AuthErrorKind.EMAIL_NOT_CONFIRMED


class IncorrectCodeError(AuthError):
    """Verification or backup code did not match."""

    kind = AuthErrorKind.INCORRECT_CODE


class CodeExpiredError(AuthError):
    """No unexpired code is outstanding for this principal."""

    kind = AuthErrorKind.CODE_EXPIRED


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    kind = AuthErrorKind.RATE_LIMITED

    def __init__(self, retry_after_seconds: int, reason: str = "cooldown", message: str | None = None):
        self.retry_after_seconds = retry_after_seconds
        self.reason = reason
        super().__init__(message or f"Rate limited. Retry after {retry_after_seconds} seconds.")


class ProviderError(AuthError):
    """Network or unexpected failure in an identity provider or mail backend."""

    kind = AuthErrorKind.PROVIDER_ERROR
