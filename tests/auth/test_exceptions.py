"""Tests for auth/exceptions.py - Typed exceptions for auth failures."""

import pytest

from auth.exceptions import (
    AuthError,
    AuthErrorKind,
    AmbiguousIdentifierError,
    CodeExpiredError,
    EmailInUseError,
    EmailNotConfirmedError,
    IncorrectCodeError,
    InvalidCredentialsError,
    InvalidEmailError,
    ProfileMissingError,
    ProviderError,
    RateLimitedError,
    UserNotFoundError,
    UsernameTakenError,
    WeakPasswordError,
)

ALL_ERRORS = [
    (InvalidCredentialsError, AuthErrorKind.INVALID_CREDENTIALS),
    (UsernameTakenError, AuthErrorKind.USERNAME_TAKEN),
    (EmailInUseError, AuthErrorKind.EMAIL_IN_USE),
    (WeakPasswordError, AuthErrorKind.WEAK_PASSWORD),
    (InvalidEmailError, AuthErrorKind.INVALID_EMAIL),
    (UserNotFoundError, AuthErrorKind.USER_NOT_FOUND),
    (AmbiguousIdentifierError, AuthErrorKind.AMBIGUOUS_IDENTIFIER),
    (ProfileMissingError, AuthErrorKind.PROFILE_MISSING),
    (EmailNotConfirmedError, AuthErrorKind.EMAIL_NOT_CONFIRMED),
    (IncorrectCodeError, AuthErrorKind.INCORRECT_CODE),
    (CodeExpiredError, AuthErrorKind.CODE_EXPIRED),
    (ProviderError, AuthErrorKind.PROVIDER_ERROR),
]


class TestExceptionInheritance:
    """All auth exceptions should inherit from AuthError and carry their kind."""

    @pytest.mark.parametrize("error_cls,kind", ALL_ERRORS)
    def test_inherits_and_has_kind(self, error_cls, kind):
        assert issubclass(error_cls, AuthError)
        assert error_cls("message").kind is kind

    def test_rate_limited_inherits(self):
        assert issubclass(RateLimitedError, AuthError)
        assert RateLimitedError(5).kind is AuthErrorKind.RATE_LIMITED


class TestRateLimitedError:
    """RateLimitedError should carry retry timing info."""

    def test_stores_retry_seconds(self):
        """retry_after_seconds should be accessible."""
        err = RateLimitedError(30)
        assert err.retry_after_seconds == 30
        assert err.reason == "cooldown"

    def test_message_includes_seconds(self):
        """Default message should include the retry time."""
        err = RateLimitedError(45)
        assert "45" in str(err)

    def test_custom_message_and_reason(self):
        err = RateLimitedError(290, reason="blocked", message="Please wait 4:50")
        assert str(err) == "Please wait 4:50"
        assert err.reason == "blocked"

    def test_can_be_caught_as_auth_error(self):
        """Should be catchable as AuthError."""
        with pytest.raises(AuthError):
            raise RateLimitedError(10)
