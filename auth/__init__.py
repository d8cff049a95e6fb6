"""Authentication and verification modules."""

from auth.exceptions import (
    AuthError,
    AuthErrorKind,
    InvalidCredentialsError,
    UsernameTakenError,
    EmailInUseError,
    WeakPasswordError,
    InvalidEmailError,
    UserNotFoundError,
    AmbiguousIdentifierError,
    ProfileMissingError,
    EmailNotConfirmedError,
    IncorrectCodeError,
    CodeExpiredError,
    RateLimitedError,
    ProviderError,
)
from auth.types import (
    IdentityProvider,
    Principal,
    ProviderSession,
    Profile,
    TwoFactorMethod,
    TwoFactorStatus,
    EmailVerificationCode,
    RateLimitRecord,
    PendingSource,
    PendingRegistrationIdentity,
    Registration,
    AuthFailure,
    AuthResult,
)
from auth.config import AuthConfig
from auth.storage import KeyValueStore, ValkeyStore, MemoryStore
from auth.security_logger import SecurityLogger, SecurityEvent
from auth.adapter import AuthAdapter
from auth.email_codes import EmailCodeService, CodeCheck
from auth.two_factor_store import TwoFactorStore, TwoFactorDatabase
from auth.continuation import ContinuationDecision, SessionContinuationGate
from auth.pending_identity import PendingIdentityStore
from auth.registration import RegistrationFlow
from auth.resend_limiter import VerificationResendLimiter, ResendStatus, ResendOutcome, format_countdown
from auth.two_factor import TwoFactorOrchestrator, TwoFactorState, LoginAttempt, AuthenticatorEnrollment
from auth.bootstrap import AuthComponents, create_auth_components, build_from_vault
