"""Authentication configuration."""

from pydantic import BaseModel, Field

from auth.types import IdentityProvider


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (seconds for throttles,
    minutes for code and link lifetimes, hours for sessions).
    """

    # Provider routing
    identity_provider: IdentityProvider = Field(
        default=IdentityProvider.GOTRUE,
        description="Binding used by every operation without an override",
    )
    provider_overrides: dict[str, IdentityProvider] = Field(
        default_factory=dict,
        description="Per-operation binding, keyed by adapter operation name. Ignored for login.",
    )

    # Registration policy
    min_password_length: int = Field(
        default=6,
        description="Shortest password accepted at registration and password change",
        ge=6,
        le=128,
    )

    # Local binding sessions
    session_expiry_hours: int = Field(
        default=168,  # 7 days
        description="Session lifetime in hours",
        ge=1,
        le=2160,
    )
    action_link_expiry_minutes: int = Field(
        default=60,
        description="Lifetime of email confirmation and password reset links",
        ge=5,
        le=1440,
    )

    # Two-factor
    email_code_expiry_minutes: int = Field(
        default=10,
        description="How long an emailed sign-in code remains valid",
        ge=1,
        le=60,
    )
    email_code_resend_seconds: int = Field(
        default=60,
        description="Cooldown between two-factor email code resends",
        ge=10,
        le=600,
    )
    totp_valid_window: int = Field(
        default=1,
        description="Accepted clock drift in 30-second steps on either side",
        ge=0,
        le=4,
    )
    backup_code_count: int = Field(default=8, ge=4, le=20)
    totp_issuer: str = Field(default="Alpha Global Market")

    # Verification email resend limiter
    resend_max_attempts: int = Field(
        default=3,
        description="Successful resends allowed before the block window applies",
        ge=1,
        le=10,
    )
    resend_cooldown_seconds: int = Field(
        default=60,
        description="Wait between successful resends",
        ge=1,
        le=3600,
    )
    resend_block_seconds: int = Field(
        default=300,
        description="Block after the attempt bound is hit",
        ge=60,
        le=86400,
    )

    # Pending verification identity
    pending_identity_ttl_minutes: int = Field(
        default=30,
        description="Freshness window of the pending-verification identity",
        ge=1,
        le=1440,
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:5173",
        description="Base URL for confirmation and reset links",
    )
    app_name: str = Field(
        default="Alpha Global Market",
        description="Application name for emails",
    )

    def provider_for(self, operation: str) -> IdentityProvider:
        """Binding configured for an adapter operation."""
        return self.provider_overrides.get(operation, self.identity_provider)
